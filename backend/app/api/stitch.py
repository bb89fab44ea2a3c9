import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, Response

from stitch_core import stitch_images
from stitch_core.errors import DecodeError, EmptyInputError, StitchError
from stitch_core.export import ResourceStore

from ..core.config import settings
from ..core.deps import get_live_client, get_resource_store
from ..core.live import LiveCaptureClient, LiveCaptureError
from ..core.storage import read_upload_file, resolve_export_path
from ..schemas.stitch import LiveStitchResponse, StitchResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_file_count(files: List[UploadFile]) -> None:
    if not files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No images to stitch"
        )
    if len(files) > settings.MAX_FILES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files. Maximum: {settings.MAX_FILES}",
        )


@router.post("", response_model=StitchResponse)
async def stitch(
    files: List[UploadFile] = File(...),
    store: ResourceStore = Depends(get_resource_store),
):
    """Stitch the uploaded images top to bottom, in upload order."""
    _check_file_count(files)
    payload = [(file.filename, await read_upload_file(file)) for file in files]

    try:
        result = await run_in_threadpool(
            stitch_images, payload, store=store, max_workers=settings.LOAD_WORKERS
        )
    except (EmptyInputError, DecodeError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StitchError as e:
        logger.error(f"Stitch request failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to stitch images: {e}",
        )

    if result.notice:
        logger.warning(f"Stitch succeeded with notice: {result.notice}")

    return StitchResponse(
        url=result.url,
        width=result.width,
        height=result.height,
        metadata_transplanted=result.metadata_transplanted,
        notice=result.notice,
    )


@router.get("/exports/{name}")
async def download_export(name: str):
    """Download a stitched composite."""
    path = resolve_export_path(name)
    if path is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Composite not found"
        )
    return FileResponse(path, media_type="image/jpeg", filename=name)


@router.delete("/exports/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def release_export(name: str, store: ResourceStore = Depends(get_resource_store)):
    """Release a stitched composite once the client has downloaded it."""
    if resolve_export_path(name) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Composite not found"
        )
    store.release(f"{settings.EXPORT_URL_PREFIX}/{name}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/live", response_model=LiveStitchResponse)
async def stitch_live(
    files: List[UploadFile] = File(...),
    client: LiveCaptureClient = Depends(get_live_client),
):
    """Forward images and clips to the live-capture service, ordered by filename."""
    _check_file_count(files)
    ordered = sorted(files, key=lambda f: (f.filename or "").casefold())

    parts = []
    for file in ordered:
        data = await read_upload_file(file, settings.LIVE_ALLOWED_EXTENSIONS)
        parts.append((file.filename, data, file.content_type or "application/octet-stream"))

    try:
        data = await run_in_threadpool(client.stitch_live, parts)
    except LiveCaptureError as e:
        logger.error(f"Live stitch failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return LiveStitchResponse(**data)
