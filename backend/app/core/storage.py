import logging
import re
from pathlib import Path
from typing import Optional, Set
from uuid import uuid4

from fastapi import UploadFile, HTTPException, status

from stitch_core.errors import ExportError
from stitch_core.export import ResourceStore

from .config import settings

logger = logging.getLogger(__name__)

EXPORT_NAME_PATTERN = re.compile(r"^stitched_[0-9a-f]{32}\.jpg$")


def ensure_export_dir() -> Path:
    """Ensure the export directory exists."""
    export_path = Path(settings.EXPORT_DIR)
    export_path.mkdir(parents=True, exist_ok=True)
    return export_path


def get_file_extension(filename: str) -> str:
    """Get file extension in lowercase."""
    return Path(filename).suffix.lower()


def validate_file(file: UploadFile, allowed_extensions: Optional[Set[str]] = None) -> None:
    """Validate uploaded file."""
    if allowed_extensions is None:
        allowed_extensions = settings.ALLOWED_EXTENSIONS

    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No filename provided"
        )

    extension = get_file_extension(file.filename)
    if extension not in allowed_extensions:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File type {extension} not allowed. Allowed types: {', '.join(sorted(allowed_extensions))}",
        )


def generate_export_filename() -> str:
    """Generate a unique filename for a stitched composite."""
    return f"stitched_{uuid4().hex}.jpg"


async def read_upload_file(
    file: UploadFile, allowed_extensions: Optional[Set[str]] = None
) -> bytes:
    """
    Validate an uploaded file and read it fully into memory.

    Returns:
        The raw file bytes.
    """
    validate_file(file, allowed_extensions)

    data = await file.read()
    if len(data) > settings.MAX_FILE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File {file.filename} too large. Maximum size: {settings.MAX_FILE_SIZE / (1024*1024):.1f}MB",
        )
    return data


def resolve_export_path(name: str) -> Optional[Path]:
    """Return the on-disk path of an exported composite, or None if unknown."""
    if not EXPORT_NAME_PATTERN.match(name):
        return None
    path = Path(settings.EXPORT_DIR) / name
    return path if path.is_file() else None


class DiskResourceStore(ResourceStore):
    """Stores composites in the export directory and serves them by URL."""

    def __init__(self, export_dir: Optional[str] = None, url_prefix: Optional[str] = None):
        self.export_dir = Path(export_dir or settings.EXPORT_DIR)
        self.url_prefix = (url_prefix or settings.EXPORT_URL_PREFIX).rstrip("/")

    def put(self, data: bytes, media_type: str) -> str:
        if media_type != "image/jpeg":
            raise ExportError(f"Unsupported media type for export: {media_type}")

        self.export_dir.mkdir(parents=True, exist_ok=True)
        filename = generate_export_filename()
        file_path = self.export_dir / filename
        try:
            file_path.write_bytes(data)
        except OSError as e:
            raise ExportError(f"Failed to save composite: {e}") from e

        logger.info(f"Saved composite to {file_path}")
        return f"{self.url_prefix}/{filename}"

    def release(self, url: str) -> None:
        name = url.rsplit("/", 1)[-1]
        if not EXPORT_NAME_PATTERN.match(name):
            logger.warning(f"Refusing to release unknown resource: {url}")
            return
        (self.export_dir / name).unlink(missing_ok=True)
        logger.info(f"Released composite {name}")
