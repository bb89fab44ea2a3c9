import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from io import BytesIO
from typing import Iterable, List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from .errors import DecodeError
from .models import ImageHandle, SourceImage

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


def load_image(name: str, data: bytes) -> SourceImage:
    """
    Decode a raw file into a SourceImage.

    The raster is fully decoded here so that truncated files fail now rather
    than halfway through compositing.

    Args:
        name: Original filename, used for logging and error messages.
        data: Raw file bytes.

    Returns:
        A SourceImage holding the decoded raster and its natural dimensions.

    Raises:
        DecodeError: If the bytes are not a supported, intact raster image.
    """
    if not data:
        raise DecodeError(name, "file is empty")

    try:
        raster = Image.open(BytesIO(data))
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        SyntaxError,
        ValueError,
    ) as e:
        raise DecodeError(name, str(e)) from e

    try:
        raster.load()
    except (OSError, SyntaxError, ValueError) as e:
        raster.close()
        raise DecodeError(name, str(e)) from e

    width, height = raster.size
    if width <= 0 or height <= 0:
        raster.close()
        raise DecodeError(name, f"invalid dimensions {width}x{height}")

    logger.debug(f"Decoded {name}: {width}x{height} {raster.mode}")
    return SourceImage(
        name=name,
        data=data,
        handle=ImageHandle(name, raster),
        width=width,
        height=height,
    )


def load_images(
    files: Sequence[Tuple[str, bytes]], max_workers: Optional[int] = None
) -> List[SourceImage]:
    """
    Decode every file concurrently, preserving input order.

    Fails fast: as soon as one decode fails, tasks that have not started are
    cancelled, every image that did decode is released, and the first
    DecodeError (in input order) is raised.
    """
    if not files:
        return []

    workers = max_workers or min(len(files), DEFAULT_MAX_WORKERS)
    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stitch-load")
    try:
        futures = [pool.submit(load_image, name, data) for name, data in files]
        wait(futures, return_when=FIRST_EXCEPTION)
    finally:
        pool.shutdown(wait=True, cancel_futures=True)

    loaded = []
    failure = None
    for future in futures:
        if future.cancelled():
            continue
        error = future.exception()
        if error is None:
            loaded.append(future.result())
        elif failure is None:
            failure = error

    if failure is not None:
        release_images(loaded)
        logger.error(f"Aborting load of {len(files)} images: {failure}")
        raise failure

    logger.info(f"Loaded {len(loaded)} images")
    return loaded


def release_images(images: Iterable[SourceImage]) -> None:
    """Release the temporary handle of every image."""
    for image in images:
        image.handle.release()
