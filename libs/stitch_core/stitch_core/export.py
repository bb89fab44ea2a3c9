import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Tuple
from uuid import uuid4

from .compositor import OUTPUT_MEDIA_TYPE
from .errors import ExportError
from .models import ImageHandle, StitchResult

logger = logging.getLogger(__name__)


class ResourceStore(ABC):
    """Turns final bytes into something a caller can retrieve by URL."""

    @abstractmethod
    def put(self, data: bytes, media_type: str) -> str:
        """Store ``data`` and return its locator."""

    @abstractmethod
    def release(self, url: str) -> None:
        """Forget the resource behind ``url``."""


class MemoryResourceStore(ResourceStore):
    """In-process store handing out ``blob:`` locators."""

    def __init__(self):
        self._blobs: Dict[str, Tuple[bytes, str]] = {}

    def put(self, data: bytes, media_type: str) -> str:
        url = f"blob:{uuid4().hex}"
        self._blobs[url] = (data, media_type)
        return url

    def _entry(self, url: str) -> Tuple[bytes, str]:
        try:
            return self._blobs[url]
        except KeyError:
            raise KeyError(f"No resource stored at {url}") from None

    def get(self, url: str) -> bytes:
        return self._entry(url)[0]

    def media_type(self, url: str) -> str:
        return self._entry(url)[1]

    def release(self, url: str) -> None:
        self._blobs.pop(url, None)

    def __contains__(self, url: str) -> bool:
        return url in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


def release_handles(handles: Iterable[ImageHandle]) -> None:
    for handle in handles:
        handle.release()


def export_result(
    data: bytes,
    width: int,
    height: int,
    store: ResourceStore,
    handles: Iterable[ImageHandle] = (),
    metadata_transplanted: bool = False,
    notice: Optional[str] = None,
) -> StitchResult:
    """
    Wrap the final bytes into a retrievable resource.

    The per-image handles are released as the last step, whether or not the
    export itself succeeded.

    Raises:
        ExportError: If the store cannot hold the bytes.
    """
    try:
        if not data:
            raise ExportError("Nothing to export: composite is empty")
        try:
            url = store.put(data, OUTPUT_MEDIA_TYPE)
        except ExportError:
            raise
        except Exception as e:
            raise ExportError(f"Could not store composite: {e}") from e

        logger.info(f"Exported {width}x{height} composite ({len(data)} bytes) to {url}")
        return StitchResult(
            data=data,
            url=url,
            width=width,
            height=height,
            metadata_transplanted=metadata_transplanted,
            notice=notice,
        )
    finally:
        release_handles(handles)
