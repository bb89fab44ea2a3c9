from typing import Generator

from stitch_core.export import ResourceStore

from .config import settings
from .live import LiveCaptureClient
from .storage import DiskResourceStore


def get_resource_store() -> ResourceStore:
    """Get the store composites are exported to."""
    return DiskResourceStore(settings.EXPORT_DIR, settings.EXPORT_URL_PREFIX)


def get_live_client() -> Generator[LiveCaptureClient, None, None]:
    """Get a live-capture client for the duration of one request."""
    client = LiveCaptureClient()
    try:
        yield client
    finally:
        client.close()
