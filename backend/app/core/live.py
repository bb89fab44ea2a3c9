"""
Client for the external live-capture service.

The service merges still images and their paired clips into a Live Photo
(JPG + MOV). It is consumed as a black box: a multipart POST of ``files`` to
``/stitch-live`` answers ``{status, jpg_url, mov_url, width, height}``.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import settings

logger = logging.getLogger(__name__)

# (filename, content, content type)
UploadPart = Tuple[str, bytes, str]


class LiveCaptureError(Exception):
    """The live-capture service failed or answered with an unexpected shape."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class LiveCaptureClient:
    """Talks to the live-capture service over HTTP."""

    ENDPOINT = "/stitch-live"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.LIVE_SERVICE_URL).rstrip("/")
        self.timeout = timeout or settings.LIVE_SERVICE_TIMEOUT

        if session is None:
            retries = settings.LIVE_SERVICE_RETRIES if max_retries is None else max_retries
            session = requests.Session()
            # Only connection failures are retried; a merge may already be running
            retry_strategy = Retry(total=retries, connect=retries, read=0, status=0, backoff_factor=1)
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session

    def absolute_url(self, path: str) -> str:
        """Resolve a path returned by the service against its base URL."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def stitch_live(self, files: List[UploadPart]) -> Dict[str, Any]:
        """
        Send the ordered files to the service.

        Returns:
            The service response with ``jpg_url`` and ``mov_url`` made absolute.

        Raises:
            LiveCaptureError: On transport failure, a non-2xx answer, or a
                body that is not a successful result.
        """
        url = f"{self.base_url}{self.ENDPOINT}"
        parts = [("files", (name, data, content_type)) for name, data, content_type in files]

        try:
            response = self._session.post(url, files=parts, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise LiveCaptureError(f"Live-capture service unreachable: {e}") from e

        if not response.ok:
            raise LiveCaptureError(
                f"Live-capture service error: {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise LiveCaptureError(f"Live-capture service returned invalid JSON: {e}") from e

        if not isinstance(data, dict) or data.get("status") != "success":
            raise LiveCaptureError(f"Unexpected live-capture response: {data!r}")

        missing = [key for key in ("jpg_url", "mov_url", "width", "height") if key not in data]
        if missing:
            raise LiveCaptureError(f"Live-capture response missing {', '.join(missing)}")

        logger.info(f"Live-capture service merged {len(files)} files")
        return {
            **data,
            "jpg_url": self.absolute_url(data["jpg_url"]),
            "mov_url": self.absolute_url(data["mov_url"]),
        }

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()
