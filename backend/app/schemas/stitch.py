from typing import Optional
from pydantic import BaseModel


class StitchResponse(BaseModel):
    """Result of a vertical stitch."""

    status: str = "success"
    url: str
    width: int
    height: int
    metadata_transplanted: bool = False
    notice: Optional[str] = None


class LiveStitchResponse(BaseModel):
    """Result relayed from the live-capture service."""

    status: str
    jpg_url: str
    mov_url: str
    width: int
    height: int
