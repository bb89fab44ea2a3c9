import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from PIL import Image

logger = logging.getLogger(__name__)

# IFD name ("0th", "Exif", "GPS", "Interop", "1st") -> {tag id: value},
# plus the raw "thumbnail" bytes as piexif reports them.
MetadataDictionary = Dict[str, Any]


class ImageHandle:
    """Temporary resource tied to one decoded source image."""

    def __init__(self, name: str, raster: Image.Image):
        self.name = name
        self._raster = raster
        self._released = False

    @property
    def raster(self) -> Image.Image:
        if self._released:
            raise RuntimeError(f"Image handle for {self.name} was already released")
        return self._raster

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Close the decoded raster. Safe to call more than once."""
        if self._released:
            return
        self._raster.close()
        self._released = True
        logger.debug(f"Released image handle for {self.name}")


@dataclass(frozen=True)
class SourceImage:
    name: str
    data: bytes = field(repr=False)
    handle: ImageHandle = field(repr=False)
    width: int
    height: int

    @property
    def raster(self) -> Image.Image:
        return self.handle.raster


@dataclass(frozen=True)
class DrawPlanEntry:
    image: SourceImage
    scale_factor: float
    scaled_height: float
    y_offset: float


@dataclass(frozen=True)
class LayoutPlan:
    target_width: int
    entries: Tuple[DrawPlanEntry, ...]
    total_height: float

    @property
    def canvas_height(self) -> int:
        return round_half_up(self.total_height)


@dataclass(frozen=True)
class TransplantOutcome:
    data: bytes = field(repr=False)
    transplanted: bool = False
    notice: Optional[str] = None


@dataclass(frozen=True)
class StitchResult:
    """Final composite. The caller owns ``url`` and must release it."""

    data: bytes = field(repr=False)
    url: str
    width: int
    height: int
    metadata_transplanted: bool = False
    notice: Optional[str] = None


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return int(value + 0.5)
