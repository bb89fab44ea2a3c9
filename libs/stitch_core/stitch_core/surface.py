"""Raster surfaces the compositor draws on.

A surface is allocated once per stitch request and never shared between
requests. ``PillowSurface`` is the software backend; anything implementing
``RasterSurface`` can replace it.
"""
import logging
from abc import ABC, abstractmethod
from io import BytesIO
from typing import Optional, Tuple, Union

from PIL import Image, ImageColor

from .errors import EncodeError, SurfaceError

logger = logging.getLogger(__name__)

Color = Union[str, Tuple[int, int, int]]


class RasterSurface(ABC):
    @abstractmethod
    def allocate(self, width: int, height: int) -> None:
        """Allocate a drawable area of the given size."""

    @abstractmethod
    def fill(self, color: Color) -> None:
        """Fill the whole surface with an opaque color."""

    @abstractmethod
    def draw_scaled(
        self, source: Image.Image, x: int, y: int, width: int, height: int
    ) -> None:
        """Draw ``source`` resized to ``width`` x ``height`` with its top-left at (x, y)."""

    @abstractmethod
    def encode(self, format: str, quality: int) -> bytes:
        """Serialize the surface to image bytes."""

    @abstractmethod
    def release(self) -> None:
        """Free the underlying raster."""

    def __enter__(self) -> "RasterSurface":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class PillowSurface(RasterSurface):
    """RGB surface backed by a Pillow image."""

    def __init__(self):
        self._canvas: Optional[Image.Image] = None

    @property
    def canvas(self) -> Image.Image:
        if self._canvas is None:
            raise SurfaceError("Surface has not been allocated")
        return self._canvas

    def allocate(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise SurfaceError(f"Cannot allocate a {width}x{height} surface")
        try:
            self._canvas = Image.new("RGB", (width, height))
        except (MemoryError, ValueError, OSError) as e:
            raise SurfaceError(
                f"Cannot allocate a {width}x{height} surface: {e}"
            ) from e
        logger.debug(f"Allocated {width}x{height} surface")

    def fill(self, color: Color) -> None:
        rgb = ImageColor.getrgb(color) if isinstance(color, str) else tuple(color)
        self.canvas.paste(rgb[:3], (0, 0) + self.canvas.size)

    def draw_scaled(
        self, source: Image.Image, x: int, y: int, width: int, height: int
    ) -> None:
        img = source
        # Palette images keep transparency in info, not in an alpha band
        if img.mode == "P" and "transparency" in img.info:
            img = img.convert("RGBA")
        elif img.mode not in ("RGB", "RGBA", "LA"):
            img = img.convert("RGB")

        if img.size != (width, height):
            img = img.resize((width, height), Image.Resampling.LANCZOS)

        if img.mode in ("RGBA", "LA"):
            # Composite over what is already drawn (the opaque fill)
            self.canvas.paste(img.convert("RGB"), (x, y), mask=img.split()[-1])
        else:
            self.canvas.paste(img, (x, y))

    def encode(self, format: str, quality: int) -> bytes:
        buffer = BytesIO()
        try:
            self.canvas.save(buffer, format, quality=quality, subsampling=0)
        except (OSError, ValueError, KeyError) as e:
            raise EncodeError(f"Cannot encode surface as {format}: {e}") from e
        return buffer.getvalue()

    def release(self) -> None:
        if self._canvas is not None:
            self._canvas.close()
            self._canvas = None
