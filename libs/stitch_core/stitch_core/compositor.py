import logging
from typing import Callable

from .errors import SurfaceError
from .models import LayoutPlan, round_half_up
from .surface import PillowSurface, RasterSurface

logger = logging.getLogger(__name__)

BACKGROUND_COLOR = "#FFFFFF"

# JPEG keeps EXIF in a discrete APP1 segment, which the transplanter needs.
OUTPUT_FORMAT = "JPEG"
OUTPUT_QUALITY = 100
OUTPUT_MEDIA_TYPE = "image/jpeg"


def compose(
    plan: LayoutPlan, surface_factory: Callable[[], RasterSurface] = PillowSurface
) -> RasterSurface:
    """
    Draw every planned image onto a fresh white surface, top to bottom.

    Each band spans from its rounded offset to the rounded offset of the next
    one, so neighbouring images meet without gaps or overlap.

    Returns:
        The allocated surface; the caller must release it.

    Raises:
        SurfaceError: If the surface cannot be allocated or drawn on.
    """
    surface = surface_factory()
    try:
        surface.allocate(plan.target_width, plan.canvas_height)
        surface.fill(BACKGROUND_COLOR)

        for entry in plan.entries:
            top = round_half_up(entry.y_offset)
            bottom = round_half_up(entry.y_offset + entry.scaled_height)
            height = max(1, bottom - top)
            surface.draw_scaled(entry.image.raster, 0, top, plan.target_width, height)
    except SurfaceError:
        surface.release()
        raise
    except (OSError, ValueError, MemoryError) as e:
        surface.release()
        raise SurfaceError(f"Failed to draw composite: {e}") from e

    logger.info(
        f"Composed {len(plan.entries)} images into "
        f"{plan.target_width}x{plan.canvas_height}"
    )
    return surface


def encode_jpeg(surface: RasterSurface) -> bytes:
    """Encode the surface as JPEG at maximum quality."""
    return surface.encode(OUTPUT_FORMAT, OUTPUT_QUALITY)
