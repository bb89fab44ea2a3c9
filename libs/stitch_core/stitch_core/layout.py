import logging
from typing import List, Sequence

from .errors import EmptyInputError
from .models import DrawPlanEntry, LayoutPlan, SourceImage

logger = logging.getLogger(__name__)


def plan_layout(images: Sequence[SourceImage]) -> LayoutPlan:
    """
    Plan a vertical stack where every image is scaled to the first image's width.

    Scaled heights stay fractional; only the final canvas height is rounded
    (see LayoutPlan.canvas_height). Entries keep the input order.

    Raises:
        EmptyInputError: If no images are given.
    """
    if not images:
        raise EmptyInputError("No images to stitch")

    target_width = images[0].width
    entries: List[DrawPlanEntry] = []
    total_height = 0.0

    for image in images:
        scale_factor = target_width / image.width
        scaled_height = image.height * scale_factor
        entries.append(
            DrawPlanEntry(
                image=image,
                scale_factor=scale_factor,
                scaled_height=scaled_height,
                y_offset=total_height,
            )
        )
        total_height += scaled_height

    plan = LayoutPlan(
        target_width=target_width, entries=tuple(entries), total_height=total_height
    )
    logger.debug(
        f"Planned {len(entries)} images into {plan.target_width}x{plan.canvas_height}"
    )
    return plan
