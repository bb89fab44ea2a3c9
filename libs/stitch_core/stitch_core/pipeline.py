import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .compositor import compose, encode_jpeg
from .errors import EmptyInputError
from .export import ResourceStore, MemoryResourceStore, export_result
from .layout import plan_layout
from .loader import load_images, release_images
from .metadata import MetadataCodec, transplant
from .models import SourceImage, StitchResult
from .surface import PillowSurface, RasterSurface

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLANNING = "planning"
    COMPOSITING = "compositing"
    ENCODING = "encoding"
    METADATA_TRANSPLANT = "metadata_transplant"
    EXPORTING = "exporting"
    DONE = "done"
    FAILED = "failed"


class StitchPipeline:
    """
    One stitch run: load, plan, compose, encode, transplant EXIF, export.

    Instances are single-use; ``stitch_images`` creates a fresh one per call
    so concurrent requests share no mutable state.
    """

    def __init__(
        self,
        codec: Optional[MetadataCodec] = None,
        store: Optional[ResourceStore] = None,
        surface_factory: Callable[[], RasterSurface] = PillowSurface,
        max_workers: Optional[int] = None,
    ):
        self.codec = codec
        self.store = store if store is not None else MemoryResourceStore()
        self.surface_factory = surface_factory
        self.max_workers = max_workers
        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [PipelineState.IDLE]

    def _enter(self, state: PipelineState) -> None:
        logger.debug(f"Stitch pipeline: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def run(self, files: Sequence[Tuple[str, bytes]]) -> StitchResult:
        """
        Stitch ``files`` (ordered ``(filename, bytes)`` pairs) into one JPEG.

        Raises:
            EmptyInputError, DecodeError, SurfaceError, EncodeError, ExportError:
                The request failed; every acquired resource has been released.
        """
        if self.state is not PipelineState.IDLE:
            raise RuntimeError("StitchPipeline instances can only run once")

        images: List[SourceImage] = []
        try:
            self._enter(PipelineState.LOADING)
            if not files:
                raise EmptyInputError("No images to stitch")
            images = load_images(files, max_workers=self.max_workers)

            self._enter(PipelineState.PLANNING)
            plan = plan_layout(images)

            self._enter(PipelineState.COMPOSITING)
            with compose(plan, self.surface_factory) as surface:
                self._enter(PipelineState.ENCODING)
                encoded = encode_jpeg(surface)

            self._enter(PipelineState.METADATA_TRANSPLANT)
            outcome = transplant(
                encoded,
                files[0][1],
                codec=self.codec,
                size=(plan.target_width, plan.canvas_height),
            )

            self._enter(PipelineState.EXPORTING)
            result = export_result(
                outcome.data,
                plan.target_width,
                plan.canvas_height,
                self.store,
                handles=[image.handle for image in images],
                metadata_transplanted=outcome.transplanted,
                notice=outcome.notice,
            )
        except Exception as e:
            logger.error(f"Stitch failed during {self.state.value}: {e}")
            self._enter(PipelineState.FAILED)
            raise
        finally:
            release_images(images)

        self._enter(PipelineState.DONE)
        logger.info(
            f"Stitched {len(files)} images into {result.width}x{result.height}"
        )
        return result


def stitch_images(
    files: Sequence[Tuple[str, bytes]],
    codec: Optional[MetadataCodec] = None,
    store: Optional[ResourceStore] = None,
    surface_factory: Callable[[], RasterSurface] = PillowSurface,
    max_workers: Optional[int] = None,
) -> StitchResult:
    """Stitch ordered ``(filename, bytes)`` pairs vertically; see StitchPipeline."""
    pipeline = StitchPipeline(
        codec=codec,
        store=store,
        surface_factory=surface_factory,
        max_workers=max_workers,
    )
    return pipeline.run(files)
