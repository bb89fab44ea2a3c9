# libs/stitch_core/stitch_core/__init__.py

from .errors import (
    StitchError,
    EmptyInputError,
    DecodeError,
    SurfaceError,
    EncodeError,
    MetadataError,
    ExportError,
)
from .models import SourceImage, DrawPlanEntry, LayoutPlan, StitchResult
from .loader import load_image, load_images
from .layout import plan_layout
from .compositor import compose, encode_jpeg
from .metadata import MetadataCodec, PiexifCodec, transplant, read_metadata
from .export import ResourceStore, MemoryResourceStore, export_result
from .pipeline import PipelineState, StitchPipeline, stitch_images

__all__ = [
    "StitchError",
    "EmptyInputError",
    "DecodeError",
    "SurfaceError",
    "EncodeError",
    "MetadataError",
    "ExportError",
    "SourceImage",
    "DrawPlanEntry",
    "LayoutPlan",
    "StitchResult",
    "load_image",
    "load_images",
    "plan_layout",
    "compose",
    "encode_jpeg",
    "MetadataCodec",
    "PiexifCodec",
    "transplant",
    "read_metadata",
    "ResourceStore",
    "MemoryResourceStore",
    "export_result",
    "PipelineState",
    "StitchPipeline",
    "stitch_images",
]
