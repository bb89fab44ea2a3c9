class StitchError(Exception):
    """Base exception for failures of a stitch request."""


class EmptyInputError(StitchError):
    """No images were supplied."""


class DecodeError(StitchError):
    """A source file could not be decoded into a raster."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Could not decode {filename}: {reason}")


class SurfaceError(StitchError):
    """The drawing surface could not be allocated."""


class EncodeError(StitchError):
    """The composed raster could not be serialized to image bytes."""


class MetadataError(StitchError):
    """EXIF metadata could not be extracted, serialized or injected.

    Always recovered inside the transplanter; never aborts a request.
    """


class ExportError(StitchError):
    """The final bytes could not be wrapped into a retrievable resource."""
