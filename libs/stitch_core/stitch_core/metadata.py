"""EXIF transplant from the first source image into the composite.

The binary work is split behind ``MetadataCodec`` so the transplanter never
reaches for a global library instance:

* ``parse`` reads the tag dictionary out of a source file,
* ``serialize`` turns a dictionary back into an ``Exif\\0\\0`` payload,
* ``inject`` splices that payload into a JPEG as an APP1 segment.

``PiexifCodec`` does parsing and serialization with piexif. Injection is done
by walking the JPEG marker segments directly, because ``piexif.insert``
overwrites a leading JFIF APP0 segment instead of keeping it.
"""
import logging
import struct
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import piexif

from .errors import MetadataError
from .models import MetadataDictionary, TransplantOutcome

logger = logging.getLogger(__name__)

IFD_NAMES = ("0th", "Exif", "GPS", "Interop", "1st")
EXIF_HEADER = b"Exif\x00\x00"

SOI = b"\xff\xd8"
APP0 = 0xE0
APP1 = 0xE1
SOS = 0xDA
EOI = 0xD9
MAX_SEGMENT_LENGTH = 0xFFFF

JPEG_PREFIX = SOI
TIFF_PREFIXES = (b"II*\x00", b"MM\x00*")


class MetadataCodec(ABC):
    @abstractmethod
    def parse(self, data: bytes) -> Optional[MetadataDictionary]:
        """Return the tag dictionary embedded in ``data``, or None if there is none."""

    @abstractmethod
    def serialize(self, metadata: MetadataDictionary) -> bytes:
        """Return the ``Exif\\0\\0``-prefixed binary segment for ``metadata``."""

    @abstractmethod
    def inject(self, data: bytes, segment: bytes) -> bytes:
        """Return ``data`` with ``segment`` as its EXIF segment."""


class PiexifCodec(MetadataCodec):
    def parse(self, data: bytes) -> Optional[MetadataDictionary]:
        if not _carries_exif_container(data):
            # PNG, GIF, BMP...: piexif would treat the bytes as a file path
            logger.debug("Source format has no EXIF container")
            return None
        try:
            exif_dict = piexif.load(data)
        except (
            piexif.InvalidImageDataError,
            ValueError,
            KeyError,
            IndexError,
            struct.error,
        ) as e:
            raise MetadataError(f"Malformed EXIF segment: {e}") from e
        return normalize_metadata(exif_dict)

    def serialize(self, metadata: MetadataDictionary) -> bytes:
        try:
            return piexif.dump(metadata)
        except (ValueError, TypeError, KeyError, struct.error) as e:
            if not (metadata.get("1st") or metadata.get("thumbnail")):
                raise MetadataError(f"Could not serialize EXIF metadata: {e}") from e
            logger.warning(f"EXIF thumbnail could not be serialized, dropping it: {e}")

        stripped = {k: v for k, v in metadata.items() if k not in ("1st", "thumbnail")}
        try:
            return piexif.dump(stripped)
        except (ValueError, TypeError, KeyError, struct.error) as e:
            raise MetadataError(f"Could not serialize EXIF metadata: {e}") from e

    def inject(self, data: bytes, segment: bytes) -> bytes:
        return splice_exif_segment(data, segment)


def _carries_exif_container(data: bytes) -> bool:
    return (
        data[:2] == JPEG_PREFIX
        or data[:4] in TIFF_PREFIXES
        or (data[:4] == b"RIFF" and data[8:12] == b"WEBP")
        or data[:6] == EXIF_HEADER
    )


def normalize_metadata(exif_dict) -> Optional[MetadataDictionary]:
    """
    Map every "no data" parser response to None.

    Parsers report absence in different ways: None, an empty mapping, a
    mapping whose IFDs are all empty, or a non-mapping placeholder.
    """
    if not isinstance(exif_dict, dict):
        return None

    metadata: MetadataDictionary = {}
    for name in IFD_NAMES:
        ifd = exif_dict.get(name)
        metadata[name] = dict(ifd) if isinstance(ifd, dict) else {}

    thumbnail = exif_dict.get("thumbnail")
    metadata["thumbnail"] = thumbnail if isinstance(thumbnail, bytes) and thumbnail else None

    if not any(metadata[name] for name in IFD_NAMES):
        return None
    return metadata


def retarget_metadata(
    metadata: MetadataDictionary, width: int, height: int
) -> MetadataDictionary:
    """
    Point size and orientation tags at the composite.

    The composite is drawn from the decoded pixels as stored, so any
    orientation flag copied from the source would rotate it a second time.
    """
    zeroth = metadata.get("0th") or {}
    exif = metadata.get("Exif") or {}

    if piexif.ImageIFD.Orientation in zeroth:
        zeroth[piexif.ImageIFD.Orientation] = 1
    if piexif.ExifIFD.PixelXDimension in exif:
        exif[piexif.ExifIFD.PixelXDimension] = width
    if piexif.ExifIFD.PixelYDimension in exif:
        exif[piexif.ExifIFD.PixelYDimension] = height
    return metadata


def read_metadata(data: bytes, codec: Optional[MetadataCodec] = None) -> Optional[MetadataDictionary]:
    """Parse the EXIF dictionary of ``data``; None when it carries none."""
    codec = codec or PiexifCodec()
    return normalize_metadata(codec.parse(data))


def transplant(
    encoded: bytes,
    first_source: bytes,
    codec: Optional[MetadataCodec] = None,
    size: Optional[Tuple[int, int]] = None,
) -> TransplantOutcome:
    """
    Copy the EXIF metadata of the first source file into the encoded composite.

    Never raises. Any failure is logged as a warning and the composite is
    returned unchanged, with a notice describing what was lost.

    Args:
        encoded: JPEG bytes of the composite.
        first_source: Raw bytes of the first source image.
        codec: Metadata codec, defaults to PiexifCodec.
        size: Composite (width, height); when given, size and orientation
            tags are updated to match it.
    """
    codec = codec or PiexifCodec()
    try:
        metadata = normalize_metadata(codec.parse(first_source))
        if metadata is None:
            logger.info("First image carries no EXIF metadata, nothing to transplant")
            return TransplantOutcome(data=encoded)

        if size is not None:
            metadata = retarget_metadata(metadata, *size)

        segment = codec.serialize(metadata)
        if not segment:
            return TransplantOutcome(data=encoded)

        data = codec.inject(encoded, segment)
    except Exception as e:
        logger.warning(f"EXIF metadata not transplanted, keeping composite without it: {e}")
        return TransplantOutcome(
            data=encoded,
            notice=f"Metadata from the first image could not be copied: {e}",
        )

    logger.info(f"Transplanted {len(segment)} bytes of EXIF metadata")
    return TransplantOutcome(data=data, transplanted=True)


def _split_header_segments(data: bytes) -> Tuple[List[Tuple[int, bytes]], bytes]:
    """
    Split a JPEG into its marker segments up to the start of scan.

    Returns:
        ([(marker, raw segment bytes), ...], remainder from SOS onwards).
        The raw bytes of each segment include its marker and any fill bytes.
    """
    if data[:2] != SOI:
        raise MetadataError("Target is not a JPEG stream")

    segments: List[Tuple[int, bytes]] = []
    pos = 2
    while pos < len(data):
        start = pos
        if data[pos] != 0xFF:
            raise MetadataError(f"Expected a marker at offset {pos}")
        while pos + 1 < len(data) and data[pos + 1] == 0xFF:
            pos += 1
        if pos + 1 >= len(data):
            raise MetadataError("Truncated JPEG marker")

        marker = data[pos + 1]
        if marker in (SOS, EOI):
            return segments, data[start:]

        if pos + 4 > len(data):
            raise MetadataError("Truncated JPEG segment header")
        (length,) = struct.unpack(">H", data[pos + 2 : pos + 4])
        end = pos + 2 + length
        if length < 2 or end > len(data):
            raise MetadataError(f"Invalid length {length} for marker 0x{marker:02X}")

        segments.append((marker, data[start:end]))
        pos = end

    raise MetadataError("JPEG stream has no image data")


def _is_exif_segment(marker: int, raw: bytes) -> bool:
    return marker == APP1 and raw.lstrip(b"\xff")[3:9] == EXIF_HEADER


def splice_exif_segment(data: bytes, segment: bytes) -> bytes:
    """
    Place ``segment`` into a JPEG as its APP1 EXIF segment.

    An existing EXIF segment is replaced in place; otherwise the new one goes
    right after SOI and any leading APP0 (JFIF) segments. All other bytes are
    kept as they are.
    """
    if not segment.startswith(EXIF_HEADER):
        raise MetadataError("Segment does not start with the Exif identifier")
    if len(segment) + 2 > MAX_SEGMENT_LENGTH:
        raise MetadataError(f"EXIF segment of {len(segment)} bytes does not fit in APP1")

    app1 = b"\xff\xe1" + struct.pack(">H", len(segment) + 2) + segment
    segments, remainder = _split_header_segments(data)

    kept: List[bytes] = []
    placed = False
    for marker, raw in segments:
        if _is_exif_segment(marker, raw):
            if not placed:
                kept.append(app1)
                placed = True
            continue
        kept.append(raw)

    if not placed:
        insert_at = 0
        while insert_at < len(segments) and segments[insert_at][0] == APP0:
            insert_at += 1
        kept.insert(insert_at, app1)

    return SOI + b"".join(kept) + remainder
