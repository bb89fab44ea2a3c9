import pytest
import struct
from io import BytesIO
from unittest.mock import patch

import piexif
from PIL import Image

from stitch_core.errors import MetadataError
from stitch_core.metadata import (
    EXIF_HEADER,
    MetadataCodec,
    PiexifCodec,
    normalize_metadata,
    read_metadata,
    retarget_metadata,
    splice_exif_segment,
    transplant,
)


def _jpeg(width=40, height=30, color="red", exif_dict=None):
    buffer = BytesIO()
    kwargs = {"exif": piexif.dump(exif_dict)} if exif_dict else {}
    Image.new("RGB", (width, height), color=color).save(buffer, "JPEG", **kwargs)
    return buffer.getvalue()


def _png(width=40, height=30):
    buffer = BytesIO()
    Image.new("RGBA", (width, height), color=(0, 255, 0, 128)).save(buffer, "PNG")
    return buffer.getvalue()


def _app1(segment):
    return b"\xff\xe1" + struct.pack(">H", len(segment) + 2) + segment


CANON_EXIF = {
    "0th": {
        piexif.ImageIFD.Make: b"Canon",
        piexif.ImageIFD.Model: b"EOS R5",
        piexif.ImageIFD.Orientation: 6,
    },
    "Exif": {
        piexif.ExifIFD.DateTimeOriginal: b"2025:06:10 14:30:00",
        piexif.ExifIFD.PixelXDimension: 40,
        piexif.ExifIFD.PixelYDimension: 30,
    },
    "GPS": {
        piexif.GPSIFD.GPSLatitudeRef: b"N",
        piexif.GPSIFD.GPSLatitude: ((37, 1), (46, 1), (1234, 100)),
    },
}


class FakeCodec(MetadataCodec):
    """Codec that records calls and returns canned values."""

    def __init__(self, parsed=None, segment=EXIF_HEADER + b"fake", parse_error=None):
        self.parsed = parsed
        self.segment = segment
        self.parse_error = parse_error
        self.calls = []

    def parse(self, data):
        self.calls.append("parse")
        if self.parse_error:
            raise self.parse_error
        return self.parsed

    def serialize(self, metadata):
        self.calls.append("serialize")
        return self.segment

    def inject(self, data, segment):
        self.calls.append("inject")
        return data + segment


class TestPiexifCodecParse:
    def test_reads_tags_from_jpeg(self):
        metadata = PiexifCodec().parse(_jpeg(exif_dict=CANON_EXIF))

        assert metadata["0th"][piexif.ImageIFD.Make] == b"Canon"
        assert metadata["Exif"][piexif.ExifIFD.DateTimeOriginal] == b"2025:06:10 14:30:00"
        assert metadata["GPS"][piexif.GPSIFD.GPSLatitudeRef] == b"N"

    def test_jpeg_without_exif(self):
        assert PiexifCodec().parse(_jpeg()) is None

    def test_png_has_no_container(self):
        assert PiexifCodec().parse(_png()) is None

    def test_corrupt_segment(self):
        """An APP1 Exif segment with a broken TIFF header is a MetadataError."""
        broken = splice_exif_segment(_jpeg(), EXIF_HEADER + b"XX\x00\x2a\x00\x00")

        with pytest.raises(MetadataError):
            PiexifCodec().parse(broken)


class TestNormalizeMetadata:
    @pytest.mark.parametrize(
        "parsed",
        [None, "null", {}, {"0th": {}, "Exif": {}, "GPS": {}, "Interop": {}, "1st": {}, "thumbnail": None}],
    )
    def test_no_data_means_absent(self, parsed):
        assert normalize_metadata(parsed) is None

    def test_fills_missing_ifds(self):
        metadata = normalize_metadata({"0th": {271: b"Canon"}})

        assert metadata["0th"] == {271: b"Canon"}
        assert metadata["Exif"] == {}
        assert metadata["1st"] == {}
        assert metadata["thumbnail"] is None


class TestPiexifCodecSerialize:
    def test_segment_starts_with_exif_identifier(self):
        segment = PiexifCodec().serialize(normalize_metadata(CANON_EXIF))

        assert segment.startswith(EXIF_HEADER)

    def test_drops_thumbnail_when_it_cannot_be_written(self):
        metadata = normalize_metadata(
            {"0th": {piexif.ImageIFD.Make: b"Canon"}, "1st": {piexif.ImageIFD.Orientation: 1}, "thumbnail": b"junk"}
        )

        with patch(
            "stitch_core.metadata.piexif.dump",
            side_effect=[ValueError("bad thumbnail"), EXIF_HEADER + b"ok"],
        ) as mock_dump:
            segment = PiexifCodec().serialize(metadata)

        assert segment == EXIF_HEADER + b"ok"
        retried = mock_dump.call_args_list[1][0][0]
        assert "1st" not in retried
        assert "thumbnail" not in retried

    def test_serialize_failure_without_thumbnail(self):
        with patch("stitch_core.metadata.piexif.dump", side_effect=ValueError("bad tag")):
            with pytest.raises(MetadataError):
                PiexifCodec().serialize({"0th": {271: b"Canon"}})


class TestSpliceExifSegment:
    def test_inserts_after_jfif_and_keeps_other_segments(self):
        """Only the new APP1 segment is added; every other byte is unchanged."""
        encoded = _jpeg()
        segment = PiexifCodec().serialize(normalize_metadata(CANON_EXIF))
        app1 = _app1(segment)

        spliced = splice_exif_segment(encoded, segment)

        assert spliced.replace(app1, b"", 1) == encoded
        jfif = spliced.find(b"\xff\xe0")
        assert jfif == 2
        assert jfif < spliced.find(app1)

    def test_replaces_existing_exif(self):
        source = _jpeg(exif_dict={"0th": {piexif.ImageIFD.Make: b"Nikon"}})
        segment = PiexifCodec().serialize(normalize_metadata({"0th": {piexif.ImageIFD.Make: b"Canon"}}))

        spliced = splice_exif_segment(source, segment)

        assert spliced.count(EXIF_HEADER) == 1
        assert read_metadata(spliced)["0th"][piexif.ImageIFD.Make] == b"Canon"

    def test_output_still_decodes(self):
        segment = PiexifCodec().serialize(normalize_metadata(CANON_EXIF))

        spliced = splice_exif_segment(_jpeg(40, 30), segment)

        with Image.open(BytesIO(spliced)) as img:
            img.load()
            assert img.size == (40, 30)

    def test_rejects_non_jpeg_target(self):
        with pytest.raises(MetadataError):
            splice_exif_segment(_png(), EXIF_HEADER + b"data")

    def test_rejects_segment_without_identifier(self):
        with pytest.raises(MetadataError):
            splice_exif_segment(_jpeg(), b"II*\x00")

    def test_rejects_oversized_segment(self):
        with pytest.raises(MetadataError):
            splice_exif_segment(_jpeg(), EXIF_HEADER + b"\x00" * 0xFFFF)

    def test_rejects_truncated_header(self):
        encoded = _jpeg()

        with pytest.raises(MetadataError):
            splice_exif_segment(encoded[:10], EXIF_HEADER + b"data")


class TestRetargetMetadata:
    def test_updates_orientation_and_dimensions(self):
        metadata = normalize_metadata(CANON_EXIF)

        retarget_metadata(metadata, 1080, 5000)

        assert metadata["0th"][piexif.ImageIFD.Orientation] == 1
        assert metadata["Exif"][piexif.ExifIFD.PixelXDimension] == 1080
        assert metadata["Exif"][piexif.ExifIFD.PixelYDimension] == 5000
        assert metadata["0th"][piexif.ImageIFD.Make] == b"Canon"

    def test_does_not_add_missing_tags(self):
        metadata = normalize_metadata({"0th": {piexif.ImageIFD.Make: b"Canon"}})

        retarget_metadata(metadata, 10, 10)

        assert piexif.ImageIFD.Orientation not in metadata["0th"]
        assert metadata["Exif"] == {}


class TestTransplant:
    def test_copies_tags_into_composite(self):
        composite = _jpeg(60, 90, color="blue")

        outcome = transplant(composite, _jpeg(exif_dict=CANON_EXIF), size=(60, 90))

        assert outcome.transplanted
        assert outcome.notice is None
        metadata = read_metadata(outcome.data)
        assert metadata["0th"][piexif.ImageIFD.Make] == b"Canon"
        assert metadata["GPS"][piexif.GPSIFD.GPSLatitude] == ((37, 1), (46, 1), (1234, 100))
        assert metadata["Exif"][piexif.ExifIFD.PixelYDimension] == 90

    def test_source_without_metadata_is_a_no_op(self):
        composite = _jpeg()

        outcome = transplant(composite, _png())

        assert outcome.data is composite
        assert not outcome.transplanted
        assert outcome.notice is None

    def test_no_data_sentinel_skips_serialization(self):
        codec = FakeCodec(parsed="null")

        outcome = transplant(b"\xff\xd8composite", b"source", codec=codec)

        assert outcome.data == b"\xff\xd8composite"
        assert codec.calls == ["parse"]

    def test_uses_injected_codec(self):
        codec = FakeCodec(parsed={"0th": {271: b"Canon"}})

        outcome = transplant(b"composite", b"source", codec=codec)

        assert outcome.transplanted
        assert outcome.data == b"composite" + EXIF_HEADER + b"fake"
        assert codec.calls == ["parse", "serialize", "inject"]

    def test_failure_degrades_without_raising(self, caplog):
        """Parser errors are logged and the composite is returned unchanged."""
        codec = FakeCodec(parse_error=MetadataError("Malformed EXIF segment"))

        with caplog.at_level("WARNING", logger="stitch_core.metadata"):
            outcome = transplant(b"composite", b"source", codec=codec)

        assert outcome.data == b"composite"
        assert not outcome.transplanted
        assert "could not be copied" in outcome.notice
        assert "Malformed EXIF segment" in caplog.text

    def test_unexpected_errors_are_contained(self):
        codec = FakeCodec(parse_error=RuntimeError("codec crashed"))

        outcome = transplant(b"composite", b"source", codec=codec)

        assert outcome.data == b"composite"
        assert outcome.notice is not None

    def test_inject_failure_keeps_composite(self):
        """A composite that is not JPEG cannot take the segment."""
        outcome = transplant(_png(), _jpeg(exif_dict=CANON_EXIF))

        assert not outcome.transplanted
        assert EXIF_HEADER not in outcome.data
