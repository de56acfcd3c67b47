"""Unit tests for the base64 codec and display handle leases."""

import io
import asyncio

import pytest
from PIL import Image

from nanovision.handlers.error_handler import CodecError
from nanovision.services.codec_service.codec import BinaryCodec
from nanovision.services.codec_service.display_handles import DisplayHandleRegistry


def make_image_bytes(fmt="PNG", size=(3, 2), color=(200, 10, 10)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


class TestEncodeDecode:
    def setup_method(self):
        self.codec = BinaryCodec()

    @pytest.mark.parametrize(
        "raw", [b"", b"\x00\xff\x10", make_image_bytes(), make_image_bytes("JPEG")]
    )
    def test_decode_inverts_encode(self, raw):
        assert self.codec.decode(self.codec.encode(raw)) == raw

    def test_encode_is_plain_base64_text(self):
        assert self.codec.encode(b"hat") == "aGF0"

    def test_decode_accepts_data_uri(self):
        assert self.codec.decode("data:image/png;base64,aGF0") == b"hat"

    def test_decode_accepts_ascii_bytes(self):
        assert self.codec.decode(b"aGF0") == b"hat"

    def test_decode_rejects_invalid_characters(self):
        with pytest.raises(CodecError):
            self.codec.decode("not base64 at all!")

    def test_decode_rejects_bad_padding(self):
        with pytest.raises(CodecError):
            self.codec.decode("aGF")

    def test_decode_rejects_non_base64_data_uri(self):
        with pytest.raises(CodecError):
            self.codec.decode("data:image/svg+xml,<svg/>")

    def test_decode_rejects_non_text(self):
        with pytest.raises(CodecError):
            self.codec.decode(12345)


class TestReadFile:
    def setup_method(self):
        self.codec = BinaryCodec()

    def test_reads_bytes_and_paths(self, tmp_path):
        raw = make_image_bytes()
        path = tmp_path / "photo.png"
        path.write_bytes(raw)

        assert asyncio.run(self.codec.read_file(raw)) == raw
        assert asyncio.run(self.codec.read_file(path)) == raw
        assert asyncio.run(self.codec.read_file(str(path))) == raw

    def test_reads_sync_and_async_readers(self):
        raw = make_image_bytes()

        class AsyncUpload:
            async def read(self):
                return raw

        assert asyncio.run(self.codec.read_file(io.BytesIO(raw))) == raw
        assert asyncio.run(self.codec.read_file(AsyncUpload())) == raw

    def test_missing_file_is_codec_error(self, tmp_path):
        with pytest.raises(CodecError) as info:
            asyncio.run(self.codec.read_file(tmp_path / "gone.png"))
        assert info.value.message == "Failed to process image."

    def test_reader_failure_is_codec_error(self):
        class BrokenUpload:
            async def read(self):
                raise OSError("file became unreadable")

        with pytest.raises(CodecError) as info:
            asyncio.run(self.codec.read_file(BrokenUpload()))
        assert "unreadable" in info.value.details["reason"]

    def test_encode_file_returns_raw_and_payload(self):
        raw, payload = asyncio.run(self.codec.encode_file(b"hat"))
        assert raw == b"hat"
        assert payload == "aGF0"


class TestDisplayHandles:
    def test_acquire_resolve_release(self):
        registry = DisplayHandleRegistry()
        codec = BinaryCodec(registry)
        handle = codec.to_display_handle(b"abc", "image/png")

        assert handle.id.startswith("blob:")
        assert registry.live_count == 1
        assert registry.resolve(handle.id) == (b"abc", "image/png")

        assert handle.release() is True
        assert registry.live_count == 0
        assert registry.resolve(handle.id) is None

    def test_second_release_is_refused(self):
        registry = DisplayHandleRegistry()
        handle = registry.acquire(b"abc", "image/png")
        handle.release()

        assert handle.release() is False
        assert registry.live_count == 0

    def test_scoped_lease_releases_on_exit(self):
        registry = DisplayHandleRegistry()
        with registry.acquire(b"abc", "image/png") as handle:
            assert registry.live_count == 1
        assert handle.released
        assert registry.live_count == 0

    def test_clear_reports_leaks(self):
        registry = DisplayHandleRegistry()
        registry.acquire(b"a", "image/png")
        registry.acquire(b"b", "image/png")
        assert registry.clear() == 2
        assert registry.live_count == 0


def test_probe_dimensions():
    assert BinaryCodec.probe_dimensions(make_image_bytes(size=(7, 5))) == (7, 5)
    assert BinaryCodec.probe_dimensions(b"definitely not an image") is None


def test_probe_dimensions_skips_oversized_images():
    buf = io.BytesIO()
    Image.new("1", (20000, 10000)).save(buf, format="PNG")

    assert BinaryCodec.probe_dimensions(buf.getvalue()) is None
