"""Base64 codec for uploaded and generated images."""

import io
import base64
import asyncio
import binascii
import inspect
from os import PathLike
from pathlib import Path
from typing import Any, Optional, Tuple, Union
from PIL import Image, UnidentifiedImageError

from nanovision.handlers.error_handler import CodecError
from nanovision.services.codec_service.display_handles import (
    DisplayHandle,
    DisplayHandleRegistry,
)
from nanovision.utility.logger import AppLogger

logger = AppLogger.get_logger(__name__)

FileSource = Union[bytes, bytearray, str, PathLike, Any]


class BinaryCodec:
    """Lossless conversion between image bytes and their base64 transport form.

    Also hands out display handles from the session's registry so rendered
    bytes are tracked until released.
    """

    def __init__(self, handles: Optional[DisplayHandleRegistry] = None):
        """Bind the codec to the registry that owns display handles."""
        self.handles = handles if handles is not None else DisplayHandleRegistry()

    @staticmethod
    def encode(file_bytes: bytes) -> str:
        """Encode raw bytes as standard base64 text."""
        return base64.b64encode(bytes(file_bytes)).decode("ascii")

    @staticmethod
    def strip_data_uri(payload: str) -> str:
        """Drop a `data:<type>;base64,` prefix if the payload carries one."""
        if not payload.startswith("data:"):
            return payload
        header, sep, body = payload.partition(",")
        if not sep or not header.endswith(";base64"):
            raise CodecError(
                "Image data URI is not base64 encoded.",
                details={"header": header[:64]},
            )
        return body

    def decode(self, payload: Union[str, bytes]) -> bytes:
        """Decode base64 text back to raw bytes, rejecting malformed input."""
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("ascii")
            except UnicodeDecodeError as e:
                raise CodecError("Image payload is not valid base64 text.") from e
        if not isinstance(payload, str):
            raise CodecError(
                "Image payload must be text.",
                details={"type": type(payload).__name__},
            )
        body = self.strip_data_uri(payload.strip())
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CodecError(f"Image payload is not valid base64: {e}") from e

    async def read_file(self, source: FileSource) -> bytes:
        """
        Read the bytes of an upload source.

        Accepts raw bytes, a filesystem path, or any object with a sync or
        async `read()` (FastAPI's UploadFile included). Read failures surface
        as CodecError.
        """
        if isinstance(source, (bytes, bytearray)):
            return bytes(source)
        try:
            if isinstance(source, (str, PathLike)):
                data = await asyncio.to_thread(Path(source).read_bytes)
            else:
                data = source.read()
                if inspect.isawaitable(data):
                    data = await data
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read upload: {e}")
            raise CodecError("Failed to process image.", details={"reason": str(e)}) from e
        if not isinstance(data, (bytes, bytearray)):
            raise CodecError(
                "Failed to process image.",
                details={"reason": f"read() returned {type(data).__name__}"},
            )
        return bytes(data)

    async def encode_file(self, source: FileSource) -> Tuple[bytes, str]:
        """Read a source and return (raw_bytes, encoded_payload)."""
        raw = await self.read_file(source)
        return raw, self.encode(raw)

    def to_display_handle(self, raw_bytes: bytes, media_type: str) -> DisplayHandle:
        """Acquire an ephemeral handle the view can render."""
        return self.handles.acquire(raw_bytes, media_type)

    @staticmethod
    def probe_dimensions(raw_bytes: bytes) -> Optional[Tuple[int, int]]:
        """Return (width, height) when Pillow can identify the image."""
        try:
            with Image.open(io.BytesIO(raw_bytes)) as img:
                return img.size
        except Image.DecompressionBombError as e:
            # oversized images are still valid; only the size probe is skipped
            logger.warning(f"Skipping dimension probe: {e}")
            return None
        except (UnidentifiedImageError, OSError, ValueError):
            return None
