"""Provider backends that carry one edit request to a remote image model."""

from __future__ import annotations

import io
import asyncio
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from PIL import Image, ImageOps, UnidentifiedImageError
from google import genai
from google.genai import types
from openai import AsyncOpenAI

from nanovision.models.provider import ProviderRequest, ProviderResponse, ResponsePart
from nanovision.services.codec_service.codec import BinaryCodec
from nanovision.handlers.error_handler import (
    ImageEditError,
    MapExceptions,
    ProviderError,
)
from nanovision.utility.logger import AppLogger

logger = AppLogger.get_logger(__name__)


class EditProvider(ABC):
    """One request in, one ordered list of response parts out."""

    name: str = "provider"

    @abstractmethod
    async def send(self, request: ProviderRequest) -> ProviderResponse:
        """Perform exactly one call to the provider."""
        raise NotImplementedError


class GeminiProvider(EditProvider):
    """Edits images through the google-genai async client."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash-image",
        codec: Optional[BinaryCodec] = None,
        client: Optional[genai.Client] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.codec = codec or BinaryCodec()
        self.exception = MapExceptions()
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise ProviderError(
                    message="GEMINI_API_KEY is not set.",
                    provider=self.name,
                    status_code=401,
                )
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def build_contents(self, request: ProviderRequest) -> List[types.Content]:
        """Image first, then the instruction, in a single user turn."""
        image_bytes = self.codec.decode(request.image.data)
        return [
            types.Content(
                role="user",
                parts=[
                    types.Part.from_bytes(
                        data=image_bytes, mime_type=request.image.media_type
                    ),
                    types.Part.from_text(text=request.instruction),
                ],
            )
        ]

    def parse_response(self, resp: Any) -> ProviderResponse:
        """Flatten the first candidate's parts into text and image parts."""
        feedback = getattr(resp, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback else None
        if block_reason:
            message = getattr(feedback, "block_reason_message", None) or (
                f"Request blocked by Gemini: {getattr(block_reason, 'value', block_reason)}"
            )
            raise ProviderError(
                message=message,
                provider=self.name,
                status_code=400,
                details={"block_reason": str(block_reason)},
            )

        parts: List[ResponsePart] = []
        candidates = getattr(resp, "candidates", None) or []
        if candidates:
            content = getattr(candidates[0], "content", None)
            for part in getattr(content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                data = getattr(inline, "data", None) if inline is not None else None
                if data:
                    encoded = data if isinstance(data, str) else self.codec.encode(data)
                    parts.append(
                        ResponsePart(
                            image_data=encoded,
                            media_type=getattr(inline, "mime_type", None),
                        )
                    )
                elif getattr(part, "text", None):
                    parts.append(ResponsePart(text=part.text))
        return ProviderResponse(parts=parts)

    async def send(self, request: ProviderRequest) -> ProviderResponse:
        """Send an edit request to Gemini and return its parts in order."""
        try:
            client = self._get_client()
            contents = self.build_contents(request)
            logger.info(f"Sending edit request to Gemini ({self.model})...")
            resp = await client.aio.models.generate_content(
                model=self.model, contents=contents
            )
            logger.info("Edit response received.")
        except ImageEditError:
            raise
        except Exception as e:
            raise self.exception.map_gemini_exception(e) from e
        return self.parse_response(resp)


class OpenAIProvider(EditProvider):
    """Edits images through the OpenAI images/edits endpoint."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-image-1",
        codec: Optional[BinaryCodec] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.codec = codec or BinaryCodec()
        self.exception = MapExceptions()
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ProviderError(
                    message="OPENAI_API_KEY is not set.",
                    provider=self.name,
                    status_code=401,
                )
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    def parse_response(self, result: Any) -> ProviderResponse:
        """Each returned datum becomes an optional text part and an image part."""
        parts: List[ResponsePart] = []
        for datum in getattr(result, "data", None) or []:
            revised = getattr(datum, "revised_prompt", None)
            if revised:
                parts.append(ResponsePart(text=revised))
            b64 = getattr(datum, "b64_json", None)
            if b64:
                parts.append(ResponsePart(image_data=b64, media_type="image/png"))
        return ProviderResponse(parts=parts)

    async def send(self, request: ProviderRequest) -> ProviderResponse:
        """Submit the image and prompt to OpenAI and parse the returned data."""
        try:
            client = self._get_client()
            image_bytes = self.codec.decode(request.image.data)
            subtype = request.image.media_type.split("/", 1)[-1] or "png"
            extra = {}
            if self.model.startswith("dall-e"):
                # dall-e models default to signed URLs
                extra["response_format"] = "b64_json"
            logger.info(f"Sending edit request to OpenAI ({self.model})...")
            result = await client.images.edit(
                model=self.model,
                image=(f"image.{subtype}", image_bytes, request.image.media_type),
                prompt=request.instruction,
                **extra,
            )
            logger.info("Edit response received.")
        except ImageEditError:
            raise
        except Exception as e:
            raise self.exception.map_openai_exception(e) from e
        return self.parse_response(result)


class MockProvider(EditProvider):
    """
    Offline stand-in for the remote model.

    Does NOT call any external API. Applies a simple Pillow transform picked
    from keywords in the instruction so the full edit flow can be exercised
    locally.
    """

    name = "mock"

    def __init__(self, codec: Optional[BinaryCodec] = None, delay: float = 0.0):
        self.codec = codec or BinaryCodec()
        self.delay = delay

    @staticmethod
    def pick_transform(instruction: str) -> str:
        text = instruction.lower()
        if "mirror" in text or "flip" in text:
            return "mirror"
        if "gray" in text or "grey" in text or "black and white" in text:
            return "grayscale"
        if "invert" in text or "negative" in text:
            return "invert"
        return "autocontrast"

    def apply(self, img: Image.Image, transform: str) -> Image.Image:
        img = img.convert("RGB")
        if transform == "mirror":
            return ImageOps.mirror(img)
        if transform == "grayscale":
            return ImageOps.grayscale(img)
        if transform == "invert":
            return ImageOps.invert(img)
        return ImageOps.autocontrast(img)

    async def send(self, request: ProviderRequest) -> ProviderResponse:
        """Run the transform locally and answer like a real provider would."""
        logger.info("Running mock edit (no external API call).")
        if self.delay:
            await asyncio.sleep(self.delay)
        raw = self.codec.decode(request.image.data)
        try:
            with Image.open(io.BytesIO(raw)) as img:
                transform = self.pick_transform(request.instruction)
                edited = self.apply(img, transform)
        except Image.DecompressionBombError as e:
            raise ProviderError(
                message="Mock provider cannot edit images this large.",
                provider=self.name,
                status_code=413,
            ) from e
        except (UnidentifiedImageError, OSError) as e:
            raise ProviderError(
                message="Mock provider could not read the source image.",
                provider=self.name,
                status_code=400,
            ) from e

        buf = io.BytesIO()
        edited.save(buf, format="PNG")
        return ProviderResponse(
            parts=[
                ResponsePart(text=f"Mock edit applied: {transform}."),
                ResponsePart(
                    image_data=self.codec.encode(buf.getvalue()),
                    media_type="image/png",
                ),
            ]
        )
