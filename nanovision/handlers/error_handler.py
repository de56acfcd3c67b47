"""Error taxonomy for the editing pipeline and mapping of provider failures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Dict

import httpx
import openai
from google.genai import errors as genai_errors
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from nanovision.utility.logger import AppLogger

logger = AppLogger.get_logger(__name__)


@dataclass(eq=False)
class ImageEditError(Exception):
    """
    Base error for every failure in the upload/edit pipeline.
    The session turns these into its Failed state; FastAPI renders the
    ones that reach the HTTP layer as JSON.
    """

    message: str
    status_code: int = 500
    error_type: str = "edit_error"
    provider: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:  # nice log output
        """Format a readable representation for logging and responses."""
        prefix = f"[{self.provider}] " if self.provider else ""
        return f"{prefix}{self.error_type}: {self.message}"


class InvalidMediaType(ImageEditError):
    """The selected file does not declare an image/* content type."""

    def __init__(self, media_type: Optional[str]) -> None:
        super().__init__(
            message="Please upload a valid image file.",
            status_code=415,
            error_type="invalid_media_type",
            details={"media_type": media_type},
        )


class CodecError(ImageEditError):
    """Reading a file or decoding a base64 payload failed."""

    def __init__(
        self, message: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(
            message=message,
            status_code=422,
            error_type="codec_error",
            details=details,
        )


class TransportError(ImageEditError):
    """The provider could not be reached or answered with a bare failure status."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: int = 503,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status_code,
            error_type="transport_error",
            provider=provider,
            details=details,
        )


class ProviderError(ImageEditError):
    """The provider reported a structured failure; its message is kept verbatim."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: int = 502,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status_code,
            error_type="provider_error",
            provider=provider,
            details=details,
        )


class NoImageInResponse(ImageEditError):
    """The provider answered successfully but no part carried image data."""

    def __init__(
        self, provider: Optional[str] = None, details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(
            message="No image data found in the response.",
            status_code=502,
            error_type="no_image_in_response",
            provider=provider,
            details=details,
        )


class NothingToDownload(ImageEditError):
    """A download was requested before any edit succeeded."""

    def __init__(self) -> None:
        super().__init__(
            message="There is no generated image to download yet.",
            status_code=409,
            error_type="nothing_to_download",
        )


class MapExceptions:
    """Translate SDK and network exceptions into the edit error taxonomy.

    Centralizes logging and the split between transport failures and
    provider-reported failures.
    """

    def __init__(self):
        """Initialize the mapper without additional configuration."""
        pass

    @staticmethod
    def _unexpected(provider: str, exc: Exception) -> TransportError:
        return TransportError(
            message=f"An unexpected error occurred while editing the image with {provider.capitalize()}.",
            provider=provider,
            status_code=500,
            details={"exception_type": exc.__class__.__name__},
        )

    def map_httpx_exception(self, exc: httpx.HTTPError, provider: str) -> TransportError:
        """Map raw httpx failures raised underneath either SDK."""
        if isinstance(exc, httpx.TimeoutException):
            return TransportError(
                message=f"{provider.capitalize()} timed out while editing the image.",
                provider=provider,
                status_code=504,
            )
        if isinstance(exc, httpx.HTTPStatusError):
            return TransportError(
                message=f"{provider.capitalize()} responded with status {exc.response.status_code}.",
                provider=provider,
                status_code=502,
                details={"status": exc.response.status_code},
            )
        return TransportError(
            message=f"Could not connect to {provider.capitalize()}. Please check network or provider status.",
            provider=provider,
            status_code=503,
        )

    def map_gemini_exception(self, exc: Exception) -> ImageEditError:
        """
        Map google-genai and network exceptions to a domain error.
        """
        if isinstance(exc, ImageEditError):
            return exc
        logger.error("Gemini error during image edit", exc_info=exc)

        if isinstance(exc, genai_errors.APIError):
            if exc.message:
                return ProviderError(
                    message=exc.message,
                    provider="gemini",
                    status_code=exc.code or 502,
                    details={"status": exc.status},
                )
            return TransportError(
                message=f"Gemini responded with status {exc.code}.",
                provider="gemini",
                status_code=502,
                details={"status": exc.status},
            )
        if isinstance(exc, httpx.HTTPError):
            return self.map_httpx_exception(exc, "gemini")

        return self._unexpected("gemini", exc)

    def map_openai_exception(self, exc: Exception) -> ImageEditError:
        """
        Map openai SDK exceptions to a domain error.
        """
        if isinstance(exc, ImageEditError):
            return exc
        logger.error("OpenAI error during image edit", exc_info=exc)

        # APITimeoutError subclasses APIConnectionError, check it first
        if isinstance(exc, openai.APITimeoutError):
            return TransportError(
                message="OpenAI timed out while editing the image.",
                provider="openai",
                status_code=504,
            )
        if isinstance(exc, openai.APIConnectionError):
            return TransportError(
                message="Could not connect to OpenAI. Please check network or OpenAI status.",
                provider="openai",
                status_code=503,
            )
        if isinstance(exc, openai.APIStatusError):
            body = exc.body if isinstance(exc.body, dict) else {}
            message = body.get("message")
            if message:
                return ProviderError(
                    message=message,
                    provider="openai",
                    status_code=exc.status_code,
                    details={"type": body.get("type"), "code": body.get("code")},
                )
            return TransportError(
                message=f"OpenAI responded with status {exc.status_code}.",
                provider="openai",
                status_code=502,
            )
        if isinstance(exc, openai.APIError):
            return ProviderError(message=exc.message, provider="openai")
        if isinstance(exc, httpx.HTTPError):
            return self.map_httpx_exception(exc, "openai")

        return self._unexpected("openai", exc)

    def map_provider_exception(self, exc: Exception, provider: str) -> ImageEditError:
        """Dispatch to the mapper matching the provider that raised."""
        if isinstance(exc, ImageEditError):
            return exc
        if provider == "gemini":
            return self.map_gemini_exception(exc)
        if provider == "openai":
            return self.map_openai_exception(exc)
        logger.error(f"{provider} error during image edit", exc_info=exc)
        if isinstance(exc, httpx.HTTPError):
            return self.map_httpx_exception(exc, provider)
        return self._unexpected(provider, exc)

    @staticmethod
    def register_exception_handlers(app: FastAPI) -> None:
        """
        Call once on the FastAPI app so edit errors render as JSON.
        """

        @app.exception_handler(ImageEditError)
        async def image_edit_error_handler(
            request: Request, exc: ImageEditError
        ) -> JSONResponse:
            logger.error(
                "ImageEditError caught by FastAPI handler",
                extra={"provider": exc.provider, "type": exc.error_type},
            )

            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "status": "error",
                    "provider": exc.provider,
                    "error_type": exc.error_type,
                    "message": exc.message,
                    "details": exc.details,
                },
            )
