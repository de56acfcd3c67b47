"""Tests for the edit error taxonomy, provider exception mapping and handlers."""

import httpx
import openai
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from google.genai import errors as genai_errors

from nanovision.handlers.error_handler import (
    CodecError,
    ImageEditError,
    InvalidMediaType,
    MapExceptions,
    NoImageInResponse,
    NothingToDownload,
    ProviderError,
    TransportError,
)


# --- Basic ImageEditError tests ---------------------------------------------


class TestImageEditErrorBasics:
    def test_str_representation(self):
        err = ImageEditError(
            message="Something went wrong",
            status_code=500,
            error_type="test_error",
            provider="test_provider",
            details={"foo": "bar"},
        )

        s = str(err)
        assert "[test_provider]" in s
        assert "test_error" in s
        assert "Something went wrong" in s

    def test_taxonomy_types(self):
        assert InvalidMediaType("application/pdf").error_type == "invalid_media_type"
        assert InvalidMediaType("application/pdf").details == {"media_type": "application/pdf"}
        assert CodecError("bad").error_type == "codec_error"
        assert TransportError("down").error_type == "transport_error"
        assert ProviderError("nope").error_type == "provider_error"
        assert NoImageInResponse().message == "No image data found in the response."
        assert NothingToDownload().status_code == 409

    def test_errors_are_raisable_and_hashable(self):
        with pytest.raises(ImageEditError):
            raise CodecError("broken payload")
        assert len({CodecError("a"), CodecError("a")}) == 2


# --- Gemini mapping tests ---------------------------------------------------


class TestMapGeminiExceptions:
    def setup_method(self):
        self.mapper = MapExceptions()

    def test_api_error_message_is_kept_verbatim(self):
        exc = genai_errors.ClientError(
            400,
            {
                "error": {
                    "code": 400,
                    "message": "Unable to process input image.",
                    "status": "INVALID_ARGUMENT",
                }
            },
        )
        mapped = self.mapper.map_gemini_exception(exc)

        assert isinstance(mapped, ProviderError)
        assert mapped.message == "Unable to process input image."
        assert mapped.status_code == 400
        assert mapped.provider == "gemini"
        assert mapped.details == {"status": "INVALID_ARGUMENT"}

    def test_api_error_without_message_is_transport(self):
        exc = genai_errors.ServerError(503, {})
        mapped = self.mapper.map_gemini_exception(exc)

        assert isinstance(mapped, TransportError)
        assert "503" in mapped.message

    def test_timeout(self):
        mapped = self.mapper.map_gemini_exception(httpx.ReadTimeout("slow"))

        assert isinstance(mapped, TransportError)
        assert mapped.status_code == 504
        assert "timed out" in mapped.message.lower()

    def test_connection_error(self):
        mapped = self.mapper.map_gemini_exception(httpx.ConnectError("refused"))

        assert isinstance(mapped, TransportError)
        assert mapped.status_code == 503
        assert "could not connect" in mapped.message.lower()

    def test_domain_errors_pass_through(self):
        original = NoImageInResponse(provider="gemini")
        assert self.mapper.map_gemini_exception(original) is original

    def test_unknown_exception(self):
        class CustomException(Exception):
            pass

        mapped = self.mapper.map_gemini_exception(CustomException("odd"))

        assert isinstance(mapped, TransportError)
        assert mapped.status_code == 500
        assert "unexpected error" in mapped.message.lower()
        assert mapped.details["exception_type"] == "CustomException"


# --- OpenAI mapping tests ---------------------------------------------------


class TestMapOpenAIExceptions:
    def setup_method(self):
        self.mapper = MapExceptions()
        self._req = httpx.Request("POST", "https://example.com/v1/images/edits")

    def _resp(self, status_code):
        return httpx.Response(status_code=status_code, request=self._req)

    def test_timeout_error(self):
        mapped = self.mapper.map_openai_exception(openai.APITimeoutError(self._req))

        assert isinstance(mapped, TransportError)
        assert mapped.status_code == 504

    def test_connection_error(self):
        exc = openai.APIConnectionError(message="connection issue", request=self._req)
        mapped = self.mapper.map_openai_exception(exc)

        assert isinstance(mapped, TransportError)
        assert mapped.status_code == 503

    def test_status_error_with_structured_message(self):
        exc = openai.BadRequestError(
            message="Error code: 400",
            response=self._resp(400),
            body={"message": "Invalid image file.", "type": "invalid_request_error"},
        )
        mapped = self.mapper.map_openai_exception(exc)

        assert isinstance(mapped, ProviderError)
        assert mapped.message == "Invalid image file."
        assert mapped.status_code == 400

    def test_status_error_without_body(self):
        exc = openai.InternalServerError(
            message="Error code: 500", response=self._resp(500), body=None
        )
        mapped = self.mapper.map_openai_exception(exc)

        assert isinstance(mapped, TransportError)
        assert "500" in mapped.message

    def test_dispatch_by_provider_name(self):
        exc = openai.APIConnectionError(message="x", request=self._req)
        assert isinstance(
            self.mapper.map_provider_exception(exc, "openai"), TransportError
        )
        mapped = self.mapper.map_provider_exception(ValueError("?"), "mock")
        assert isinstance(mapped, TransportError)
        assert mapped.provider == "mock"


# --- FastAPI handler integration tests -------------------------------------


def create_test_app():
    app = FastAPI()
    MapExceptions.register_exception_handlers(app)

    @app.get("/raise-provider")
    async def raise_provider():
        raise ProviderError(
            message="Simulated provider failure",
            provider="gemini",
            status_code=400,
            details={"foo": "bar"},
        )

    @app.get("/raise-download")
    async def raise_download():
        raise NothingToDownload()

    return app


class TestFastAPIExceptionHandler:
    def setup_method(self):
        self.client = TestClient(create_test_app())

    def test_provider_error_response_shape(self):
        resp = self.client.get("/raise-provider")
        assert resp.status_code == 400

        data = resp.json()
        assert data["status"] == "error"
        assert data["provider"] == "gemini"
        assert data["error_type"] == "provider_error"
        assert data["message"] == "Simulated provider failure"
        assert data["details"] == {"foo": "bar"}

    def test_download_error_response_shape(self):
        resp = self.client.get("/raise-download")
        assert resp.status_code == 409

        data = resp.json()
        assert data["error_type"] == "nothing_to_download"
        assert "details" in data
