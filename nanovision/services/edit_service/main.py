"""Service factory for building the remote edit client from settings."""

from nanovision.config.settings import Settings
from nanovision.services.codec_service.codec import BinaryCodec
from nanovision.services.edit_service.client import RemoteEditClient
from nanovision.services.edit_service.providers import (
    EditProvider,
    GeminiProvider,
    MockProvider,
    OpenAIProvider,
)


class ImageEditing:
    """Factory wrapper selecting the provider backend named in settings.

    Keeps application wiring minimal and lets tests swap providers.
    """

    @staticmethod
    def build_provider(settings: Settings, codec: BinaryCodec) -> EditProvider:
        """Return the provider matching `settings.provider`."""
        if settings.provider == "mock":
            return MockProvider(codec=codec)
        if settings.provider == "openai":
            return OpenAIProvider(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                codec=codec,
            )
        return GeminiProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            codec=codec,
        )

    @staticmethod
    def get_client(settings: Settings, codec: BinaryCodec) -> RemoteEditClient:
        """Provide a configured client for the session."""
        return RemoteEditClient(ImageEditing.build_provider(settings, codec))
