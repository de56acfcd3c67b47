"""Factory for building a fully wired editing session."""

from typing import Optional

from nanovision.config.settings import Settings
from nanovision.services.codec_service.codec import BinaryCodec
from nanovision.services.codec_service.display_handles import DisplayHandleRegistry
from nanovision.services.edit_service.client import RemoteEditClient
from nanovision.services.edit_service.main import ImageEditing
from nanovision.services.session_service.session import Session


class EditingSession:
    """Expose a session provider so the app never relies on module globals."""

    @staticmethod
    def build(settings: Settings, client: Optional[RemoteEditClient] = None) -> Session:
        """Create a session with its own handle registry, codec and client."""
        codec = BinaryCodec(DisplayHandleRegistry())
        if client is None:
            client = ImageEditing.get_client(settings, codec)
        return Session(
            client=client,
            codec=codec,
            progress=settings.progress,
            download_prefix=settings.download_prefix,
        )
