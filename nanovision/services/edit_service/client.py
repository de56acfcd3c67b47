"""Client performing exactly one edit exchange with the configured provider."""

from typing import List

from nanovision.models.provider import (
    EditResult,
    InlineImage,
    ProviderRequest,
    ProviderResponse,
)
from nanovision.services.edit_service.providers import EditProvider
from nanovision.handlers.error_handler import (
    ImageEditError,
    MapExceptions,
    NoImageInResponse,
)
from nanovision.utility.logger import AppLogger

logger = AppLogger.get_logger(__name__)

# The provider's output format is not negotiated; results are treated as PNG.
RESULT_MEDIA_TYPE = "image/png"


class RemoteEditClient:
    """Wraps one request/response call to an image-editing provider.

    No retries, no queuing, no caching: every call is independent.
    """

    def __init__(self, provider: EditProvider):
        """Bind the client to an explicitly constructed provider."""
        self.provider = provider
        self.exception = MapExceptions()

    @property
    def provider_name(self) -> str:
        return self.provider.name

    async def request_edit(
        self, encoded_payload: str, media_type: str, instruction: str
    ) -> EditResult:
        """Send the image and instruction, and return the first image part."""
        request = ProviderRequest(
            image=InlineImage(data=encoded_payload, media_type=media_type),
            instruction=instruction,
        )
        try:
            response = await self.provider.send(request)
        except ImageEditError:
            raise
        except Exception as e:
            raise self.exception.map_provider_exception(e, self.provider.name) from e
        return self.extract_image(response)

    def extract_image(self, response: ProviderResponse) -> EditResult:
        """Scan parts in order; text is commentary, the first image wins."""
        commentary: List[str] = []
        for part in response.parts:
            if part.has_image:
                logger.info(
                    f"Image part found after {len(commentary)} text part(s)"
                )
                return EditResult(
                    payload=part.image_data,
                    media_type=RESULT_MEDIA_TYPE,
                    commentary=commentary,
                )
            if part.text:
                logger.debug(f"Provider commentary: {part.text}")
                commentary.append(part.text)

        logger.warning("Edit response missing image data.")
        raise NoImageInResponse(
            provider=self.provider.name,
            details={"text_parts": len(commentary)},
        )
