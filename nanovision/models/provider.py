"""Wire shapes exchanged with the remote image-editing provider."""

from pydantic import BaseModel, Field, model_validator
from typing import List, Optional


class InlineImage(BaseModel):
    """Base64 image payload with its declared MIME type."""

    data: str
    media_type: str = "image/png"


class ProviderRequest(BaseModel):
    """One logical edit request: the source image plus the instruction text."""

    image: InlineImage
    instruction: str


class ResponsePart(BaseModel):
    """A single response part, either commentary text or base64 image data."""

    text: Optional[str] = None
    image_data: Optional[str] = None
    media_type: Optional[str] = None

    @model_validator(mode="after")
    def one_kind_only(self) -> "ResponsePart":
        """A part carries text or image data, never both."""
        if self.text is not None and self.image_data is not None:
            raise ValueError("A response part cannot carry both text and image data.")
        return self

    @property
    def has_image(self) -> bool:
        return bool(self.image_data)


class ProviderResponse(BaseModel):
    """Ordered parts returned by the provider for one request."""

    parts: List[ResponsePart] = Field(default_factory=list)


class EditResult(BaseModel):
    """The image extracted from a provider response, still base64 encoded."""

    payload: str
    media_type: str = "image/png"
    commentary: List[str] = Field(default_factory=list)
