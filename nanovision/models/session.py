"""Models describing the editing session as seen by the presentation layer."""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class EditStatus(str, Enum):
    """Lifecycle of the active edit request."""

    IDLE = "idle"
    UPLOADING = "uploading"
    GENERATING = "generating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class AssetView(BaseModel):
    """Display metadata for an image held by the session."""

    handle: str
    media_type: str
    size_bytes: int
    filename: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class FailureView(BaseModel):
    """User-facing description of the last failure."""

    error_type: str
    message: str
    details: Optional[Dict[str, Any]] = None


class SessionSnapshot(BaseModel):
    """Everything the view needs to render the current session."""

    status: EditStatus = EditStatus.IDLE
    instruction: str = ""
    progress: float = 0.0
    original: Optional[AssetView] = None
    generated: Optional[AssetView] = None
    failure: Optional[FailureView] = None
    can_submit: bool = False


class InstructionRequest(BaseModel):
    """Payload for updating the instruction text."""

    instruction: str = ""


class SubmitResponse(BaseModel):
    """Result of a submit action: whether it started and the new snapshot."""

    accepted: bool
    session: SessionSnapshot = Field(default_factory=SessionSnapshot)
