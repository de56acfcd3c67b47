"""API routes driving the single editing session."""

import io
import asyncio
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from nanovision.models.session import InstructionRequest, SessionSnapshot, SubmitResponse
from nanovision.services.session_service.session import Session
from nanovision.utility.path_finder import Finder
from nanovision.utility.logger import AppLogger

router = APIRouter(prefix="/api/session", tags=["Session"])
logger = AppLogger.get_logger(__name__)


def get_session(request: Request) -> Session:
    """Resolve the session owned by the running application."""
    return request.app.state.session


@router.get("", response_model=SessionSnapshot)
async def read_session(session: Session = Depends(get_session)) -> SessionSnapshot:
    """Return the current state for the view to render."""
    return session.snapshot()


@router.post("/upload", response_model=SessionSnapshot)
async def upload_image(
    file: UploadFile = File(...), session: Session = Depends(get_session)
) -> SessionSnapshot:
    """Replace the original image. Failures come back inside the snapshot."""
    logger.info(f"Upload received: {file.filename} ({file.content_type})")
    await session.upload(file, file.content_type, filename=file.filename)
    return session.snapshot()


@router.put("/instruction", response_model=SessionSnapshot)
async def update_instruction(
    payload: InstructionRequest, session: Session = Depends(get_session)
) -> SessionSnapshot:
    """Store the instruction text typed by the user."""
    session.set_instruction(payload.instruction)
    return session.snapshot()


@router.post("/submit", response_model=SubmitResponse)
async def submit_edit(session: Session = Depends(get_session)) -> SubmitResponse:
    """
    Start an edit. The response already reflects the Generating state;
    poll the session to follow progress and pick up the result.
    """
    task = session.submit()
    return SubmitResponse(accepted=task is not None, session=session.snapshot())


@router.post("/reset", response_model=SessionSnapshot)
async def reset_session(session: Session = Depends(get_session)) -> SessionSnapshot:
    """Drop both images and return to Idle."""
    session.reset()
    return session.snapshot()


@router.get("/display/{handle}")
async def display_image(handle: str, session: Session = Depends(get_session)):
    """Stream the bytes behind a live display handle."""
    entry = session.codec.handles.resolve(handle)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Display handle is not live",
        )
    raw_bytes, media_type = entry
    return StreamingResponse(io.BytesIO(raw_bytes), media_type=media_type)


@router.get("/download")
async def download_image(session: Session = Depends(get_session)):
    """Download the generated image as a timestamped attachment."""
    raw_bytes, media_type, filename = session.generated_image()
    return StreamingResponse(
        io.BytesIO(raw_bytes),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/export")
async def export_image(
    request: Request, session: Session = Depends(get_session)
) -> dict[str, Any]:
    """Save the generated image into the configured download directory."""
    settings = request.app.state.settings
    directory = settings.download_dir or Finder().get_directory("downloads")
    path = await asyncio.to_thread(session.export_generated, directory)
    return {"status": True, "path": str(path), "filename": path.name}
