"""Session state machine driving upload, remote edit and display."""

from __future__ import annotations

import time
import asyncio
from pathlib import Path
from dataclasses import dataclass
from typing import Any, Optional, Set, Tuple

from nanovision.config.settings import ProgressSettings
from nanovision.models.session import (
    AssetView,
    EditStatus,
    FailureView,
    SessionSnapshot,
)
from nanovision.services.codec_service.codec import BinaryCodec, FileSource
from nanovision.services.codec_service.display_handles import DisplayHandle
from nanovision.services.edit_service.client import RemoteEditClient
from nanovision.services.session_service.progress import next_estimate
from nanovision.handlers.error_handler import (
    CodecError,
    ImageEditError,
    InvalidMediaType,
    MapExceptions,
    NothingToDownload,
)
from nanovision.utility.logger import AppLogger

logger = AppLogger.get_logger(__name__)

UPLOAD_FROM = (EditStatus.IDLE, EditStatus.SUCCEEDED, EditStatus.FAILED)


def is_image_media_type(media_type: Optional[str]) -> bool:
    return bool(media_type) and media_type.strip().lower().startswith("image/")


@dataclass(eq=False)
class ImageAsset:
    """An image held by the session together with its display lease."""

    raw_bytes: bytes
    encoded_payload: str
    media_type: str
    display_handle: DisplayHandle
    filename: Optional[str] = None
    dimensions: Optional[Tuple[int, int]] = None

    def discard(self) -> None:
        """Release the display handle; the asset must not be rendered after this."""
        if not self.display_handle.released:
            self.display_handle.release()

    def view(self) -> AssetView:
        width, height = self.dimensions or (None, None)
        return AssetView(
            handle=self.display_handle.id,
            media_type=self.media_type,
            size_bytes=len(self.raw_bytes),
            filename=self.filename,
            width=width,
            height=height,
        )


@dataclass(eq=False)
class EditRequest:
    """The single active attempt of the session.

    `token` is the generation counter value the attempt was issued under;
    completions carrying an older token are ignored.
    """

    token: int
    status: EditStatus = EditStatus.IDLE
    instruction: str = ""
    source_asset: Optional[ImageAsset] = None
    progress_estimate: float = 0.0
    failure: Optional[ImageEditError] = None


class Session:
    """
    Sole owner of the editing session state.

    All mutations happen on the event loop that drives the session. User
    actions apply their transition synchronously; the file read and the
    provider call are the only awaits, and their completions only land if
    no reset, upload or submit has happened in the meantime.
    """

    def __init__(
        self,
        client: RemoteEditClient,
        codec: Optional[BinaryCodec] = None,
        progress: Optional[ProgressSettings] = None,
        download_prefix: str = "nanovision-edit",
    ):
        self.client = client
        self.codec = codec or BinaryCodec()
        self.progress_settings = progress or ProgressSettings()
        self.download_prefix = download_prefix
        self.exception = MapExceptions()

        self.original: Optional[ImageAsset] = None
        self.generated: Optional[ImageAsset] = None
        self.instruction: str = ""
        self._token = 0
        self.request = EditRequest(token=self._token)
        self._ticker: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

    # -- read side -------------------------------------------------------

    @property
    def status(self) -> EditStatus:
        return self.request.status

    @property
    def progress(self) -> float:
        return self.request.progress_estimate

    @property
    def failure(self) -> Optional[ImageEditError]:
        return self.request.failure

    @property
    def can_submit(self) -> bool:
        return (
            self.original is not None
            and bool(self.instruction.strip())
            and self.status is not EditStatus.UPLOADING
        )

    def snapshot(self) -> SessionSnapshot:
        """Render-ready view of the session."""
        failure = self.failure
        return SessionSnapshot(
            status=self.status,
            instruction=self.instruction,
            progress=self.progress,
            original=self.original.view() if self.original else None,
            generated=self.generated.view() if self.generated else None,
            failure=(
                FailureView(
                    error_type=failure.error_type,
                    message=failure.message,
                    details=failure.details,
                )
                if failure
                else None
            ),
            can_submit=self.can_submit,
        )

    # -- internals -------------------------------------------------------

    def _next_token(self) -> int:
        self._token += 1
        return self._token

    def _is_current(self, token: int) -> bool:
        return token == self._token

    def _stop_ticker(self) -> None:
        if self._ticker is not None and not self._ticker.done():
            self._ticker.cancel()
        self._ticker = None

    def _make_asset(
        self,
        raw: bytes,
        payload: str,
        media_type: str,
        filename: Optional[str] = None,
    ) -> ImageAsset:
        if not is_image_media_type(media_type):
            raise InvalidMediaType(media_type)
        dimensions = self.codec.probe_dimensions(raw)
        handle = self.codec.to_display_handle(raw, media_type)
        return ImageAsset(
            raw_bytes=raw,
            encoded_payload=payload,
            media_type=media_type,
            display_handle=handle,
            filename=filename,
            dimensions=dimensions,
        )

    @staticmethod
    def _processing_error(e: Exception) -> CodecError:
        logger.error(f"Unexpected error while processing image: {e}", exc_info=e)
        return CodecError(
            "Failed to process image.",
            details={"exception_type": e.__class__.__name__},
        )

    def _discard_generated(self) -> None:
        if self.generated is not None:
            self.generated.discard()
            self.generated = None

    def _discard_assets(self) -> None:
        self._discard_generated()
        if self.original is not None:
            self.original.discard()
            self.original = None

    def _fail(self, token: int, error: ImageEditError) -> None:
        if not self._is_current(token):
            logger.info(f"Ignoring failure of superseded request #{token}: {error}")
            return
        self._stop_ticker()
        self.request.status = EditStatus.FAILED
        self.request.failure = error
        self.request.progress_estimate = 0.0
        logger.warning(f"Request #{token} failed: {error}")

    # -- upload ----------------------------------------------------------

    async def upload(
        self, source: FileSource, media_type: Optional[str], filename: Optional[str] = None
    ) -> EditStatus:
        """
        Replace the original image with a newly selected file.

        Non-image media types are rejected before any read. On success the
        previous original and any generated image are released and the
        session returns to Idle.
        """
        if self.status not in UPLOAD_FROM:
            logger.warning(f"Upload refused while session is {self.status.value}")
            return self.status

        token = self._next_token()
        if not is_image_media_type(media_type):
            logger.warning(f"Rejected upload with media type {media_type!r}")
            self.request = EditRequest(
                token=token,
                status=EditStatus.FAILED,
                instruction=self.instruction,
                failure=InvalidMediaType(media_type),
            )
            return self.status

        self.request = EditRequest(
            token=token, status=EditStatus.UPLOADING, instruction=self.instruction
        )
        try:
            raw, payload = await self.codec.encode_file(source)
            if not self._is_current(token):
                logger.info(f"Discarding superseded upload #{token}")
                return self.status
            asset = self._make_asset(raw, payload, media_type.strip(), filename)
        except ImageEditError as e:
            self._fail(token, e)
            return self.status
        except Exception as e:
            self._fail(token, self._processing_error(e))
            return self.status

        self._discard_assets()
        self.original = asset
        self.request = EditRequest(token=token, instruction=self.instruction)
        logger.info(
            f"Uploaded {filename or 'image'} ({asset.media_type}, {len(raw)} bytes)"
        )
        return self.status

    # -- instruction / submit ----------------------------------------------

    def set_instruction(self, text: Optional[str]) -> None:
        self.instruction = text or ""

    def submit(self) -> Optional[asyncio.Task]:
        """
        Start an edit of the current original with the current instruction.

        Refused (returns None, nothing changes) without an original, with a
        blank instruction, or while an upload is being read. Otherwise the
        session enters Generating before the provider call is scheduled and
        the scheduled task is returned. A submit while another edit is in
        flight supersedes it.
        """
        if not self.can_submit:
            logger.info("Submit ignored: needs an image and a non-empty instruction")
            return None

        loop = asyncio.get_running_loop()
        token = self._next_token()
        source = self.original
        instruction = self.instruction

        self._stop_ticker()
        self.request = EditRequest(
            token=token,
            status=EditStatus.GENERATING,
            instruction=instruction,
            source_asset=source,
        )
        self._ticker = loop.create_task(self._run_ticker(token))
        task = loop.create_task(self._run_edit(token, source, instruction))
        # superseded calls keep running until the provider answers
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        logger.info(f"Edit #{token} started via {self.client.provider_name}")
        return task

    def advance_progress(self) -> float:
        """Apply one decelerating progress step while Generating."""
        if self.status is EditStatus.GENERATING:
            self.request.progress_estimate = next_estimate(
                self.request.progress_estimate,
                self.progress_settings.ceiling,
                self.progress_settings.rate,
            )
        return self.progress

    async def _run_ticker(self, token: int) -> None:
        while True:
            await asyncio.sleep(self.progress_settings.interval_seconds)
            if not self._is_current(token) or self.status is not EditStatus.GENERATING:
                return
            self.advance_progress()

    async def _run_edit(
        self, token: int, source: ImageAsset, instruction: str
    ) -> None:
        try:
            result = await self.client.request_edit(
                source.encoded_payload, source.media_type, instruction
            )
            raw = self.codec.decode(result.payload)
        except ImageEditError as e:
            self._fail(token, e)
            return
        except Exception as e:
            self._fail(
                token, self.exception.map_provider_exception(e, self.client.provider_name)
            )
            return

        if not self._is_current(token):
            logger.info(f"Discarding result of superseded edit #{token}")
            return

        try:
            asset = self._make_asset(raw, result.payload, result.media_type)
        except ImageEditError as e:
            self._fail(token, e)
            return
        except Exception as e:
            self._fail(token, self._processing_error(e))
            return

        self._discard_generated()
        self.generated = asset
        self._stop_ticker()
        self.request.status = EditStatus.SUCCEEDED
        self.request.progress_estimate = 100.0
        self.request.failure = None
        logger.info(f"Edit #{token} succeeded ({len(raw)} bytes)")

    # -- reset / teardown --------------------------------------------------

    def reset(self) -> None:
        """Return to Idle from any state, releasing both images."""
        token = self._next_token()
        self._stop_ticker()
        self._discard_assets()
        self.instruction = ""
        self.request = EditRequest(token=token)
        logger.info("Session reset")

    def close(self) -> int:
        """Tear the session down; returns the number of leaked display handles."""
        self.reset()
        return self.codec.handles.clear()

    # -- download ----------------------------------------------------------

    def download_name(self, now: Optional[float] = None) -> str:
        """Fixed prefix plus a millisecond timestamp."""
        stamp = int((time.time() if now is None else now) * 1000)
        return f"{self.download_prefix}-{stamp}.png"

    def generated_image(self) -> Tuple[bytes, str, str]:
        """Return (raw_bytes, media_type, filename) of the generated image."""
        if self.generated is None:
            raise NothingToDownload()
        return self.generated.raw_bytes, self.generated.media_type, self.download_name()

    def export_generated(self, directory: Any) -> Path:
        """Write the generated image into `directory` and return its path."""
        raw, _, filename = self.generated_image()
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / filename
        path.write_bytes(raw)
        logger.info(f"Exported generated image to {path}")
        return path
