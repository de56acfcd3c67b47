"""In-memory leases that let the view render image bytes without copying them."""

from __future__ import annotations

from uuid import uuid4
from typing import Dict, Optional, Tuple

from nanovision.utility.logger import AppLogger

logger = AppLogger.get_logger(__name__)


class DisplayHandle:
    """A lease on bytes held by a DisplayHandleRegistry.

    Release exactly once, when the owning asset is replaced or discarded.
    Usable as a context manager for scoped ownership.
    """

    def __init__(self, registry: "DisplayHandleRegistry", handle_id: str, media_type: str, size: int):
        self._registry = registry
        self.id = handle_id
        self.media_type = media_type
        self.size = size
        self.released = False

    def release(self) -> bool:
        """Return the lease to the registry. A second release is refused."""
        if self.released:
            logger.warning(f"Display handle {self.id} was already released")
            return False
        self.released = True
        self._registry._drop(self.id)
        return True

    def __enter__(self) -> "DisplayHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.released:
            self.release()

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"DisplayHandle({self.id!r}, {self.media_type!r}, {state})"


class DisplayHandleRegistry:
    """Keeps the bytes behind every live display handle of one session."""

    def __init__(self) -> None:
        self._live: Dict[str, Tuple[bytes, str]] = {}

    def acquire(self, raw_bytes: bytes, media_type: str) -> DisplayHandle:
        """Register bytes for display and hand back the lease."""
        handle_id = f"blob:{uuid4().hex}"
        self._live[handle_id] = (raw_bytes, media_type)
        logger.debug(f"Acquired display handle {handle_id} ({len(raw_bytes)} bytes)")
        return DisplayHandle(self, handle_id, media_type, len(raw_bytes))

    def _drop(self, handle_id: str) -> None:
        if self._live.pop(handle_id, None) is None:
            logger.warning(f"Display handle {handle_id} was not registered")
        else:
            logger.debug(f"Released display handle {handle_id}")

    def resolve(self, handle_id: str) -> Optional[Tuple[bytes, str]]:
        """Return (bytes, media_type) for a live handle, or None."""
        return self._live.get(handle_id)

    @property
    def live_count(self) -> int:
        return len(self._live)

    def clear(self) -> int:
        """Forget every live lease (session teardown). Returns how many leaked."""
        leaked = len(self._live)
        if leaked:
            logger.warning(f"Dropping {leaked} display handle(s) that were never released")
        self._live.clear()
        return leaked
