"""Resolve important filesystem paths relative to the project root."""

from pathlib import Path
from nanovision.utility.logger import AppLogger

logger = AppLogger.get_logger(__name__)


class PathResolver:
    """
    Folder resolver that always returns paths relative to the project root.
    Works from any module and any working directory.
    """

    # utility -> nanovision -> project root
    PROJECT_ROOT = Path(__file__).resolve().parents[2]
    PACKAGE_ROOT = PROJECT_ROOT / "nanovision"

    DIR_MAP = {
        "root": PROJECT_ROOT,
        "config": PACKAGE_ROOT / "config",
        "settings": PACKAGE_ROOT / "config" / "settings.yml",
        "data": PROJECT_ROOT / "data",
        "logs": PROJECT_ROOT / "data" / "logs",
        "downloads": PROJECT_ROOT / "data" / "downloads",
    }

    @classmethod
    def get(cls, name: str, create: bool = True) -> Path:
        """
        Returns absolute path from name key.
        Directories are created on first lookup unless create is False.
        """
        if name not in cls.DIR_MAP:
            msg = f"Unknown directory key: '{name}'. Valid keys: {list(cls.DIR_MAP.keys())}"
            logger.error(msg)
            raise KeyError(msg)

        path = cls.DIR_MAP[name]

        if create and path.suffix == "":
            path.mkdir(parents=True, exist_ok=True)

        return path


class Finder:
    """Thin wrapper exposing resolved directories for callers.

    Delegates lookups to PathResolver while keeping a simple interface.
    """

    def __init__(self):
        """Instantiate the finder without additional configuration."""
        pass

    def get_directory(self, name: str, create: bool = True) -> Path:
        """Return a resolved directory path by logical name."""
        return PathResolver.get(name, create=create)

    def get_file(self, name: str) -> Path:
        """Return a resolved file path by logical name without touching disk."""
        return PathResolver.get(name, create=False)
