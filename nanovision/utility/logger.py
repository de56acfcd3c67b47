"""Shared logging configuration with colored console output and file support."""

import logging
from logging import Logger
from typing import Optional, Union


# ANSI color codes for terminal
LEVEL_COLORS = {
    "DEBUG": "\033[36m",  # Cyan
    "INFO": "\033[32m",  # Green
    "WARNING": "\033[33m",  # Yellow
    "ERROR": "\033[31m",  # Red
    "CRITICAL": "\033[35m",  # Magenta
}
RESET_COLOR = "\033[0m"


class ColorFormatter(logging.Formatter):
    """
    Formatter that paints the level name according to severity.
    Only attached to the console handler.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record with a colorized, padded level name."""
        padded_level = f"{record.levelname + ':':<9}"
        color = LEVEL_COLORS.get(record.levelname, "")
        record.colored_levelname = (
            f"{color}{padded_level}{RESET_COLOR}" if color else padded_level
        )
        return super().format(record)


class AppLogger:
    """
    Central logging helper for the editing backend.

    Usage:
        # once, when the application is built
        AppLogger.init(level="INFO", log_to_file=True)

        # in any module
        logger = AppLogger.get_logger(__name__)
        logger.info("Session reset")
    """

    _configured: bool = False

    @classmethod
    def init(
        cls,
        level: Union[int, str] = logging.INFO,
        log_to_file: bool = False,
        filename: str = "nanovision.log",
    ) -> None:
        """
        Configure the root logger with a colored console handler and an
        optional file handler for warnings and above. Only runs once.
        """
        if cls._configured:
            return
        cls._configured = True

        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO

        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        # Drop handlers installed by uvicorn/basicConfig before ours
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(
            ColorFormatter("%(colored_levelname)s %(name)s | %(message)s")
        )
        root_logger.addHandler(console_handler)

        if log_to_file:
            # imported here, path_finder logs through this module
            from nanovision.utility.path_finder import Finder

            file_path = Finder().get_directory("logs") / filename
            file_handler = logging.FileHandler(file_path, encoding="utf-8")
            file_handler.setLevel(logging.WARNING)
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s | %(levelname)-8s | %(name)s | "
                    "%(filename)s:%(lineno)d | %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            root_logger.addHandler(file_handler)

    @staticmethod
    def get_logger(name: Optional[str] = None) -> Logger:
        """Get a named logger. Use this instead of logging.getLogger()."""
        return logging.getLogger(name if name is not None else __name__)
