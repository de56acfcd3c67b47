"""Runtime settings loaded from settings.yml with environment overrides."""

import os
import yaml
from pathlib import Path
from dotenv import load_dotenv
from typing import Any, Dict, Literal, Mapping, Optional
from pydantic import BaseModel, Field, field_validator

from nanovision.utility.path_finder import Finder
from nanovision.utility.logger import AppLogger

path_finder = Finder()
env_path = path_finder.get_directory("root") / ".env"
load_dotenv(env_path)
logger = AppLogger.get_logger(__name__)

ProviderName = Literal["gemini", "openai", "mock"]


class ProgressSettings(BaseModel):
    """Shape of the cosmetic progress curve shown while an edit is running."""

    ceiling: float = 95.0
    rate: float = 0.08
    interval_seconds: float = 0.5

    @field_validator("ceiling")
    def ceiling_below_hundred(cls, value: float) -> float:
        """The estimate must never reach 100 before a real result arrives."""
        if not 0 < value < 100:
            raise ValueError("Progress ceiling must be between 0 and 100 (exclusive).")
        return value

    @field_validator("rate")
    def rate_is_fraction(cls, value: float) -> float:
        """Each tick covers a fraction of the remaining distance."""
        if not 0 < value < 1:
            raise ValueError("Progress rate must be between 0 and 1 (exclusive).")
        return value

    @field_validator("interval_seconds")
    def interval_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Progress interval must be positive.")
        return value


class Settings(BaseModel):
    """Resolved configuration for one running application."""

    provider: ProviderName = "gemini"
    gemini_model: str = "gemini-2.5-flash-image"
    gemini_api_key: Optional[str] = None
    openai_model: str = "gpt-image-1"
    openai_api_key: Optional[str] = None
    progress: ProgressSettings = Field(default_factory=ProgressSettings)
    download_prefix: str = "nanovision-edit"
    download_dir: Optional[Path] = None
    log_level: str = "INFO"
    log_to_file: bool = False
    run_mode: str = "actual"

    model_config = {"extra": "ignore"}

    @field_validator("download_prefix")
    def prefix_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Download prefix must not be empty.")
        return value.strip()


def _read_yaml(path: Path) -> Dict[str, Any]:
    """Load the settings file, returning an empty mapping when it is absent."""
    if not path.exists():
        logger.warning(f"Settings file {path} not found, using defaults")
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    return data


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(
    path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None
) -> Settings:
    """
    Build Settings from the YAML file and then apply environment overrides.

    RUN_MODE=mock forces the offline mock provider regardless of the file.
    """
    env = os.environ if env is None else env
    data = _read_yaml(path or path_finder.get_file("settings"))

    gemini = data.get("gemini") or {}
    openai = data.get("openai") or {}
    download = data.get("download") or {}
    logging_cfg = data.get("logging") or {}

    values: Dict[str, Any] = {
        "provider": data.get("provider", "gemini"),
        "gemini_model": gemini.get("model", "gemini-2.5-flash-image"),
        "openai_model": openai.get("model", "gpt-image-1"),
        "progress": data.get("progress") or {},
        "download_prefix": download.get("prefix", "nanovision-edit"),
        "download_dir": download.get("directory"),
        "log_level": logging_cfg.get("level", "INFO"),
        "log_to_file": bool(logging_cfg.get("log_to_file", False)),
    }

    if env.get("EDIT_PROVIDER"):
        values["provider"] = env["EDIT_PROVIDER"].strip().lower()
    if env.get("GEMINI_MODEL"):
        values["gemini_model"] = env["GEMINI_MODEL"]
    if env.get("OPENAI_MODEL"):
        values["openai_model"] = env["OPENAI_MODEL"]
    if env.get("DOWNLOAD_DIR"):
        values["download_dir"] = env["DOWNLOAD_DIR"]
    if env.get("LOG_LEVEL"):
        values["log_level"] = env["LOG_LEVEL"]
    if env.get("LOG_TO_FILE"):
        values["log_to_file"] = _truthy(env["LOG_TO_FILE"])

    # API_KEY is accepted as a fallback name for the Gemini key
    values["gemini_api_key"] = env.get("GEMINI_API_KEY") or env.get("API_KEY")
    values["openai_api_key"] = env.get("OPENAI_API_KEY")

    values["run_mode"] = env.get("RUN_MODE", "actual")
    if values["run_mode"] == "mock":
        values["provider"] = "mock"

    return Settings(**values)
