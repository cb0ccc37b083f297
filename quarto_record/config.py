import logging
import os
from typing import List, Optional

import toml
from pydantic import BaseModel, Field, ValidationError, field_validator

from quarto_record.errors import ConfigError

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Tunables for the preview lifecycle and the capture loop.

    All durations are in seconds.
    """

    quarto_command: List[str] = Field(default_factory=lambda: ["quarto"])
    readiness_timeout: float = 60.0
    settle_delay: float = 0.5
    render_delay: float = 5.0
    terminate_timeout: float = 3.0
    sweep_grace: float = 1.0
    orphan_sweep: bool = True
    sweep_pattern: str = "quarto preview"
    screenshot_format: str = "png"
    stream_chunk_size: int = Field(default=4096, ge=1)

    class Config:
        extra = "forbid"

    @field_validator("quarto_command")
    @classmethod
    def _validate_command(cls, value: List[str]) -> List[str]:
        cleaned = [part for part in value if part.strip()]
        if not cleaned:
            raise ValueError("quarto_command must name an executable")
        return cleaned

    @field_validator("readiness_timeout", "terminate_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Timeouts must be positive")
        return value

    @field_validator("settle_delay", "render_delay", "sweep_grace")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("Delays must not be negative")
        return value

    @field_validator("screenshot_format")
    @classmethod
    def _clean_format(cls, value: str) -> str:
        cleaned = value.strip().lstrip(".").lower()
        if not cleaned:
            raise ValueError("screenshot_format must not be empty")
        return cleaned

    @field_validator("sweep_pattern")
    @classmethod
    def _validate_pattern(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("sweep_pattern must not be empty")
        return value


def load_settings(path: Optional[str] = None) -> Settings:
    """Load settings from a TOML file, or return the defaults when no file is given."""
    if path is None:
        return Settings()

    if not os.path.isfile(path):
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = toml.load(f)
    except toml.TomlDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    # Accept either a flat file or one with a [quarto_record] table
    data = data.get("quarto_record", data)

    try:
        settings = Settings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.debug(f"Loaded settings from {path}: {settings}")
    return settings
