"""
vocalog.config - YAML config loading and validation.

Handles loading vocalog.yaml from the base storage directory and validating
all parameters. A missing file means defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from vocalog.exceptions import ConfigError

CONFIG_FILENAME = "vocalog.yaml"

DEFAULT_MODEL_URL = (
    "https://huggingface.co/ggerganov/whisper.cpp/resolve/main/ggml-small.bin?download=1"
)


class VocalogConfig(BaseModel):
    """Resolved configuration for a Vocalog storage directory."""

    model_filename: str = "ggml-small.bin"
    model_url: str = DEFAULT_MODEL_URL
    bundled_model_relative_path: str = "models/ggml-small.bin"
    resource_dirs: list[Path] = Field(default_factory=list)

    download_chunk_size: int = Field(default=64 * 1024, gt=0)

    whisper_threads: int | None = Field(default=None, gt=0)
    window_seconds: float = Field(default=30.0, gt=0.0)

    default_language: str = "en"

    @field_validator("model_filename")
    @classmethod
    def validate_model_filename(cls, v: str) -> str:
        if not v.strip() or "/" in v or "\\" in v:
            raise ValueError("model_filename must be a bare file name")
        return v.strip()

    @field_validator("model_url")
    @classmethod
    def validate_model_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("model_url must be an http(s) URL")
        return v

    @field_validator("default_language")
    @classmethod
    def validate_default_language(cls, v: str) -> str:
        valid = {"en", "zh"}
        if v not in valid:
            raise ValueError(f"default_language must be one of: {valid}")
        return v


def default_base_dir() -> Path:
    """Return the storage directory: $VOCALOG_HOME or ~/.local/share/vocalog."""
    override = os.getenv("VOCALOG_HOME", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "share" / "vocalog"


def load_config(base_dir: Path) -> VocalogConfig:
    """Load and validate configuration from a base directory.

    Raises:
        ConfigError: If the file is not valid YAML or fails validation
    """
    config_file = base_dir / CONFIG_FILENAME
    if not config_file.exists():
        return VocalogConfig()

    try:
        with open(config_file, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError(f"{config_file} must contain a mapping")

    try:
        return VocalogConfig(**raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_file}: {e}") from e


def write_config(config: dict[str, Any], path: Path) -> None:
    """Write configuration to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
