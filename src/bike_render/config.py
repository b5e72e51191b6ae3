from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from rich.console import Console
from rich.logging import RichHandler

from .clients.strategies import get_strategy
from .errors import UnsupportedModelError


class OpenAIConfig(BaseModel):
    """Settings required to reach the external image-edit service."""

    api_key: str | None = Field(
        default=None,
        description="Bearer token for the image backend; only needed for non-debug renders",
    )
    model: str = Field(default="dall-e-2", description="Backend model id selecting the request strategy")
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL the strategy paths are resolved against",
    )
    timeout_seconds: float = Field(
        default=120.0,
        ge=1.0,
        le=600.0,
        description="Timeout applied to each backend request",
    )


class CatalogConfig(BaseModel):
    """Location of the accessory dataset and the mountability policy."""

    path: Path = Field(default_factory=lambda: Path("accessories_merged.json"))
    policy_path: Path | None = Field(
        default=None,
        description="Optional JSON file overriding the packaged mountability policy",
    )


class WorkerConfig(BaseModel):
    """Bounds for blocking work pushed off the event loop."""

    image_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Maximum concurrent image transcoding jobs",
    )


class OutputConfig(BaseModel):
    """Configuration for storing rendered artifacts from scripts and batches."""

    root_dir: Path = Field(default_factory=lambda: Path("output"))
    include_metadata: bool = Field(default=True, description="Persist prompt and resolution alongside images")


class AppConfig(BaseModel):
    """Top-level configuration object threaded through the render pipeline."""

    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    workers: WorkerConfig = Field(default_factory=WorkerConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def _validate_model(self) -> "AppConfig":
        try:
            get_strategy(self.openai.model)
        except UnsupportedModelError as exc:
            raise ValueError(str(exc)) from exc
        return self


def _bool_from_env(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _float_from_env(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise RuntimeError(f"Invalid float value: {value}") from exc


def _int_from_env(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer value: {value}") from exc


def load_config(dotenv_path: str | Path | None = None) -> AppConfig:
    """
    Load configuration from environment variables (optionally seeded by a .env file).

    Parameters
    ----------
    dotenv_path:
        Optional override for the .env file location. Defaults to the working directory.

    Raises
    ------
    RuntimeError
        If a value is malformed or names an unsupported backend model.
    """
    env_path = Path(dotenv_path) if dotenv_path else Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    api_key = (os.getenv("OPENAI_API_KEY") or "").strip() or None
    policy_path = os.getenv("MOUNTABILITY_POLICY_PATH")

    data = {
        "openai": {
            "api_key": api_key,
            "model": os.getenv("OPENAI_IMAGE_MODEL", "dall-e-2").strip(),
            "base_url": os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            "timeout_seconds": _float_from_env(os.getenv("OPENAI_TIMEOUT_SECONDS"), 120.0),
        },
        "catalog": {
            "path": Path(os.getenv("ACCESSORIES_PATH", "accessories_merged.json")),
            "policy_path": Path(policy_path) if policy_path else None,
        },
        "workers": {
            "image_workers": _int_from_env(os.getenv("IMAGE_WORKERS"), 4),
        },
        "output": {
            "root_dir": Path(os.getenv("OUTPUT_ROOT_DIR", "output")),
            "include_metadata": _bool_from_env(os.getenv("OUTPUT_INCLUDE_METADATA"), True),
        },
        "log_level": os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    }

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        invalid = {"/".join(str(part) for part in err["loc"]) or err["msg"] for err in exc.errors()}
        invalid_str = ", ".join(sorted(invalid))
        raise RuntimeError(f"Invalid configuration values: {invalid_str}") from exc


def configure_logging(level: str, console: Console | None = None) -> None:
    """Route log records through rich at *level*, replacing any earlier root handlers."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console)],
        force=True,
    )
