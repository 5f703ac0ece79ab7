"""
Configuration module for Privote.

This module provides Pydantic models for configuration validation and
utilities for loading and saving configuration from YAML (or the JSON
settings file written by the desktop shell) with environment overrides.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


logger = logging.getLogger(__name__)


PRIVOTE_HOME = Path.home() / ".privote"


def default_resources_dir() -> Path:
    """
    Locate the directory holding bundled resources (engine binary, lib/, models/).

    Frozen (PyInstaller) builds keep resources next to the bundle; development
    checkouts use the project root. PRIVOTE_RESOURCES_PATH overrides both.
    """
    override = os.environ.get("PRIVOTE_RESOURCES_PATH")
    if override:
        return Path(override)
    if getattr(sys, "frozen", False):
        return Path(getattr(sys, "_MEIPASS", Path(sys.executable).parent))
    return Path(__file__).resolve().parent.parent.parent


class TranscriptionConfig(BaseModel):
    """Configuration for the transcription module."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        protected_namespaces=(),
    )

    model_dir: Path = Field(
        default=PRIVOTE_HOME / "models",
        description="Directory where whisper models are stored"
    )

    resources_dir: Path = Field(
        default_factory=default_resources_dir,
        description="Directory holding the bundled whisper-cli binary and its lib/ folder"
    )

    engine_path: Optional[Path] = Field(
        default=None,
        description="Explicit path to the whisper.cpp executable"
    )

    language: str = Field(
        default="en",
        description="Language code (ISO 639-1) passed to the engine"
    )

    threads: int = Field(
        default=4,
        ge=1,
        description="CPU threads the engine may use"
    )

    timeout_seconds: Optional[float] = Field(
        default=1800.0,
        description="Kill the engine after this many seconds (0 or null disables)"
    )

    output_limit_bytes: int = Field(
        default=1024 * 1024,
        ge=1024,
        description="Maximum bytes of stdout/stderr kept per stream"
    )

    @field_validator("timeout_seconds")
    @classmethod
    def disable_zero_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Treat a zero or negative timeout as 'no timeout'."""
        if v is not None and v <= 0:
            return None
        return v


class AppConfig(BaseModel):
    """Main application configuration.

    The top-level keys mirror the desktop settings file; only
    ``whisper_model`` and the transcription section are used by the core.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",  # The desktop shell stores keys we don't own
        protected_namespaces=(),
    )

    worker_url: str = Field(
        default="",
        description="URL of the summarization worker"
    )

    api_key: str = Field(
        default="",
        description="API key for the summarization worker"
    )

    whisper_model: str = Field(
        default="base.en",
        description="Active whisper model id or file name"
    )

    auto_upload: bool = Field(
        default=True,
        description="Upload transcripts automatically when transcription completes"
    )

    keep_local_copies: bool = Field(
        default=True,
        description="Keep recordings on disk after upload"
    )

    data_dir: Path = Field(
        default=PRIVOTE_HOME / "data",
        description="Directory for application data"
    )

    recordings_dir: Path = Field(
        default=PRIVOTE_HOME / "recordings",
        description="Directory where recordings are saved"
    )

    transcription: TranscriptionConfig = Field(
        default_factory=TranscriptionConfig,
        description="Transcription module configuration"
    )


_SECTIONS = ("transcription",)


def _coerce_env_value(value: str) -> Any:
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    if value.isdigit():
        return int(value)
    return value


def _read_config_file(config_file: Path) -> Dict[str, Any]:
    # JSON is valid YAML, so settings.json loads through the same path
    with open(config_file, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top of {config_file}")
    return data


def load_config(config_path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Load application configuration from a file with environment variable overrides.

    Args:
        config_path: Path to configuration file (optional)

    Returns:
        Validated AppConfig instance

    If config_path is None, looks for config in standard locations:
    1. ./privote.yaml
    2. ~/.privote/config.yaml
    3. ~/.privote/settings.json
    4. If not found, returns default configuration
    """
    config_data: Dict[str, Any] = {}

    standard_locations = [
        Path.cwd() / "privote.yaml",
        Path.cwd() / "privote.yml",
        PRIVOTE_HOME / "config.yaml",
        PRIVOTE_HOME / "config.yml",
        PRIVOTE_HOME / "settings.json",
    ]

    if config_path:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.warning(f"Config file not found: {config_file}")
        else:
            try:
                config_data = _read_config_file(config_file)
                logger.debug(f"Loaded configuration from {config_file}")
            except Exception as e:
                logger.error(f"Error loading config from {config_file}: {e}")
    else:
        for loc in standard_locations:
            if loc.exists():
                try:
                    config_data = _read_config_file(loc)
                    logger.debug(f"Loaded configuration from {loc}")
                    break
                except Exception as e:
                    logger.error(f"Error loading config from {loc}: {e}")

    # Override with environment variables
    # Format: PRIVOTE_SECTION_KEY=value (e.g. PRIVOTE_TRANSCRIPTION_THREADS=8)
    # or PRIVOTE_KEY=value for top-level keys (e.g. PRIVOTE_WHISPER_MODEL=small.en)
    env_prefix = "PRIVOTE_"
    for env_var, value in os.environ.items():
        if not env_var.startswith(env_prefix) or env_var == "PRIVOTE_RESOURCES_PATH":
            continue
        name = env_var[len(env_prefix):].lower()
        section, _, key = name.partition("_")
        coerced = _coerce_env_value(value)
        if section in _SECTIONS and key:
            nested = config_data.get(section)
            if not isinstance(nested, dict):
                nested = {}
                config_data[section] = nested
            nested[key] = coerced
            logger.debug(f"Config override from environment: {section}.{key}={coerced}")
        else:
            config_data[name] = coerced
            logger.debug(f"Config override from environment: {name}={coerced}")

    try:
        return AppConfig.model_validate(config_data)
    except Exception as e:
        logger.error(f"Error validating configuration: {e}")
        logger.warning("Falling back to default configuration")
        return AppConfig()


def save_config(config: AppConfig, config_path: Optional[Union[str, Path]] = None) -> bool:
    """
    Save configuration to a YAML file.

    Args:
        config: AppConfig instance to save
        config_path: Path to save configuration to

    Returns:
        True if successful, False otherwise

    If config_path is None, saves to ~/.privote/config.yaml
    """
    if config_path is None:
        PRIVOTE_HOME.mkdir(parents=True, exist_ok=True)
        config_path = PRIVOTE_HOME / "config.yaml"
    else:
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        config_dict = config.model_dump(mode="json")
        with open(config_path, "w") as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
        logger.info(f"Configuration saved to {config_path}")
        return True
    except Exception as e:
        logger.error(f"Error saving configuration to {config_path}: {e}")
        return False
