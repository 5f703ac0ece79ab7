"""
Core module for Privote.

This module provides:
- Configuration handling and validation
- Data models shared by the audio and transcription modules
- The pipeline controller (privote.core.app), imported directly by callers
"""

from privote.core.config import AppConfig, load_config, save_config
from privote.core.models import (
    AudioAsset,
    ErrorKind,
    ModelDescriptor,
    ModelState,
    Segment,
    TranscriptionResult,
)

__all__ = [
    "AppConfig",
    "load_config",
    "save_config",
    "AudioAsset",
    "ErrorKind",
    "ModelDescriptor",
    "ModelState",
    "Segment",
    "TranscriptionResult",
]
