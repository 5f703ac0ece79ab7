"""
Transcription module for Privote.

This module runs whisper.cpp on audio files and manages the models it
needs: the catalog of known models, downloads, and locating the engine.
"""

from privote.transcription.catalog import ModelCatalog
from privote.transcription.installer import ModelInstaller
from privote.transcription.locator import EngineLocator
from privote.transcription.whisper_wrapper import TranscriptionState, WhisperTranscriber

__all__ = [
    "ModelCatalog",
    "ModelInstaller",
    "EngineLocator",
    "TranscriptionState",
    "WhisperTranscriber",
]
