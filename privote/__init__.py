"""
Privote - local, privacy-first meeting transcription.

This package provides the transcription core of the Privote desktop
application: audio normalization, whisper.cpp invocation, output parsing
and whisper model management.
"""

__version__ = "0.1.0"
__author__ = "Privote Team"
