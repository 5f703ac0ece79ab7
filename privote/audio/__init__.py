"""
Audio module for Privote: canonical WAV conversion and recording storage.
"""

from privote.audio.normalizer import normalize_file, normalize_samples, normalize_wav_bytes

__all__ = [
    "normalize_file",
    "normalize_samples",
    "normalize_wav_bytes",
]
