"""
Storage for microphone recordings.

Recordings are saved as canonical WAV files under the configured
recordings directory and are owned by the recorder; the transcription
pipeline only reads them.
"""

import base64
import datetime
import logging
import re
from pathlib import Path
from typing import List, Union

from privote.audio.normalizer import normalize_wav_bytes
from privote.core.models import AudioAsset

logger = logging.getLogger(__name__)


_DATA_URL_PREFIX = re.compile(r"^data:audio/[\w.+-]+;base64,")


def _decode_audio_data(data: Union[bytes, str]) -> bytes:
    if isinstance(data, bytes):
        return data
    return base64.b64decode(_DATA_URL_PREFIX.sub("", data))


def _timestamp() -> str:
    timestamp = datetime.datetime.now().isoformat(timespec="milliseconds")
    return re.sub(r"[:.]", "-", timestamp)


def save_recording(
    data: Union[bytes, str],
    recordings_dir: Path,
    normalize: bool = True,
) -> AudioAsset:
    """
    Write a recording to disk as 'recording-<timestamp>.wav'.

    A numeric suffix is added when that name is already taken.

    Args:
        data: Raw audio bytes or a 'data:audio/...;base64,' URL
        recordings_dir: Directory to save into (created if missing)
        normalize: Convert to canonical 16 kHz mono WAV before saving

    Returns:
        AudioAsset describing the saved file
    """
    audio = _decode_audio_data(data)
    if normalize:
        audio = normalize_wav_bytes(audio)

    recordings_dir = Path(recordings_dir)
    recordings_dir.mkdir(parents=True, exist_ok=True)

    stem = f"recording-{_timestamp()}"
    path = recordings_dir / f"{stem}.wav"
    suffix = 1
    while True:
        try:
            # Exclusive create: never overwrite a recording saved in the same millisecond
            with open(path, "xb") as f:
                f.write(audio)
            break
        except FileExistsError:
            path = recordings_dir / f"{stem}-{suffix}.wav"
            suffix += 1

    logger.info(f"Saved recording to {path} ({len(audio)} bytes)")
    return AudioAsset.from_path(path)


def list_recordings(recordings_dir: Path) -> List[AudioAsset]:
    """List saved WAV recordings, newest first."""
    recordings_dir = Path(recordings_dir)
    if not recordings_dir.exists():
        return []

    assets = [
        AudioAsset.from_path(path)
        for path in recordings_dir.iterdir()
        if path.is_file() and path.suffix == ".wav"
    ]
    return sorted(assets, key=lambda asset: asset.created_at, reverse=True)


def delete_recording(path: Union[str, Path]) -> bool:
    """Delete a recording. Returns False if the file does not exist."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"Recording not found: {path}")
        return False
    path.unlink()
    logger.info(f"Deleted recording {path}")
    return True
