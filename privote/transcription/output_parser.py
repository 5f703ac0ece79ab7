"""
Parsing of whisper.cpp output.

whisper-cli can leave its transcript in three places: a JSON sidecar, a
text sidecar and standard output. The first non-blank one wins, in that
order.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple

from privote.core.models import Segment

logger = logging.getLogger(__name__)


@dataclass
class ParsedOutput:
    """Transcript text plus where it came from."""

    text: str = ""
    segments: List[Segment] = field(default_factory=list)
    source: str = "none"


def sidecar_paths(audio_path: Path, extension: str) -> List[Path]:
    """
    Candidate sidecar files for an audio file.

    'meeting.wav' -> 'meeting.json', then whisper.cpp's own 'meeting.wav.json'.
    """
    audio_path = Path(audio_path)
    paths = [audio_path.with_suffix(extension)]
    native = audio_path.with_name(audio_path.name + extension)
    if native not in paths:
        paths.append(native)
    return paths


def _segment_from_entry(entry: Any) -> Optional[Segment]:
    if not isinstance(entry, dict):
        return None
    text = str(entry.get("text", "")).strip()

    # whisper.cpp native format: offsets in milliseconds
    offsets = entry.get("offsets")
    if isinstance(offsets, dict):
        return Segment(
            start=float(offsets.get("from", 0)) / 1000.0,
            end=float(offsets.get("to", 0)) / 1000.0,
            text=text,
        )
    return Segment(
        start=float(entry.get("start", 0.0)),
        end=float(entry.get("end", 0.0)),
        text=text,
    )


def _segments_from_list(entries: List[Any]) -> List[Segment]:
    segments = []
    for entry in entries:
        segment = _segment_from_entry(entry)
        if segment is not None:
            segments.append(segment)
    return sorted(segments, key=lambda s: s.start)


def parse_json_transcript(content: str) -> Tuple[str, List[Segment]]:
    """
    Extract text and segments from a JSON sidecar.

    Accepts {"transcription": "..."}, {"text": "...", "segments": [...]} and
    whisper.cpp's {"transcription": [{"offsets": ..., "text": ...}, ...]}.

    Raises:
        ValueError: If the content is not valid JSON
    """
    data = json.loads(content)
    if not isinstance(data, dict):
        return "", []

    text = ""
    segments: List[Segment] = []

    transcription = data.get("transcription")
    if isinstance(transcription, str):
        text = transcription.strip()
    elif isinstance(transcription, list):
        segments = _segments_from_list(transcription)
        text = " ".join(s.text for s in segments if s.text).strip()

    if not text and isinstance(data.get("text"), str):
        text = data["text"].strip()

    if not segments and isinstance(data.get("segments"), list):
        segments = _segments_from_list(data["segments"])

    return text, segments


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def parse_output(audio_path: Path, stdout: str = "") -> ParsedOutput:
    """
    Resolve the transcript for a finished engine run.

    Args:
        audio_path: The audio file the engine was run on
        stdout: Captured standard output of the engine

    Returns:
        ParsedOutput; text is empty when nothing usable was produced
    """
    for json_path in sidecar_paths(audio_path, ".json"):
        if not json_path.is_file():
            continue
        try:
            content = _read_text(json_path)
            if content.strip():
                text, segments = parse_json_transcript(content)
                if text:
                    logger.debug(f"Using JSON output {json_path}")
                    return ParsedOutput(text=text, segments=segments, source="json")
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to parse {json_path}, falling back to text: {e}")

    for txt_path in sidecar_paths(audio_path, ".txt"):
        if not txt_path.is_file():
            continue
        try:
            text = _read_text(txt_path).strip()
        except OSError as e:
            logger.warning(f"Failed to read {txt_path}: {e}")
            continue
        if text:
            logger.debug(f"Using text output {txt_path}")
            return ParsedOutput(text=text, source="txt")

    text = stdout.strip()
    if text:
        logger.info("Using engine stdout as transcript")
        return ParsedOutput(text=text, source="stdout")

    return ParsedOutput()
