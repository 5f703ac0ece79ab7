"""
Data models for the Privote transcription core.

This module defines the models passed between the normalizer, the model
catalog, the engine locator, the transcriber and the pipeline controller.
"""

import datetime
import enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ErrorKind(str, enum.Enum):
    """Failure categories reported by the transcription core."""

    AUDIO_NOT_FOUND = "audio_not_found"
    MODEL_NOT_FOUND = "model_not_found"
    ENGINE_NOT_FOUND = "engine_not_found"
    PROCESS_SPAWN_FAILED = "process_spawn_failed"
    PROCESS_EXITED_NON_ZERO = "process_exited_non_zero"
    EMPTY_TRANSCRIPT = "empty_transcript"
    TIMEOUT = "timeout"
    UNKNOWN_MODEL = "unknown_model"
    DOWNLOAD_FAILED = "download_failed"


class AudioAsset(BaseModel):
    """An audio file on disk, owned by whoever recorded or imported it."""

    path: Path = Field(..., description="Path to the audio file")

    file_size: int = Field(default=0, description="File size in bytes")

    duration: Optional[float] = Field(
        default=None, description="Duration of audio in seconds, when known"
    )

    created_at: datetime.datetime = Field(
        default_factory=datetime.datetime.now,
        description="When the file was created",
    )

    @classmethod
    def from_path(cls, path: Path) -> "AudioAsset":
        """Create an AudioAsset from a file, reading WAV duration if possible."""
        from privote.audio.normalizer import read_wav_info

        path = Path(path).absolute()
        stat = path.stat()
        duration = None
        info = read_wav_info(path)
        if info is not None:
            _, sample_rate, frames = info
            if sample_rate > 0:
                duration = frames / sample_rate

        return cls(
            path=path,
            file_size=stat.st_size,
            duration=duration,
            created_at=datetime.datetime.fromtimestamp(stat.st_mtime),
        )


class ModelDescriptor(BaseModel):
    """A whisper model known to the catalog."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable model identifier, e.g. 'base.en'")
    label: str = Field(..., description="Human readable label")
    size_mb: int = Field(..., description="Approximate download size in MB")
    url: str = Field(..., description="Remote download location")
    filename: str = Field(..., description="File name inside the model directory")


class ModelState(BaseModel):
    """A catalog entry annotated with whether its file is on disk."""

    model_config = ConfigDict(frozen=True)

    descriptor: ModelDescriptor
    is_present: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.descriptor.id,
            "name": self.descriptor.filename,
            "displayName": self.descriptor.label,
            "size": f"{self.descriptor.size_mb}MB",
            "available": self.is_present,
        }


class EngineLocation(BaseModel):
    """Where the whisper.cpp executable and its shared libraries live."""

    model_config = ConfigDict(frozen=True)

    executable: Optional[Path] = None
    library_dir: Optional[Path] = None
    candidates: Tuple[Path, ...] = ()

    @property
    def found(self) -> bool:
        return self.executable is not None


class TranscriptionRequest(BaseModel):
    """A single transcription invocation."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    audio_path: Path
    model: ModelDescriptor
    model_path: Path
    language: str = "en"
    threads: int = Field(default=4, ge=1)
    timeout: Optional[float] = Field(
        default=None, description="Seconds to wait for the engine before killing it"
    )

    @field_validator("timeout")
    @classmethod
    def disable_zero_timeout(cls, v: Optional[float]) -> Optional[float]:
        """A zero or negative timeout means no timeout, as in configuration."""
        if v is not None and v <= 0:
            return None
        return v


class Segment(BaseModel):
    """A timed piece of transcript text, in seconds."""

    model_config = ConfigDict(frozen=True)

    start: float
    end: float
    text: str


class TranscriptionResult(BaseModel):
    """Terminal outcome of a transcription request."""

    success: bool
    text: str = ""
    language: Optional[str] = None
    segments: List[Segment] = Field(default_factory=list)
    wall_clock_seconds: float = 0.0
    is_placeholder: bool = False
    output_source: Optional[str] = Field(
        default=None, description="Which output produced the text: json, txt or stdout"
    )
    truncated: bool = Field(
        default=False, description="True when the text came from stdout cut at the output limit"
    )
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def check_outcome(self) -> "TranscriptionResult":
        """A result is successful if and only if it carries transcript text."""
        if self.success:
            if not self.text.strip():
                raise ValueError("successful transcription requires non-empty text")
            if self.error_kind is not None:
                raise ValueError("successful transcription cannot carry an error kind")
        elif self.error_kind is None:
            raise ValueError("failed transcription requires an error kind")
        return self

    @classmethod
    def failed(cls, kind: ErrorKind, message: str) -> "TranscriptionResult":
        return cls(success=False, error_kind=kind, error=message)

    def to_payload(self) -> Dict[str, Any]:
        """Render the result in the shape the desktop UI consumes."""
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "transcript": self.text,
            "language": self.language,
            "duration": round(self.wall_clock_seconds, 2),
            "segments": [segment.model_dump() for segment in self.segments],
        }


class InstallResult(BaseModel):
    """Outcome of a model download request."""

    model_config = ConfigDict(protected_namespaces=())

    success: bool
    model_id: str
    path: Optional[Path] = None
    already_present: bool = False
    message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "message": self.message}
        return {"success": False, "error": self.error}
