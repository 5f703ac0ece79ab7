"""
whisper.cpp wrapper for Privote.

This module runs the whisper-cli executable as a child process for one
transcription request, drains its output streams while it runs, and turns
whatever it produced into a TranscriptionResult.
"""

import asyncio
import logging
import os
import re
import signal
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from privote.core.errors import TranscriptionError
from privote.core.models import (
    EngineLocation,
    ErrorKind,
    TranscriptionRequest,
    TranscriptionResult,
)
from privote.transcription.locator import EngineLocator
from privote.transcription.output_parser import parse_output

logger = logging.getLogger(__name__)


class TranscriptionState(str, Enum):
    """Lifecycle of a single transcription run."""
    IDLE = "idle"
    VALIDATING = "validating"
    SPAWNING = "spawning"
    RUNNING = "running"
    PARSING = "parsing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PLACEHOLDER = "placeholder"


PLACEHOLDER_TRANSCRIPT = """[PLACEHOLDER TRANSCRIPT] This is a placeholder transcript generated by Privote.

The whisper.cpp executable could not be found, so no real transcription was performed.
To enable real transcription:

1. Download a Whisper model (e.g. ggml-base.en.bin) into the models directory
2. Build whisper.cpp (https://github.com/ggerganov/whisper.cpp)
3. Set WHISPER_CPP_PATH to the whisper-cli executable, or place it in the resources directory

Until then you can test the rest of the app with this placeholder text."""


StateCallback = Callable[[TranscriptionState], None]


class OutputCapture:
    """
    Accumulates a child process stream up to a byte limit.

    Bytes past the limit are counted but not kept, so a chatty engine
    cannot grow memory without bound.
    """

    def __init__(self, limit: int):
        self.limit = limit
        self._chunks: List[bytes] = []
        self.size = 0
        self.dropped = 0

    def feed(self, data: bytes) -> None:
        room = self.limit - self.size
        if room > 0:
            kept = data[:room]
            self._chunks.append(kept)
            self.size += len(kept)
        self.dropped += max(0, len(data) - max(room, 0))

    def text(self, mark_truncation: bool = True) -> str:
        text = b"".join(self._chunks).decode("utf-8", errors="replace")
        if self.dropped and mark_truncation:
            text += f"\n[... {self.dropped} bytes truncated]"
        return text


class WhisperTranscriber:
    """
    Runs whisper-cli for a single request.

    A transcriber is cheap to build and is meant to be created per request;
    it owns at most one child process at a time.
    """

    DEFAULT_OUTPUT_LIMIT = 1024 * 1024
    READ_CHUNK_SIZE = 4096
    # How long output readers may lag behind process exit
    STREAM_GRACE_SECONDS = 2.0

    def __init__(
        self,
        locator: EngineLocator,
        engine_path: Optional[Path] = None,
        output_limit: int = DEFAULT_OUTPUT_LIMIT,
        on_state: Optional[StateCallback] = None,
    ):
        """
        Initialize the transcriber.

        Args:
            locator: Resolves the engine executable and its library directory
            engine_path: Explicit executable path, tried before anything else
            output_limit: Maximum bytes kept from each of stdout and stderr
            on_state: Called on every state transition
        """
        self.locator = locator
        self.engine_path = engine_path
        self.output_limit = output_limit
        self.on_state = on_state

        self.state = TranscriptionState.IDLE
        self._process: Optional[asyncio.subprocess.Process] = None

    def _set_state(self, state: TranscriptionState) -> None:
        self.state = state
        logger.debug(f"Transcriber state: {state.value}")
        if self.on_state:
            self.on_state(state)

    def build_command(self, executable: Path, request: TranscriptionRequest) -> List[str]:
        """Command line for whisper-cli, requesting both .txt and .json output."""
        return [
            str(executable),
            "-m", str(request.model_path),
            "-f", str(request.audio_path),
            "-l", request.language,
            "-t", str(request.threads),
            "--output-txt",
            "--output-json",
        ]

    def status(self, model_path: Path) -> Dict[str, Any]:
        """Report whether the engine and the given model are installed."""
        location = self.locator.resolve(self.engine_path)
        model_exists = Path(model_path).is_file()
        return {
            "available": model_exists and location.found,
            "model_exists": model_exists,
            "executable_exists": location.found,
            "model_path": str(model_path),
            "executable_path": str(location.executable) if location.found else None,
        }

    def kill(self) -> bool:
        """
        Kill the running engine process, if any.

        The whole process group is killed, so helpers started by a wrapper
        script around whisper-cli go down with it.

        Returns:
            True if a running process was signalled
        """
        process = self._process
        if process is None or process.returncode is not None:
            return False
        logger.warning(f"Killing whisper.cpp process {process.pid}")
        try:
            self._kill_group(process)
        except ProcessLookupError:
            return False
        return True

    @staticmethod
    def _kill_group(process: asyncio.subprocess.Process) -> None:
        if os.name == "posix":
            # The engine leads its own session, so its pid is the group id
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()

    async def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        """
        Transcribe one audio file.

        Args:
            request: What to transcribe and how

        Returns:
            TranscriptionResult; failures are returned, never raised
        """
        self._set_state(TranscriptionState.VALIDATING)

        if not Path(request.audio_path).is_file():
            return self._fail(ErrorKind.AUDIO_NOT_FOUND, f"Audio file not found: {request.audio_path}")

        if not Path(request.model_path).is_file():
            return self._fail(
                ErrorKind.MODEL_NOT_FOUND,
                f"Whisper model not found at {request.model_path}. Please download a model first.\n"
                f"Download from: {request.model.url}",
            )

        location = self.locator.resolve(self.engine_path)
        if not location.found:
            # Soft failure: keep the app usable without the engine installed
            logger.warning("whisper.cpp executable not found, returning placeholder transcript")
            logger.warning("To enable real transcription, build whisper.cpp and set WHISPER_CPP_PATH")
            self._set_state(TranscriptionState.PLACEHOLDER)
            return TranscriptionResult(
                success=True,
                text=PLACEHOLDER_TRANSCRIPT,
                language=request.language,
                is_placeholder=True,
                output_source="placeholder",
            )

        logger.info(f"Transcribing: {request.audio_path}")
        logger.info(f"Model: {request.model_path}")
        logger.info(f"Executable: {location.executable}")

        try:
            result = await self._run(request, location)
        except TranscriptionError as e:
            return self._fail(e.kind, e.message)

        self._set_state(TranscriptionState.SUCCEEDED)
        return result

    def _fail(self, kind: ErrorKind, message: str) -> TranscriptionResult:
        logger.error(f"Transcription failed ({kind.value}): {message}")
        self._set_state(TranscriptionState.FAILED)
        return TranscriptionResult.failed(kind, message)

    async def _drain(self, stream: Optional[asyncio.StreamReader], capture: OutputCapture, log_lines: bool) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(self.READ_CHUNK_SIZE)
            if not chunk:
                break
            capture.feed(chunk)
            if log_lines:
                for line in chunk.decode("utf-8", errors="replace").splitlines():
                    if "progress" in line or "error" in line:
                        logger.info(f"[whisper] {line.strip()}")

    async def _close_streams(self, process: asyncio.subprocess.Process, readers: asyncio.Future) -> None:
        """
        Wait for the output readers after the engine has exited.

        A descendant that outlives the engine can keep the pipes open; after
        a grace period the remaining process group is killed and the readers
        are abandoned.
        """
        try:
            await asyncio.wait_for(asyncio.shield(readers), timeout=self.STREAM_GRACE_SECONDS)
            return
        except asyncio.TimeoutError:
            logger.warning("Engine output still open after exit, killing leftover processes")

        try:
            self._kill_group(process)
        except ProcessLookupError:
            logger.debug("Engine process group already gone")

        try:
            await asyncio.wait_for(readers, timeout=self.STREAM_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Gave up waiting for engine output streams")

    async def _run(self, request: TranscriptionRequest, location: EngineLocation) -> TranscriptionResult:
        self._set_state(TranscriptionState.SPAWNING)
        cmd = self.build_command(location.executable, request)
        env = self.locator.child_environment(location)
        logger.debug(f"Running command: {' '.join(cmd)}")

        start_time = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            raise TranscriptionError(
                ErrorKind.PROCESS_SPAWN_FAILED,
                f"Failed to start Whisper process at {location.executable}: {e}\n"
                "Make sure whisper.cpp is built and the path is correct.",
            )

        self._process = process
        self._set_state(TranscriptionState.RUNNING)

        stdout = OutputCapture(self.output_limit)
        stderr = OutputCapture(self.output_limit)
        readers = asyncio.gather(
            self._drain(process.stdout, stdout, log_lines=False),
            self._drain(process.stderr, stderr, log_lines=True),
        )

        try:
            try:
                await asyncio.wait_for(process.wait(), timeout=request.timeout)
            except asyncio.TimeoutError:
                self.kill()
                await process.wait()
                await self._close_streams(process, readers)
                raise TranscriptionError(
                    ErrorKind.TIMEOUT,
                    f"Whisper process timed out after {request.timeout:g}s and was killed\n"
                    f"Stderr: {stderr.text()}",
                )
            await self._close_streams(process, readers)
        finally:
            if process.returncode is None:
                # Cancelled while running
                self.kill()
            if not readers.done():
                readers.cancel()
            self._process = None

        if process.returncode != 0:
            raise TranscriptionError(
                ErrorKind.PROCESS_EXITED_NON_ZERO,
                f"Whisper process exited with code {process.returncode}\n"
                f"Stderr: {stderr.text()}\nStdout: {stdout.text()}",
            )

        self._set_state(TranscriptionState.PARSING)
        parsed = parse_output(request.audio_path, stdout.text(mark_truncation=False))
        wall_clock = time.monotonic() - start_time

        if not parsed.text:
            audio_size = Path(request.audio_path).stat().st_size
            message = (
                "No transcript generated. Audio file may be invalid or incompatible.\n"
                f"Size: {audio_size} bytes"
            )
            engine_error = re.search(r"error:[^\n]+", stderr.text(), re.IGNORECASE)
            if engine_error:
                message += f"\nEngine: {engine_error.group(0)}"
            raise TranscriptionError(ErrorKind.EMPTY_TRANSCRIPT, message)

        truncated = parsed.source == "stdout" and stdout.dropped > 0
        if truncated:
            logger.warning(
                f"Transcript taken from stdout was cut at {stdout.size} bytes "
                f"({stdout.dropped} bytes dropped)"
            )

        logger.info(
            f"Transcription completed in {wall_clock:.2f}s "
            f"({len(parsed.text)} chars, from {parsed.source})"
        )
        return TranscriptionResult(
            success=True,
            text=parsed.text,
            language=request.language,
            segments=parsed.segments,
            wall_clock_seconds=wall_clock,
            output_source=parsed.source,
            truncated=truncated,
        )
