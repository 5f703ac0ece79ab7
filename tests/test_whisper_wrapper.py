import asyncio
import time

import pytest

from conftest import posix_only, write_wav
from privote.core.models import ErrorKind, TranscriptionRequest
from privote.transcription.catalog import ModelCatalog
from privote.transcription.whisper_wrapper import (
    PLACEHOLDER_TRANSCRIPT,
    OutputCapture,
    TranscriptionState,
    WhisperTranscriber,
)

pytestmark = posix_only


@pytest.fixture
def audio(tmp_path):
    return write_wav(tmp_path / "meeting.wav", seconds=1.0)


def _request(app_config, audio_path, timeout=None):
    catalog = ModelCatalog(app_config.transcription.model_dir)
    descriptor = catalog.get("base.en")
    return TranscriptionRequest(
        audio_path=audio_path,
        model=descriptor,
        model_path=catalog.model_path(descriptor),
        language="en",
        threads=2,
        timeout=timeout,
    )


def _transcriber(app_config, isolated_locator, engine=None, **kwargs):
    return WhisperTranscriber(isolated_locator(app_config), engine_path=engine, **kwargs)


def test_missing_audio_does_not_spawn(tmp_path, app_config, installed_model, make_engine, isolated_locator):
    marker = tmp_path / "spawned"
    engine = make_engine(f'touch "{marker}"')
    transcriber = _transcriber(app_config, isolated_locator, engine)

    result = asyncio.run(transcriber.transcribe(_request(app_config, tmp_path / "missing.wav")))

    assert not result.success
    assert result.error_kind == ErrorKind.AUDIO_NOT_FOUND
    assert not marker.exists()
    assert transcriber.state == TranscriptionState.FAILED


def test_missing_model_is_hard_failure(app_config, audio, make_engine, isolated_locator):
    engine = make_engine('echo "should not run"')

    result = asyncio.run(_transcriber(app_config, isolated_locator, engine).transcribe(_request(app_config, audio)))

    assert result.error_kind == ErrorKind.MODEL_NOT_FOUND
    assert "ggml-base.en.bin" in result.error


def test_missing_engine_returns_placeholder(app_config, audio, installed_model, isolated_locator):
    transcriber = _transcriber(app_config, isolated_locator)

    result = asyncio.run(transcriber.transcribe(_request(app_config, audio)))

    assert result.success
    assert result.is_placeholder
    assert result.text == PLACEHOLDER_TRANSCRIPT
    assert result.text.startswith("[PLACEHOLDER TRANSCRIPT]")
    assert transcriber.state == TranscriptionState.PLACEHOLDER


def test_json_sidecar_result(app_config, audio, installed_model, make_engine, isolated_locator):
    engine = make_engine("""printf '%s' '{"transcription":"hello team"}' > "$BASE.json" """)
    states = []
    transcriber = _transcriber(app_config, isolated_locator, engine, on_state=states.append)

    result = asyncio.run(transcriber.transcribe(_request(app_config, audio)))

    assert result.success
    assert result.text == "hello team"
    assert result.output_source == "json"
    assert result.wall_clock_seconds > 0
    assert states == [
        TranscriptionState.VALIDATING,
        TranscriptionState.SPAWNING,
        TranscriptionState.RUNNING,
        TranscriptionState.PARSING,
        TranscriptionState.SUCCEEDED,
    ]


def test_engine_receives_expected_arguments(tmp_path, app_config, audio, installed_model, make_engine, isolated_locator):
    args_file = tmp_path / "args.txt"
    # The prologue consumes "$@", so record the command line from a wrapper instead
    engine = make_engine("true")
    wrapper = tmp_path / "engine" / "record-args"
    wrapper.write_text(f'#!/bin/sh\necho "$@" > "{args_file}"\nexec "{engine}" "$@"\n')
    wrapper.chmod(0o755)
    (tmp_path / "meeting.txt").write_text("from text")

    result = asyncio.run(_transcriber(app_config, isolated_locator, wrapper).transcribe(_request(app_config, audio)))

    assert result.text == "from text"
    assert args_file.read_text().split() == [
        "-m", str(installed_model),
        "-f", str(audio),
        "-l", "en",
        "-t", "2",
        "--output-txt",
        "--output-json",
    ]


def test_stdout_is_last_resort(app_config, audio, installed_model, make_engine, isolated_locator):
    engine = make_engine('echo "spoken words"')

    result = asyncio.run(_transcriber(app_config, isolated_locator, engine).transcribe(_request(app_config, audio)))

    assert result.text == "spoken words"
    assert result.output_source == "stdout"
    assert not result.truncated


def test_zero_exit_without_output_is_failure(app_config, audio, installed_model, make_engine, isolated_locator):
    engine = make_engine('echo "whisper_init: error: failed to decode audio" >&2\nexit 0')

    result = asyncio.run(_transcriber(app_config, isolated_locator, engine).transcribe(_request(app_config, audio)))

    assert not result.success
    assert result.error_kind == ErrorKind.EMPTY_TRANSCRIPT
    assert f"Size: {audio.stat().st_size} bytes" in result.error
    assert "failed to decode audio" in result.error


def test_non_zero_exit_reports_output(app_config, audio, installed_model, make_engine, isolated_locator):
    engine = make_engine('echo "partial" \necho "bad model file" >&2\nexit 3')

    result = asyncio.run(_transcriber(app_config, isolated_locator, engine).transcribe(_request(app_config, audio)))

    assert result.error_kind == ErrorKind.PROCESS_EXITED_NON_ZERO
    assert "code 3" in result.error
    assert "bad model file" in result.error
    assert "partial" in result.error


def test_engine_that_cannot_start(app_config, audio, installed_model, make_engine, isolated_locator):
    engine = make_engine("true")
    engine.chmod(0o644)

    result = asyncio.run(_transcriber(app_config, isolated_locator, engine).transcribe(_request(app_config, audio)))

    assert result.error_kind == ErrorKind.PROCESS_SPAWN_FAILED


def test_hung_engine_times_out(app_config, audio, installed_model, make_engine, isolated_locator):
    engine = make_engine("exec sleep 30")

    result = asyncio.run(
        _transcriber(app_config, isolated_locator, engine).transcribe(_request(app_config, audio, timeout=0.5))
    )

    assert result.error_kind == ErrorKind.TIMEOUT
    assert "killed" in result.error


def test_timeout_also_kills_processes_started_by_the_engine(app_config, audio, installed_model, make_engine, isolated_locator):
    # sleep runs as a child of the shell and holds its stdout open
    engine = make_engine("sleep 30")

    started = time.monotonic()
    result = asyncio.run(
        _transcriber(app_config, isolated_locator, engine).transcribe(_request(app_config, audio, timeout=0.5))
    )
    elapsed = time.monotonic() - started

    assert result.error_kind == ErrorKind.TIMEOUT
    assert elapsed < 5


def test_leftover_background_process_does_not_block(app_config, audio, installed_model, make_engine, isolated_locator):
    engine = make_engine("sleep 30 &\necho \"spoken words\"")
    transcriber = _transcriber(app_config, isolated_locator, engine)
    transcriber.STREAM_GRACE_SECONDS = 0.3

    started = time.monotonic()
    result = asyncio.run(transcriber.transcribe(_request(app_config, audio)))
    elapsed = time.monotonic() - started

    assert result.success
    assert result.text == "spoken words"
    assert elapsed < 5


def test_zero_timeout_means_no_timeout(app_config, audio, installed_model, make_engine, isolated_locator):
    engine = make_engine("sleep 0.3\necho \"spoken words\"")
    request = _request(app_config, audio, timeout=0)

    result = asyncio.run(_transcriber(app_config, isolated_locator, engine).transcribe(request))

    assert request.timeout is None
    assert result.success
    assert result.text == "spoken words"


def test_kill_on_demand(app_config, audio, installed_model, make_engine, isolated_locator):
    engine = make_engine("sleep 30")

    async def scenario():
        running = asyncio.Event()

        def on_state(state):
            if state == TranscriptionState.RUNNING:
                running.set()

        transcriber = _transcriber(app_config, isolated_locator, engine, on_state=on_state)
        task = asyncio.ensure_future(transcriber.transcribe(_request(app_config, audio)))
        await asyncio.wait_for(running.wait(), timeout=10)
        assert transcriber.kill()
        return await task

    started = time.monotonic()
    result = asyncio.run(scenario())

    assert result.error_kind == ErrorKind.PROCESS_EXITED_NON_ZERO
    assert time.monotonic() - started < 10


def test_output_is_capped(app_config, audio, installed_model, make_engine, isolated_locator):
    engine = make_engine("i=0\nwhile [ $i -lt 2000 ]; do echo 'lots of chatter here'; i=$((i+1)); done")
    transcriber = _transcriber(app_config, isolated_locator, engine, output_limit=1024)

    result = asyncio.run(transcriber.transcribe(_request(app_config, audio)))

    assert result.success
    assert len(result.text.encode()) <= 1024
    assert result.output_source == "stdout"
    assert result.truncated


def test_library_path_is_injected(app_config, audio, installed_model, make_engine, isolated_locator):
    lib_dir = app_config.transcription.resources_dir / "lib"
    lib_dir.mkdir()
    engine = make_engine('echo "lib=$LD_LIBRARY_PATH"')

    result = asyncio.run(_transcriber(app_config, isolated_locator, engine).transcribe(_request(app_config, audio)))

    assert result.text.startswith(f"lib={lib_dir}")


def test_status(app_config, installed_model, make_engine, isolated_locator):
    engine = make_engine("true")

    status = _transcriber(app_config, isolated_locator, engine).status(installed_model)
    missing = _transcriber(app_config, isolated_locator).status(installed_model)

    assert status["available"] and status["executable_path"] == str(engine)
    assert not missing["available"]
    assert missing["model_exists"] and not missing["executable_exists"]


def test_output_capture_counts_dropped_bytes():
    capture = OutputCapture(limit=5)
    capture.feed(b"abc")
    capture.feed(b"defgh")
    capture.feed(b"ij")

    assert capture.size == 5
    assert capture.dropped == 5
    assert capture.text(mark_truncation=False) == "abcde"
    assert capture.text().endswith("[... 5 bytes truncated]")
