# File: tests/conftest.py

import os
import stat
import sys
from pathlib import Path

import numpy as np
import pytest

from privote.audio.normalizer import normalize_samples
from privote.core.config import AppConfig, TranscriptionConfig
from privote.transcription.locator import EngineLocator

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="fake engine is a POSIX shell script")


# Shared prologue for fake engines: exposes $AUDIO and $BASE (audio path without extension)
ENGINE_PROLOGUE = """#!/bin/sh
while [ $# -gt 0 ]; do
  case "$1" in
    -f) AUDIO="$2"; shift ;;
  esac
  shift
done
BASE="${AUDIO%.*}"
"""


def write_wav(path: Path, seconds: float = 1.0, sample_rate: int = 16000) -> Path:
    """Write a canonical mono WAV containing a quiet sine tone."""
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    samples = 0.2 * np.sin(2 * np.pi * 440 * t)
    path.write_bytes(normalize_samples(samples, sample_rate))
    return path


@pytest.fixture
def app_config(tmp_path):
    """Configuration rooted entirely inside tmp_path."""
    resources = tmp_path / "resources"
    resources.mkdir()
    return AppConfig(
        whisper_model="base.en",
        data_dir=tmp_path / "data",
        recordings_dir=tmp_path / "recordings",
        transcription=TranscriptionConfig(
            model_dir=tmp_path / "models",
            resources_dir=resources,
            timeout_seconds=30,
        ),
    )


@pytest.fixture
def installed_model(app_config):
    """Put a dummy ggml-base.en.bin in the model directory."""
    model_dir = app_config.transcription.model_dir
    model_dir.mkdir(parents=True, exist_ok=True)
    path = model_dir / "ggml-base.en.bin"
    path.write_bytes(b"ggml-fake-model")
    return path


@pytest.fixture
def make_engine(tmp_path):
    """Create an executable fake whisper-cli from a shell snippet."""
    def _make(body: str, name: str = "whisper-cli") -> Path:
        engine_dir = tmp_path / "engine"
        engine_dir.mkdir(exist_ok=True)
        path = engine_dir / name
        path.write_text(ENGINE_PROLOGUE + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path
    return _make


@pytest.fixture
def isolated_locator():
    """Locator factory that ignores the host machine's PATH and system installs."""
    def _factory(config: AppConfig) -> EngineLocator:
        return EngineLocator(
            config.transcription.resources_dir,
            system="Linux",
            environ={"PATH": os.environ.get("PATH", "")},
            system_locations=[],
            search_path=False,
        )
    return _factory
