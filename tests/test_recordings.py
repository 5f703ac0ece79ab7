import base64
import os

from conftest import write_wav
from privote.audio import recordings
from privote.audio.normalizer import read_wav_info
from privote.audio.recordings import delete_recording, list_recordings, save_recording


def test_save_bytes_normalizes(tmp_path):
    source = write_wav(tmp_path / "raw.wav", seconds=2.0, sample_rate=44100)

    asset = save_recording(source.read_bytes(), tmp_path / "recordings")

    assert asset.path.parent == tmp_path / "recordings"
    assert asset.path.name.startswith("recording-")
    assert ":" not in asset.path.name
    assert read_wav_info(asset.path) == (1, 16000, 32000)
    assert asset.duration == 2.0
    assert asset.file_size == asset.path.stat().st_size


def test_save_data_url(tmp_path):
    wav = write_wav(tmp_path / "raw.wav").read_bytes()
    data_url = "data:audio/wav;base64," + base64.b64encode(wav).decode()

    asset = save_recording(data_url, tmp_path / "recordings")

    assert asset.path.read_bytes() == wav


def test_unnormalized_blob_is_kept_as_is(tmp_path):
    blob = b"\x1aE\xdf\xa3 webm"

    asset = save_recording(blob, tmp_path, normalize=False)

    assert asset.path.read_bytes() == blob
    assert asset.duration is None


def test_list_newest_first(tmp_path):
    older = write_wav(tmp_path / "a.wav")
    newer = write_wav(tmp_path / "b.wav")
    (tmp_path / "notes.txt").write_text("not audio")
    os.utime(older, (1_000_000, 1_000_000))
    os.utime(newer, (2_000_000, 2_000_000))

    assert [asset.path.name for asset in list_recordings(tmp_path)] == ["b.wav", "a.wav"]
    assert list_recordings(tmp_path / "absent") == []


def test_delete(tmp_path):
    path = write_wav(tmp_path / "a.wav")

    assert delete_recording(path)
    assert not path.exists()
    assert not delete_recording(path)


def test_same_timestamp_does_not_overwrite(tmp_path, monkeypatch):
    monkeypatch.setattr(recordings, "_timestamp", lambda: "2024-05-01T10-00-00-000")

    first = save_recording(b"first take", tmp_path, normalize=False)
    second = save_recording(b"second take", tmp_path, normalize=False)

    assert first.path.name == "recording-2024-05-01T10-00-00-000.wav"
    assert second.path.name == "recording-2024-05-01T10-00-00-000-1.wav"
    assert first.path.read_bytes() == b"first take"
    assert second.path.read_bytes() == b"second take"
