"""
Audio normalization for the Privote transcription pipeline.

whisper.cpp only accepts 16 kHz mono 16-bit PCM WAV. This module converts
captured or imported audio into that canonical container using numpy.
Conversion failures are never fatal: the caller gets the original audio
back and the engine gets a chance to read it as-is.
"""

import io
import logging
import struct
import wave
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)


TARGET_SAMPLE_RATE = 16000
WAV_HEADER_SIZE = 44

WAVE_FORMAT_PCM = 0x0001
WAVE_FORMAT_IEEE_FLOAT = 0x0003
WAVE_FORMAT_EXTENSIBLE = 0xFFFE

class WavDecodeError(ValueError):
    """Raised when a byte string is not a WAV container we can read."""
    pass


def encode_wav(pcm: np.ndarray, sample_rate: int = TARGET_SAMPLE_RATE) -> bytes:
    """
    Wrap mono 16-bit samples in a canonical 44-byte RIFF/WAVE header.

    Args:
        pcm: Mono samples, converted to little-endian int16
        sample_rate: Sample rate written to the header

    Returns:
        Complete WAV file contents
    """
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(np.asarray(pcm, dtype="<i2").tobytes())
    return buffer.getvalue()


def to_mono(samples: np.ndarray, channels: int) -> np.ndarray:
    """Average the first two channels of interleaved samples; mono passes through."""
    if channels < 1:
        raise ValueError(f"Invalid channel count: {channels}")
    if channels == 1:
        return samples
    frames = len(samples) // channels
    frame_view = samples[: frames * channels].reshape(frames, channels)
    return (frame_view[:, 0] + frame_view[:, 1]) / 2.0


def resample(samples: np.ndarray, source_rate: int, target_rate: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """Linearly interpolate mono samples onto a new sample rate."""
    if source_rate <= 0:
        raise ValueError(f"Invalid sample rate: {source_rate}")
    if source_rate == target_rate or len(samples) == 0:
        return samples
    out_length = int(round(len(samples) * target_rate / source_rate))
    positions = np.arange(out_length) * (source_rate / target_rate)
    return np.interp(positions, np.arange(len(samples)), samples)


def quantize(samples: np.ndarray) -> np.ndarray:
    """
    Convert float samples to int16.

    Samples are clamped to [-1, 1] first. Negative values scale by 0x8000 and
    positive values by 0x7FFF so both ends of the int16 range are reachable.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    return np.round(scaled).astype("<i2")


def normalize_samples(
    samples: Union[np.ndarray, Sequence[float]],
    sample_rate: int,
    channels: int = 1,
) -> bytes:
    """
    Turn interleaved float samples into a canonical 16 kHz mono WAV.

    Args:
        samples: Interleaved floating-point samples
        sample_rate: Sample rate of the input
        channels: Number of interleaved channels

    Returns:
        WAV file contents

    Raises:
        ValueError: If the sample rate or channel count is invalid
    """
    data = np.asarray(samples, dtype=np.float64).ravel()
    mono = to_mono(data, channels)
    mono = resample(mono, sample_rate, TARGET_SAMPLE_RATE)
    return encode_wav(quantize(mono), TARGET_SAMPLE_RATE)


def _parse_wav(data: bytes) -> Tuple[int, int, int, int, bytes]:
    """Return (format tag, channels, sample rate, bits per sample, payload)."""
    if len(data) < 12 or data[0:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise WavDecodeError("Not a RIFF/WAVE container")

    fmt = None
    payload = None
    offset = 12
    while offset + 8 <= len(data):
        chunk_id = data[offset:offset + 4]
        chunk_size = struct.unpack_from("<I", data, offset + 4)[0]
        body = data[offset + 8:offset + 8 + chunk_size]
        if chunk_id == b"fmt ":
            if len(body) < 16:
                raise WavDecodeError("Truncated fmt chunk")
            format_tag, channels, sample_rate, _, _, bits = struct.unpack_from("<HHIIHH", body)
            if format_tag == WAVE_FORMAT_EXTENSIBLE and len(body) >= 26:
                # Real format lives in the first two bytes of the sub-format GUID
                format_tag = struct.unpack_from("<H", body, 24)[0]
            fmt = (format_tag, channels, sample_rate, bits)
        elif chunk_id == b"data":
            payload = body
            break
        # Chunks are word aligned
        offset += 8 + chunk_size + (chunk_size & 1)

    if fmt is None:
        raise WavDecodeError("Missing fmt chunk")
    if payload is None:
        raise WavDecodeError("Missing data chunk")
    return fmt[0], fmt[1], fmt[2], fmt[3], payload


def _read_wav(data: bytes) -> Tuple[int, int, int, int, bytes]:
    """
    Read a WAV container, returning (format tag, channels, sample rate, bits, payload).

    Integer PCM goes through the wave module; float and extensible files,
    which wave rejects, fall back to the chunk walker.
    """
    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            return (
                WAVE_FORMAT_PCM,
                wf.getnchannels(),
                wf.getframerate(),
                wf.getsampwidth() * 8,
                wf.readframes(wf.getnframes()),
            )
    except (wave.Error, EOFError):
        return _parse_wav(data)


def _decode_payload(format_tag: int, bits: int, payload: bytes) -> np.ndarray:
    """Decode raw sample bytes into floats in [-1, 1]."""
    width = bits // 8
    if width == 0:
        raise WavDecodeError(f"Unsupported bit depth: {bits}")
    payload = payload[: len(payload) - (len(payload) % width)]

    if format_tag == WAVE_FORMAT_IEEE_FLOAT:
        if bits == 32:
            return np.frombuffer(payload, dtype="<f4").astype(np.float64)
        if bits == 64:
            return np.frombuffer(payload, dtype="<f8").astype(np.float64)
        raise WavDecodeError(f"Unsupported float bit depth: {bits}")

    if format_tag != WAVE_FORMAT_PCM:
        raise WavDecodeError(f"Unsupported WAV format tag: {format_tag:#06x}")

    if bits == 8:
        raw = np.frombuffer(payload, dtype=np.uint8).astype(np.float64)
        return (raw - 128.0) / 128.0
    if bits == 16:
        raw = np.frombuffer(payload, dtype="<i2").astype(np.float64)
        return np.where(raw < 0, raw / 0x8000, raw / 0x7FFF)
    if bits == 24:
        b = np.frombuffer(payload, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        raw = b[:, 0] | (b[:, 1] << 8) | (b[:, 2] << 16)
        raw = np.where(raw >= 1 << 23, raw - (1 << 24), raw)
        return raw.astype(np.float64) / float(1 << 23)
    if bits == 32:
        raw = np.frombuffer(payload, dtype="<i4").astype(np.float64)
        return raw / float(1 << 31)
    raise WavDecodeError(f"Unsupported PCM bit depth: {bits}")


def _normalize_wav(data: bytes) -> bytes:
    format_tag, channels, sample_rate, bits, payload = _read_wav(data)

    if (
        format_tag == WAVE_FORMAT_PCM
        and channels == 1
        and sample_rate == TARGET_SAMPLE_RATE
        and bits == 16
    ):
        # Already canonical: keep the samples bit-for-bit, rewrite only the header
        pcm = np.frombuffer(payload[: len(payload) - (len(payload) % 2)], dtype="<i2")
        return encode_wav(pcm, TARGET_SAMPLE_RATE)

    samples = _decode_payload(format_tag, bits, payload)
    return normalize_samples(samples, sample_rate, channels)


def normalize_wav_bytes(data: bytes) -> bytes:
    """
    Normalize an in-memory audio file to canonical WAV.

    Returns the input unchanged if it cannot be decoded.
    """
    try:
        return _normalize_wav(data)
    except Exception as e:
        logger.warning(f"Audio normalization failed, keeping original audio: {e}")
        return data


def normalize_file(source: Union[str, Path], destination: Optional[Union[str, Path]] = None) -> Path:
    """
    Normalize an audio file on disk.

    Args:
        source: Audio file to read (never modified unless it is also the destination)
        destination: Where to write the canonical WAV; defaults to '<stem>-16k.wav'
            next to the source

    Returns:
        Path of the canonical file, or the source path if conversion failed
    """
    source = Path(source)
    if destination is None:
        destination = source.with_name(f"{source.stem}-16k.wav")
    destination = Path(destination)

    try:
        data = source.read_bytes()
        converted = _normalize_wav(data)
    except Exception as e:
        logger.warning(f"Could not normalize {source}, using it as-is: {e}")
        return source

    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(converted)
    logger.info(f"Normalized {source} -> {destination} ({len(converted)} bytes)")
    return destination


def read_wav_info(path: Union[str, Path]) -> Optional[Tuple[int, int, int]]:
    """Return (channels, sample rate, frame count) for a WAV file, or None."""
    try:
        with open(path, "rb") as f:
            data = f.read()
        _, channels, sample_rate, bits, payload = _read_wav(data)
    except (OSError, WavDecodeError, struct.error):
        return None
    block_align = channels * (bits // 8)
    if block_align <= 0:
        return None
    return channels, sample_rate, len(payload) // block_align
