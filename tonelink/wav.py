# wav.py
#
# Canonical RIFF/WAVE serialisation for rendered buffers: a 44-byte header
# followed by interleaved 16-bit little-endian PCM.

import io
import os
import struct
import wave

import numpy as np

HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
PCM_FORMAT = 1


def _as_frames(samples: np.ndarray) -> np.ndarray:
    """Returns samples shaped (frames, channels)."""
    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim == 1:
        return samples[:, np.newaxis]
    if samples.ndim == 2:
        return samples
    raise ValueError(f"Expected a 1-D or 2-D sample array, got {samples.ndim} dimensions")


def to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Clamps to [-1, 1] and scales negative and positive halves to the full int16 range."""
    clipped = np.clip(samples, -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    return scaled.astype('<i2')


def to_wav_bytes(samples: np.ndarray, sample_rate: int) -> bytes:
    """
    Serialises a rendered buffer to WAV bytes.

    Args:
        samples: 1-D array for mono, or (frames, channels) for multi-channel
        sample_rate: Rate the buffer was rendered at

    Returns:
        The complete RIFF/WAVE byte stream
    """
    frames = _as_frames(samples)
    n_channels = frames.shape[1]
    block_align = n_channels * BITS_PER_SAMPLE // 8
    data = to_pcm16(frames).tobytes()  # row-major, so channels come out interleaved

    header = struct.pack(
        '<4sI4s4sIHHIIHH4sI',
        b'RIFF',
        HEADER_SIZE - 8 + len(data),
        b'WAVE',
        b'fmt ',
        16,
        PCM_FORMAT,
        n_channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        BITS_PER_SAMPLE,
        b'data',
        len(data),
    )
    return header + data


def write_wav(path, samples: np.ndarray, sample_rate: int):
    """Writes a rendered buffer to a WAV file."""
    with open(path, 'wb') as f:
        f.write(to_wav_bytes(samples, sample_rate))


def read_wav(source):
    """
    Reads a PCM WAV file into mono float samples in [-1, 1).

    Args:
        source: Path, file-like object or raw WAV bytes

    Returns:
        Tuple of (samples, sample_rate)
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    elif isinstance(source, os.PathLike):
        source = os.fspath(source)

    with wave.open(source, 'rb') as wav:
        n_channels = wav.getnchannels()
        sample_width = wav.getsampwidth()
        framerate = wav.getframerate()
        raw = wav.readframes(wav.getnframes())

    if sample_width == 1:
        samples = (np.frombuffer(raw, dtype=np.uint8).astype(np.float64) - 128) / 128
    elif sample_width == 2:
        samples = np.frombuffer(raw, dtype='<i2').astype(np.float64) / 32768
    elif sample_width == 4:
        samples = np.frombuffer(raw, dtype='<i4').astype(np.float64) / 2**31
    else:
        raise ValueError(f"Unsupported sample width: {sample_width}")

    # mix down multi-channel to mono
    if n_channels > 1:
        samples = samples.reshape(-1, n_channels).mean(axis=1)

    return samples, framerate
