# spectrum.py
#
# Turns raw audio into the byte magnitude frames the receiver works on.
# Each frame covers the newest FFT_SIZE samples: Blackman window, FFT,
# magnitude in decibels, mapped linearly from [min_decibels, max_decibels]
# onto 0..255. This is the same frame shape a browser analyser node hands
# out, so thresholds are expressed on that 0..255 scale.

import numpy as np

from .config import FFT_SIZE, MIN_DECIBELS, MAX_DECIBELS, SMOOTHING


def bin_frequency(bin_index: int, sample_rate: float, fft_size: int) -> float:
    """Centre frequency of a magnitude bin in Hz."""
    return bin_index * sample_rate / fft_size


class SpectrumAnalyser:
    """Rolling-window spectrum analyser producing uint8 magnitude frames."""

    def __init__(self, fft_size=FFT_SIZE, min_decibels=MIN_DECIBELS,
                 max_decibels=MAX_DECIBELS, smoothing=SMOOTHING):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"FFT size must be a power of two >= 32: {fft_size}")
        if min_decibels >= max_decibels:
            raise ValueError(f"min_decibels ({min_decibels}) must be below max_decibels ({max_decibels})")
        if not 0 <= smoothing < 1:
            raise ValueError(f"Smoothing must be in [0, 1): {smoothing}")
        self.fft_size = fft_size
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self.smoothing = smoothing
        self._window = np.blackman(fft_size)
        self.reset()

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def reset(self):
        self._buffer = np.zeros(self.fft_size)
        self._previous = np.zeros(self.bin_count)

    def push(self, samples: np.ndarray):
        """Appends samples, keeping only the newest fft_size of them."""
        samples = np.asarray(samples, dtype=np.float64).ravel()
        if len(samples) >= self.fft_size:
            self._buffer = samples[-self.fft_size:].copy()
        else:
            self._buffer = np.concatenate([self._buffer[len(samples):], samples])

    def frame(self) -> np.ndarray:
        """Magnitude spectrum of the current window as bytes."""
        spectrum = np.fft.rfft(self._buffer * self._window)[:self.bin_count]
        magnitudes = np.abs(spectrum) / self.fft_size
        if self.smoothing:
            magnitudes = self.smoothing * self._previous + (1 - self.smoothing) * magnitudes
        self._previous = magnitudes

        decibels = 20 * np.log10(np.maximum(magnitudes, 1e-12))
        scaled = (decibels - self.min_decibels) / (self.max_decibels - self.min_decibels) * 255
        return np.clip(scaled, 0, 255).astype(np.uint8)
