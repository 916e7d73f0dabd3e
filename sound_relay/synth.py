"""
Synthetic waveform generation.

Single cycles for offline analysis, and continuous phase-preserving tone
generators that can feed the transfer pipeline as a sample source.
"""

import math
from typing import List, Optional, Sequence

import numpy as np

from .config import AudioFormat
from .sample_codec import clamp_sample, encode_sample


def generate_cycle(frequency: float, amplitude: float, sample_rate: float) -> np.ndarray:
    """
    One cycle of a cosine wave.

    Args:
        frequency: Tone frequency in Hz
        amplitude: Peak value
        sample_rate: Samples per second

    Returns:
        float64 array of round(sample_rate / frequency) samples,
        x[n] = amplitude * cos(2*pi*frequency*n/sample_rate)
    """
    if frequency <= 0:
        raise ValueError(f"frequency must be positive, got {frequency}")
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    count = int(math.floor(sample_rate / frequency + 0.5))
    n = np.arange(count, dtype=np.float64)
    return amplitude * np.cos(2.0 * np.pi * frequency * n / sample_rate)


def generate_cycle_formatted(
    frequency: float,
    amplitude: float,
    sample_rate: float,
    sample_width: int,
    signed: bool,
    big_endian: bool,
    channels: int = 1,
) -> bytes:
    """
    One cycle encoded as PCM bytes.

    Each value is rounded and saturated to the sample range, then written
    once per channel.
    """
    if channels < 1:
        raise ValueError(f"channels must be at least 1, got {channels}")
    cycle = generate_cycle(frequency, amplitude, sample_rate)
    frame_size = sample_width * channels
    out = bytearray(len(cycle) * frame_size)
    for i, value in enumerate(cycle):
        sample = clamp_sample(value, sample_width, signed)
        for ch in range(channels):
            encode_sample(sample, out, i * frame_size + ch * sample_width, sample_width, signed, big_endian)
    return bytes(out)


class CompositeWave:
    """
    Sum of cosine tones, generated continuously.

    Phase carries over between calls, so consecutive buffers join without
    discontinuities.
    """

    def __init__(
        self,
        frequencies: Sequence[float],
        amplitudes: Sequence[float],
        fmt: AudioFormat,
        phases: Optional[Sequence[float]] = None,
    ):
        """
        Args:
            frequencies: Tone frequencies in Hz
            amplitudes: Peak value of each tone
            fmt: Output format (rate, width, sign, byte order, channels)
            phases: Initial phase of each tone in radians (default all 0)
        """
        if len(frequencies) == 0:
            raise ValueError("At least one frequency is required")
        if len(amplitudes) != len(frequencies):
            raise ValueError(
                f"Got {len(amplitudes)} amplitudes for {len(frequencies)} frequencies"
            )
        if phases is None:
            phases = [0.0] * len(frequencies)
        if len(phases) != len(frequencies):
            raise ValueError(f"Got {len(phases)} phases for {len(frequencies)} frequencies")

        self.fmt = fmt
        self.frequencies = np.asarray(frequencies, dtype=np.float64)
        self.amplitudes = np.asarray(amplitudes, dtype=np.float64)
        self.phases = np.asarray(phases, dtype=np.float64)
        self._position = 0  # Samples generated so far

    @property
    def position(self) -> int:
        return self._position

    def next_samples(self, count: int) -> np.ndarray:
        """Next ``count`` real-valued samples (one per frame)."""
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        n = np.arange(self._position, self._position + count, dtype=np.float64)
        step = 2.0 * np.pi * self.frequencies / self.fmt.sample_rate
        # Shape (tones, count) summed over tones
        angles = step[:, None] * n[None, :] + self.phases[:, None]
        samples = (self.amplitudes[:, None] * np.cos(angles)).sum(axis=0)
        self._position += count
        return samples

    def insert_next_bytes(self, buffer, offset: int, length: int) -> int:
        """
        Encode the next whole frames into ``buffer[offset:offset + length]``.

        Returns:
            Number of bytes written (a multiple of the frame size)
        """
        if offset < 0 or length < 0 or offset + length > len(buffer):
            raise IndexError(
                f"Range offset={offset} length={length} does not fit in buffer of {len(buffer)}"
            )
        fmt = self.fmt
        frames = length // fmt.frame_size
        for i, value in enumerate(self.next_samples(frames)):
            sample = clamp_sample(value, fmt.sample_width, fmt.signed)
            base = offset + i * fmt.frame_size
            for ch in range(fmt.channels):
                encode_sample(
                    sample, buffer, base + ch * fmt.sample_width, fmt.sample_width, fmt.signed, fmt.big_endian
                )
        return frames * fmt.frame_size


class PureWave(CompositeWave):
    """Single cosine tone, generated continuously."""

    def __init__(self, frequency: float, amplitude: float, fmt: AudioFormat, initial_phase: float = 0.0):
        super().__init__([frequency], [amplitude], fmt, [initial_phase])

    @property
    def frequency(self) -> float:
        return float(self.frequencies[0])

    @property
    def amplitude(self) -> float:
        return float(self.amplitudes[0])


def triad_wave(fmt: AudioFormat, amplitude: Optional[float] = None) -> CompositeWave:
    """C major triad (C4, E4, G4), each tone at a third of the usable range."""
    frequencies: List[float] = [261.626, 329.628, 391.995]
    if amplitude is None:
        amplitude = (1 << (fmt.bits - 1)) - 1
    each = amplitude // 3 - 1
    return CompositeWave(frequencies, [each] * len(frequencies), fmt)
