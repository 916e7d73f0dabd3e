"""
Spectral analysis of fixed-length real signals.

SpectralEngine computes the N-point DFT of a signal (scipy FFT when N is a
power of two, direct summation otherwise) and answers power queries on the
non-redundant half of the result.

Usage:
    engine = SpectralEngine(size=512, sample_rate=8000)
    engine.transform(signal)
    strongest = engine.power_peaks(margin=1.0, threshold=100.0, plateau_center_only=True)
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from scipy import fft as sp_fft
from scipy.ndimage import convolve1d

from .peaks import IndexAndValue, peaks

logger = logging.getLogger(__name__)

# Three-tap smoothing kernel for smoothed_power()
SMOOTHING_KERNEL = np.array([0.25, 0.5, 0.25], dtype=np.float64)

# Twiddle factors per block of dft() rows, bounding its memory to O(N)
DFT_BLOCK_ELEMENTS = 1 << 18


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


class SpectralEngine:
    """DFT/FFT of length-``size`` signals with power spectrum queries."""

    def __init__(self, size: int, sample_rate: float):
        """
        Args:
            size: Signal length N
            sample_rate: Sample rate of the signal in Hz
        """
        if size < 1:
            raise ValueError(f"size must be at least 1, got {size}")
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.size = size
        self.sample_rate = float(sample_rate)
        self.results_size = size // 2 + 1
        self.use_fast_path = is_power_of_two(size)

        self._results: Optional[np.ndarray] = None
        self._power: Optional[np.ndarray] = None
        self._smoothed: Optional[np.ndarray] = None

        logger.debug(
            f"SpectralEngine: N={size} rate={self.sample_rate:.0f}Hz "
            f"({'fft' if self.use_fast_path else 'direct dft'})"
        )

    # === FREQUENCY MAPPING ===

    def frequency_at_index(self, n: int) -> float:
        """Center frequency of bin n in Hz."""
        return n * self.sample_rate / self.size

    def index_for_frequency(self, frequency: float) -> int:
        """Nearest bin to a frequency, clamped to the meaningful half."""
        index = int(np.floor(frequency * self.size / self.sample_rate + 0.5))
        return max(0, min(self.results_size - 1, index))

    def nyquist(self) -> float:
        return self.sample_rate / 2.0

    # === TRANSFORM ===

    @staticmethod
    def dft(signal: Sequence[float]) -> np.ndarray:
        """
        Reference DFT by direct summation, O(N^2) time.

        X[k] = sum_n x[n] * exp(-2j*pi*k*n/N)

        Rows are computed in blocks of about DFT_BLOCK_ELEMENTS twiddle
        factors, so memory stays linear in N.
        """
        x = np.asarray(signal, dtype=np.float64)
        size = len(x)
        if size == 0:
            return np.zeros(0, dtype=np.complex128)
        n = np.arange(size)
        rows = max(1, DFT_BLOCK_ELEMENTS // size)
        result = np.empty(size, dtype=np.complex128)
        for first in range(0, size, rows):
            k = n[first : first + rows]
            # Reduce k*n mod N before scaling so large products keep precision
            exponent = np.outer(k, n) % size
            twiddle = np.exp(exponent * (-2j * np.pi / size))
            result[first : first + rows] = twiddle @ x
        return result

    def transform(self, signal: Sequence[float]) -> np.ndarray:
        """
        Full N-point DFT of a real signal. Results are kept for the queries.

        Raises:
            ValueError: if the signal is not ``size`` samples long
        """
        x = np.asarray(signal, dtype=np.float64)
        if x.ndim != 1 or len(x) != self.size:
            raise ValueError(f"Expected a signal of {self.size} samples, got shape {x.shape}")

        if self.use_fast_path:
            results = sp_fft.fft(x)
        else:
            results = self.dft(x)

        self._results = np.asarray(results, dtype=np.complex128)
        half = self._results[: self.results_size]
        self._power = half.real ** 2 + half.imag ** 2
        self._smoothed = None
        return self._results

    def _require_results(self):
        if self._results is None:
            raise RuntimeError("No transform has been computed yet")

    @property
    def results(self) -> np.ndarray:
        """Full complex result of the last transform."""
        self._require_results()
        return self._results

    def result_at(self, n: int) -> complex:
        self._require_results()
        return complex(self._results[n])

    # === POWER ===

    @staticmethod
    def filter_kernel() -> np.ndarray:
        return SMOOTHING_KERNEL.copy()

    def power(self) -> np.ndarray:
        """|X[n]|^2 for n in [0, results_size)."""
        self._require_results()
        return self._power

    def smoothed_power(self) -> np.ndarray:
        """Power convolved with the smoothing kernel, edges clamped."""
        self._require_results()
        if self._smoothed is None:
            self._smoothed = convolve1d(self._power, SMOOTHING_KERNEL, mode="nearest")
        return self._smoothed

    def average_power(self) -> float:
        return float(np.mean(self.power()))

    def maximum_power(self) -> float:
        return float(np.max(self.power()))

    def maximum_smoothed_power(self) -> float:
        return float(np.max(self.smoothed_power()))

    def power_at_index(self, n: int) -> float:
        power = self.power()
        if not 0 <= n < self.results_size:
            raise IndexError(f"Index {n} outside [0, {self.results_size})")
        return float(power[n])

    def power_at_frequency(self, frequency: float) -> float:
        return self.power_at_index(self.index_for_frequency(frequency))

    def power_in_index_range(self, n1: int, n2: int) -> float:
        """Total power of bins n1..n2 inclusive."""
        power = self.power()
        if n1 > n2:
            n1, n2 = n2, n1
        if n1 < 0 or n2 >= self.results_size:
            raise IndexError(f"Range {n1}..{n2} outside [0, {self.results_size})")
        return float(np.sum(power[n1 : n2 + 1]))

    def power_in_freq_range(self, f1: float, f2: float) -> float:
        """Total power of the bins nearest to f1 through f2."""
        return self.power_in_index_range(self.index_for_frequency(f1), self.index_for_frequency(f2))

    # === PEAKS ===

    def power_peaks(self, margin: float, threshold: float, plateau_center_only: bool = False) -> List[IndexAndValue]:
        return peaks(self.power(), margin, threshold, plateau_center_only)

    def smoothed_power_peaks(
        self, margin: float, threshold: float, plateau_center_only: bool = False
    ) -> List[IndexAndValue]:
        return peaks(self.smoothed_power(), margin, threshold, plateau_center_only)
