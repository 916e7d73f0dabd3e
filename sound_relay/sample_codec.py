"""
PCM sample codec.

Converts between logical integer samples and their byte representation
for any sample width, signed or unsigned, big or little endian.

Usage:
    buffer = bytearray(2)
    encode_sample(-2, buffer, 0, 2, signed=True, big_endian=True)
    assert bytes(buffer) == b"\\xff\\xfe"
    assert decode_sample(buffer, 0, 2, signed=True, big_endian=True) == -2
"""

import math
from typing import Tuple, Union

import numpy as np

Number = Union[int, float]


def _check_bounds(buffer, offset: int, width: int):
    if width < 1:
        raise ValueError(f"Sample width must be at least 1 byte, got {width}")
    if offset < 0 or offset + width > len(buffer):
        raise IndexError(
            f"Sample of {width} bytes at offset {offset} does not fit in buffer of {len(buffer)}"
        )


def round_sample(value: Number) -> int:
    """Round a real sample value to the nearest integer, halves rounding up."""
    if isinstance(value, (int, np.integer)):
        return int(value)
    return int(math.floor(value + 0.5))


def decode_sample(buffer, offset: int, width: int, signed: bool, big_endian: bool) -> int:
    """
    Read one sample from a byte buffer.

    Args:
        buffer: bytes-like object holding the sample
        offset: Index of the first byte of the sample
        width: Sample width in bytes
        signed: If True, the top bit of the sample sign-extends the result
        big_endian: If True, the byte at offset is the most significant

    Returns:
        The decoded integer sample
    """
    _check_bounds(buffer, offset, width)
    return int.from_bytes(
        bytes(buffer[offset : offset + width]),
        byteorder="big" if big_endian else "little",
        signed=signed,
    )


def encode_sample(
    value: Number, buffer, offset: int, width: int, signed: bool, big_endian: bool
) -> None:
    """
    Write one sample into a byte buffer.

    The low ``width * 8`` bits of the two's-complement value are stored, so
    out-of-range values wrap. Callers that need saturation should use
    clamp_sample first. The signed flag does not change the stored bits.

    Args:
        value: Sample value (real values are rounded, halves up)
        buffer: Mutable bytes-like object to write into
        offset: Index of the first byte of the sample
        width: Sample width in bytes
        signed: Sample signedness (kept for symmetry with decode_sample)
        big_endian: If True, the most significant byte goes first
    """
    _check_bounds(buffer, offset, width)
    bits = width * 8
    raw = round_sample(value) & ((1 << bits) - 1)
    buffer[offset : offset + width] = raw.to_bytes(width, byteorder="big" if big_endian else "little")


def sample_range(width: int, signed: bool) -> Tuple[int, int]:
    """Return the (min, max) integer range of a sample format."""
    if width < 1:
        raise ValueError(f"Sample width must be at least 1 byte, got {width}")
    bits = width * 8
    if signed:
        return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    return 0, (1 << bits) - 1


def clamp_sample(value: Number, width: int, signed: bool) -> int:
    """Round a value and saturate it to the representable range."""
    low, high = sample_range(width, signed)
    return max(low, min(high, round_sample(value)))


def max_amplitude_for_bits(bits: int) -> int:
    """Largest positive value of a signed sample with the given bit depth."""
    if bits < 1:
        raise ValueError(f"Bit depth must be positive, got {bits}")
    return (1 << (bits - 1)) - 1


def to_hex_string(value: int, bits: int = 8) -> str:
    """
    Lower-case hex of an 8- or 16-bit value, without sign-extension fill.

    to_hex_string(0xEE) -> "ee", to_hex_string(-4370, 16) -> "eeee".
    """
    if bits not in (8, 16):
        raise ValueError(f"Only 8 and 16 bit values are supported, got {bits}")
    return format(value & ((1 << bits) - 1), "x")


def decode_samples(buffer, width: int, signed: bool, big_endian: bool) -> np.ndarray:
    """
    Decode every whole sample in a buffer.

    Trailing bytes that do not make up a full sample are ignored.

    Returns:
        int64 array of samples
    """
    if width < 1:
        raise ValueError(f"Sample width must be at least 1 byte, got {width}")
    count = len(buffer) // width
    if count == 0:
        return np.zeros(0, dtype=np.int64)

    if width > 7:
        # Wider than int64 can hold unsigned - decode one at a time
        return np.array(
            [decode_sample(buffer, i * width, width, signed, big_endian) for i in range(count)],
            dtype=object,
        )

    raw = np.frombuffer(bytes(buffer[: count * width]), dtype=np.uint8).reshape(count, width)
    if not big_endian:
        raw = raw[:, ::-1]
    weights = np.array([1 << (8 * (width - 1 - i)) for i in range(width)], dtype=np.int64)
    values = raw.astype(np.int64) @ weights

    if signed:
        sign_bit = 1 << (8 * width - 1)
        values = np.where(values >= sign_bit, values - (sign_bit << 1), values)
    return values
