"""
Tests for waveform synthesis.
"""

import numpy as np
import pytest

from sound_relay.config import AudioFormat
from sound_relay.sample_codec import decode_samples
from sound_relay.synth import (
    CompositeWave,
    PureWave,
    generate_cycle,
    generate_cycle_formatted,
    triad_wave,
)

# 8 samples per cycle
FREQUENCY = 400.0
SAMPLE_RATE = 8 * 400.0


class TestGenerateCycle:
    def test_values(self):
        expected = [
            43689.0,
            30892.788163259076,
            2.6751797003974358e-12,
            -30892.788163259072,
            -43689.0,
            -30892.788163259083,
            -8.025539101192307e-12,
            30892.78816325907,
        ]
        result = generate_cycle(FREQUENCY, 43689, SAMPLE_RATE)
        assert len(result) == 8
        np.testing.assert_allclose(result, expected, rtol=0, atol=1e-9)

    def test_length_rounds(self):
        assert len(generate_cycle(441.0, 1.0, 44100.0)) == 100
        assert len(generate_cycle(3000.0, 1.0, 8000.0)) == 3  # 2.67 -> 3

    def test_invalid_frequency(self):
        with pytest.raises(ValueError):
            generate_cycle(0.0, 1.0, 8000.0)


class TestGenerateCycleFormatted:
    def test_one_byte(self):
        result = generate_cycle_formatted(FREQUENCY, 127 // 2, SAMPLE_RATE, 1, True, True, 1)
        assert result == bytes([0x3F, 0x2D, 0x00, 0xD3, 0xC1, 0xD3, 0x00, 0x2D])

    def test_two_bytes_big_endian(self):
        result = generate_cycle_formatted(FREQUENCY, 32767 // 2, SAMPLE_RATE, 2, True, True, 1)
        assert result == bytes.fromhex("3fff 2d41 0000 d2bf c001 d2bf 0000 2d41")

    def test_two_bytes_little_endian_clipped(self):
        amplitude = 32767 + 32767 // 3
        result = generate_cycle_formatted(FREQUENCY, amplitude, SAMPLE_RATE, 2, True, False, 1)
        assert result == bytes.fromhex("ff7f ad78 0000 5387 0080 5387 0000 ad78")

    def test_channels_replicate_samples(self):
        mono = generate_cycle_formatted(FREQUENCY, 63, SAMPLE_RATE, 1, True, True, 1)
        stereo = generate_cycle_formatted(FREQUENCY, 63, SAMPLE_RATE, 1, True, True, 2)
        assert stereo == bytes(b for b in mono for _ in range(2))


class TestWaves:
    def test_pure_wave_matches_cycle(self):
        fmt = AudioFormat(sample_rate=SAMPLE_RATE, sample_width=2)
        wave = PureWave(FREQUENCY, 1000, fmt)
        np.testing.assert_allclose(wave.next_samples(8), generate_cycle(FREQUENCY, 1000, SAMPLE_RATE), atol=1e-9)

    def test_phase_continues_between_calls(self):
        fmt = AudioFormat(sample_rate=8000.0, sample_width=2)
        split = PureWave(440.0, 1000, fmt)
        whole = PureWave(440.0, 1000, fmt)
        joined = np.concatenate([split.next_samples(37), split.next_samples(63)])
        np.testing.assert_allclose(joined, whole.next_samples(100), atol=1e-9)
        assert split.position == 100

    def test_initial_phase(self):
        fmt = AudioFormat(sample_rate=SAMPLE_RATE)
        wave = PureWave(FREQUENCY, 10, fmt, initial_phase=np.pi / 2)
        assert wave.next_samples(1)[0] == pytest.approx(0.0, abs=1e-9)

    def test_composite_is_sum(self):
        fmt = AudioFormat(sample_rate=8000.0, sample_width=2)
        wave = CompositeWave([400.0, 1000.0], [100, 50], fmt)
        a = PureWave(400.0, 100, fmt).next_samples(64)
        b = PureWave(1000.0, 50, fmt).next_samples(64)
        np.testing.assert_allclose(wave.next_samples(64), a + b, atol=1e-9)

    def test_insert_whole_frames_only(self):
        fmt = AudioFormat(sample_rate=SAMPLE_RATE, sample_width=2)
        wave = PureWave(FREQUENCY, 32767 // 2, fmt)
        buffer = bytearray(b"\xaa" * 19)
        written = wave.insert_next_bytes(buffer, 1, 17)
        assert written == 16
        assert bytes(buffer[1:17]) == bytes.fromhex("3fff 2d41 0000 d2bf c001 d2bf 0000 2d41")
        assert buffer[0] == 0xAA and buffer[17] == 0xAA

    def test_insert_clips(self):
        fmt = AudioFormat(sample_rate=SAMPLE_RATE, sample_width=1)
        wave = PureWave(FREQUENCY, 1000, fmt)
        buffer = bytearray(8)
        wave.insert_next_bytes(buffer, 0, 8)
        samples = decode_samples(buffer, 1, True, True)
        assert samples.max() == 127
        assert samples.min() == -128

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError):
            CompositeWave([400.0, 500.0], [1.0], AudioFormat())

    def test_triad(self):
        wave = triad_wave(AudioFormat())
        assert list(wave.frequencies) == [261.626, 329.628, 391.995]
        assert list(wave.amplitudes) == [41, 41, 41]
