"""
Sample sources and sinks for the transfer pipeline.

Anything with activate/read/deactivate is a source and anything with
activate/write/deactivate is a sink. Variants provided here:

- MemorySource / MemorySink: scripted in-memory endpoints for tests
- WaveSource: continuous synthetic tone
- SoundDeviceSource / SoundDeviceSink: blocking sounddevice raw streams
"""

import logging
import sys
import threading
from typing import List, Optional, Protocol, Union, runtime_checkable

from .config import AudioFormat
from .synth import CompositeWave

logger = logging.getLogger(__name__)


@runtime_checkable
class SampleSource(Protocol):
    """Produces PCM bytes into caller-owned buffers."""

    def activate(self) -> None:
        ...

    def read(self, buffer: bytearray, offset: int, length: int) -> int:
        ...

    def deactivate(self) -> None:
        ...


@runtime_checkable
class SampleSink(Protocol):
    """Consumes PCM bytes from caller-owned buffers."""

    def activate(self) -> None:
        ...

    def write(self, buffer: bytearray, offset: int, length: int) -> int:
        ...

    def deactivate(self) -> None:
        ...


def _check_range(buffer, offset: int, length: int):
    if offset < 0 or length < 0 or offset + length > len(buffer):
        raise IndexError(f"Range offset={offset} length={length} does not fit in buffer of {len(buffer)}")


# === IN-MEMORY ENDPOINTS ===


class MemorySource:
    """
    Source that serves bytes from memory.

    Each read copies up to ``length`` bytes from the current position. When
    the data runs out a non-looping source returns short reads and then 0;
    a looping source wraps around.
    """

    def __init__(
        self,
        data: bytes,
        loop: bool = False,
        fail_on_activate: Optional[BaseException] = None,
        max_read: Optional[int] = None,
    ):
        """
        Args:
            data: Bytes to serve
            loop: Wrap around at the end of data
            fail_on_activate: Exception raised by activate(), for setup tests
            max_read: Cap on bytes returned per read, to force short reads
        """
        if loop and not data:
            raise ValueError("A looping source needs non-empty data")
        self.data = bytes(data)
        self.loop = loop
        self.fail_on_activate = fail_on_activate
        self.max_read = max_read
        self.position = 0
        self.active = False
        self.activated = False
        self.deactivated = False
        self.read_calls = 0
        self._lock = threading.Lock()

    def activate(self):
        if self.fail_on_activate is not None:
            raise self.fail_on_activate
        self.active = True
        self.activated = True

    def read(self, buffer: bytearray, offset: int, length: int) -> int:
        _check_range(buffer, offset, length)
        with self._lock:
            self.read_calls += 1
            if self.max_read is not None:
                length = min(length, self.max_read)
            written = 0
            while written < length:
                if self.position >= len(self.data):
                    if not self.loop:
                        break
                    self.position = 0
                chunk = min(length - written, len(self.data) - self.position)
                buffer[offset + written : offset + written + chunk] = self.data[
                    self.position : self.position + chunk
                ]
                self.position += chunk
                written += chunk
            return written

    @property
    def exhausted(self) -> bool:
        return not self.loop and self.position >= len(self.data)

    def deactivate(self):
        self.active = False
        self.deactivated = True


class MemorySink:
    """Sink that records every write for inspection."""

    def __init__(self, fail_on_activate: Optional[BaseException] = None):
        self.fail_on_activate = fail_on_activate
        self.writes: List[bytes] = []
        self.active = False
        self.activated = False
        self.drained = False
        self.closed = False
        self._lock = threading.Lock()
        self._written = threading.Condition(self._lock)

    def activate(self):
        if self.fail_on_activate is not None:
            raise self.fail_on_activate
        self.active = True
        self.activated = True

    def write(self, buffer: bytearray, offset: int, length: int) -> int:
        _check_range(buffer, offset, length)
        with self._lock:
            self.writes.append(bytes(buffer[offset : offset + length]))
            self._written.notify_all()
        return length

    def wait_for_writes(self, count: int, timeout: Optional[float] = None) -> bool:
        """Block until at least ``count`` writes were recorded."""
        with self._lock:
            return self._written.wait_for(lambda: len(self.writes) >= count, timeout=timeout)

    @property
    def data(self) -> bytes:
        with self._lock:
            return b"".join(self.writes)

    def deactivate(self):
        self.drained = True
        self.closed = True
        self.active = False


# === SYNTHETIC SOURCE ===


class WaveSource:
    """Source that fills buffers from a continuous wave generator."""

    def __init__(self, wave: CompositeWave):
        self.wave = wave
        self.active = False

    @property
    def fmt(self) -> AudioFormat:
        return self.wave.fmt

    def activate(self):
        self.active = True
        logger.info(
            f"Wave source: {', '.join(f'{f:.3f}Hz' for f in self.wave.frequencies)} "
            f"at {self.fmt.sample_rate:.0f}Hz"
        )

    def read(self, buffer: bytearray, offset: int, length: int) -> int:
        return self.wave.insert_next_bytes(buffer, offset, length)

    def deactivate(self):
        self.active = False


# === SOUNDDEVICE ADAPTERS ===


def sounddevice_dtype(fmt: AudioFormat) -> str:
    """
    sounddevice raw dtype for a format.

    Raises:
        ValueError: if sounddevice has no matching raw sample type
    """
    if fmt.sample_width == 1:
        return "int8" if fmt.signed else "uint8"
    if not fmt.signed:
        raise ValueError(f"Unsigned {fmt.sample_width}-byte samples are not supported by sounddevice")
    dtypes = {2: "int16", 3: "int24", 4: "int32"}
    if fmt.sample_width not in dtypes:
        raise ValueError(f"Unsupported sample width for sounddevice: {fmt.sample_width}")
    return dtypes[fmt.sample_width]


def _swap_bytes(buffer, offset: int, length: int, width: int):
    """Reverse the byte order of every whole sample in place."""
    for start in range(offset, offset + length - width + 1, width):
        buffer[start : start + width] = buffer[start : start + width][::-1]


class _SoundDeviceEndpoint:
    def __init__(self, fmt: AudioFormat, frames_per_buffer: Optional[int] = None,
                 device: Optional[Union[int, str]] = None):
        """
        Args:
            fmt: Sample format of the stream
            frames_per_buffer: Internal device buffer size in frames (None = backend default)
            device: sounddevice device index or name (None = system default)
        """
        self.fmt = fmt
        self.frames_per_buffer = frames_per_buffer
        self.device = device
        self.dtype = sounddevice_dtype(fmt)
        # Raw streams use native byte order
        native_big = sys.byteorder == "big"
        self._swap = fmt.sample_width > 1 and fmt.big_endian != native_big
        self._stream = None

    def _stream_kwargs(self) -> dict:
        kwargs = {
            "samplerate": self.fmt.sample_rate,
            "channels": self.fmt.channels,
            "dtype": self.dtype,
            "device": self.device,
        }
        if self.frames_per_buffer is not None:
            kwargs["blocksize"] = self.frames_per_buffer
        return kwargs


class SoundDeviceSource(_SoundDeviceEndpoint):
    """Capture from an input device with a blocking RawInputStream."""

    def activate(self):
        import sounddevice as sd

        self._stream = sd.RawInputStream(**self._stream_kwargs())
        self._stream.start()
        logger.info(f"Capture started: device={self.device} dtype={self.dtype} rate={self.fmt.sample_rate:.0f}")

    def read(self, buffer: bytearray, offset: int, length: int) -> int:
        _check_range(buffer, offset, length)
        frames = length // self.fmt.frame_size
        data, overflowed = self._stream.read(frames)
        if overflowed:
            logger.debug("Input overflow")
        count = len(data)
        buffer[offset : offset + count] = bytes(data)
        if self._swap:
            _swap_bytes(buffer, offset, count, self.fmt.sample_width)
        return count

    def deactivate(self):
        if self._stream is None:
            return
        # abort() drops whatever is still buffered in the device
        self._stream.abort()
        self._stream.close()
        self._stream = None
        logger.info("Capture stopped")


class SoundDeviceSink(_SoundDeviceEndpoint):
    """Play to an output device with a blocking RawOutputStream."""

    def activate(self):
        import sounddevice as sd

        self._stream = sd.RawOutputStream(**self._stream_kwargs())
        self._stream.start()
        logger.info(f"Playback started: device={self.device} dtype={self.dtype} rate={self.fmt.sample_rate:.0f}")

    def write(self, buffer: bytearray, offset: int, length: int) -> int:
        _check_range(buffer, offset, length)
        length -= length % self.fmt.frame_size
        data = bytearray(buffer[offset : offset + length])
        if self._swap:
            _swap_bytes(data, 0, length, self.fmt.sample_width)
        underflowed = self._stream.write(bytes(data))
        if underflowed:
            logger.debug("Output underflow")
        return length

    def deactivate(self):
        if self._stream is None:
            return
        # stop() plays out pending buffers before returning
        self._stream.stop()
        self._stream.close()
        self._stream = None
        logger.info("Playback stopped")
