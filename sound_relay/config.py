"""
Sound Relay Configuration - audio formats, buffer sizing and presets.

Provides:
- Audio format and buffer setting dataclasses
- Format and buffer presets (including per-platform buffer defaults)
- Loading/saving from JSON/environment
"""

import json
import os
import sys
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional


@dataclass(frozen=True)
class AudioFormat:
    """Linear PCM format of the samples moved through the pipeline."""

    sample_rate: float = 48000.0  # Hz
    sample_width: int = 1  # Bytes per sample
    signed: bool = True
    big_endian: bool = True
    channels: int = 1

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.sample_width < 1:
            raise ValueError(f"sample_width must be at least 1, got {self.sample_width}")
        if self.channels < 1:
            raise ValueError(f"channels must be at least 1, got {self.channels}")

    @property
    def frame_size(self) -> int:
        """Bytes per frame (one sample for every channel)."""
        return self.sample_width * self.channels

    @property
    def bits(self) -> int:
        return self.sample_width * 8

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AudioFormat":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class BufferSettings:
    """
    Transfer buffer sizing.

    Internal frame counts are the device-side buffer sizes; None leaves the
    choice to the audio backend.
    """

    min_transfer_frames: int = 32
    initial_pool_size: int = 50
    internal_to_transfer_ratio: int = 4
    transfer_frames: int = 1024  # Requested frames per transfer buffer
    internal_frames_in: Optional[int] = 4096
    internal_frames_out: Optional[int] = 4096

    def __post_init__(self):
        if self.min_transfer_frames < 1:
            raise ValueError(f"min_transfer_frames must be at least 1, got {self.min_transfer_frames}")
        if self.initial_pool_size < 0:
            raise ValueError(f"initial_pool_size must be >= 0, got {self.initial_pool_size}")
        if self.internal_to_transfer_ratio < 1:
            raise ValueError(
                f"internal_to_transfer_ratio must be at least 1, got {self.internal_to_transfer_ratio}"
            )
        if self.transfer_frames < 1:
            raise ValueError(f"transfer_frames must be at least 1, got {self.transfer_frames}")

    def effective_transfer_frames(self) -> int:
        """
        Frames per transfer buffer.

        Shrinks the requested size so that the capture device's internal
        buffer holds ``internal_to_transfer_ratio`` transfer buffers, but
        never goes below ``min_transfer_frames``.
        """
        frames = self.transfer_frames
        if self.internal_frames_in is not None:
            provisional = self.internal_frames_in // self.internal_to_transfer_ratio
            if provisional < frames:
                frames = provisional
        return max(frames, self.min_transfer_frames)

    def transfer_buffer_size(self, fmt: AudioFormat) -> int:
        """Bytes per transfer buffer for the given format."""
        return self.effective_transfer_frames() * fmt.frame_size

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BufferSettings":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# Formats used by the copy and play-wave tools
FORMAT_PRESETS: Dict[str, AudioFormat] = {
    "default": AudioFormat(sample_rate=48000.0, sample_width=1),
    "voice-16k": AudioFormat(sample_rate=16000.0, sample_width=1),
    "phone-8k": AudioFormat(sample_rate=8000.0, sample_width=1),
    "phone-8k-16bit": AudioFormat(sample_rate=8000.0, sample_width=2),
    "copy": AudioFormat(sample_rate=16000.0, sample_width=2),
}

BUFFER_PRESETS: Dict[str, BufferSettings] = {
    "default": BufferSettings(),
    "windows": BufferSettings(
        transfer_frames=256,
        internal_frames_in=1024,
        internal_frames_out=1024,
    ),
    "linux-default-output": BufferSettings(
        transfer_frames=4096,
        internal_frames_in=16384,
        internal_frames_out=None,  # Let the default output device choose
    ),
}


def get_format_preset(name: str) -> AudioFormat:
    """
    Get a format preset by name.

    Raises:
        KeyError: if the preset does not exist
    """
    key = name.lower()
    if key not in FORMAT_PRESETS:
        raise KeyError(f"Unknown format preset '{name}'. Available: {', '.join(FORMAT_PRESETS)}")
    return FORMAT_PRESETS[key]


def get_buffer_preset(name: str) -> BufferSettings:
    """
    Get a buffer preset by name.

    Raises:
        KeyError: if the preset does not exist
    """
    key = name.lower()
    if key not in BUFFER_PRESETS:
        raise KeyError(f"Unknown buffer preset '{name}'. Available: {', '.join(BUFFER_PRESETS)}")
    return BUFFER_PRESETS[key]


def list_format_presets() -> List[str]:
    """List available format preset names."""
    return list(FORMAT_PRESETS.keys())


def list_buffer_presets() -> List[str]:
    """List available buffer preset names."""
    return list(BUFFER_PRESETS.keys())


def platform_buffer_settings(platform: Optional[str] = None) -> BufferSettings:
    """Buffer preset suited to the running platform."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return BUFFER_PRESETS["windows"]
    if platform.startswith("linux"):
        return BUFFER_PRESETS["linux-default-output"]
    return BUFFER_PRESETS["default"]


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class PipelineConfig:
    """Complete configuration for one transfer pipeline run."""

    audio_format: AudioFormat = field(default_factory=AudioFormat)
    buffers: BufferSettings = field(default_factory=BufferSettings)

    # Statistics
    report_seconds: float = 2.0
    interval_decay: float = 0.25

    # Device identifiers passed to sounddevice (None = system default)
    input_device: Optional[str] = None
    output_device: Optional[str] = None

    def __post_init__(self):
        if self.report_seconds <= 0:
            raise ValueError(f"report_seconds must be positive, got {self.report_seconds}")
        if not 0.0 < self.interval_decay < 1.0:
            raise ValueError(f"interval_decay must be in (0, 1), got {self.interval_decay}")

    @property
    def transfer_frames(self) -> int:
        return self.buffers.effective_transfer_frames()

    @property
    def buffer_size(self) -> int:
        return self.buffers.transfer_buffer_size(self.audio_format)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "audio_format": self.audio_format.to_dict(),
            "buffers": self.buffers.to_dict(),
            "stats": {
                "report_seconds": self.report_seconds,
                "interval_decay": self.interval_decay,
            },
            "devices": {
                "input": self.input_device,
                "output": self.output_device,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineConfig":
        """Create from dictionary. Missing sections keep their defaults."""
        config = cls()

        if "audio_format" in data:
            config = replace(config, audio_format=AudioFormat.from_dict(data["audio_format"]))

        if "buffers" in data:
            config = replace(config, buffers=BufferSettings.from_dict(data["buffers"]))

        stats = data.get("stats", {})
        if stats:
            config = replace(
                config,
                report_seconds=stats.get("report_seconds", config.report_seconds),
                interval_decay=stats.get("interval_decay", config.interval_decay),
            )

        devices = data.get("devices", {})
        if devices:
            config = replace(
                config,
                input_device=devices.get("input"),
                output_device=devices.get("output"),
            )

        return config

    def save(self, path: Path) -> None:
        """Save configuration to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "PipelineConfig":
        """Load configuration from JSON file. Missing file gives defaults."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, base: Optional["PipelineConfig"] = None) -> "PipelineConfig":
        """
        Overlay SOUND_RELAY_* environment variables on a base configuration.

        Recognized: SOUND_RELAY_FORMAT, SOUND_RELAY_BUFFERS (preset names),
        SOUND_RELAY_SAMPLE_RATE, SOUND_RELAY_SAMPLE_WIDTH, SOUND_RELAY_SIGNED,
        SOUND_RELAY_BIG_ENDIAN, SOUND_RELAY_TRANSFER_FRAMES,
        SOUND_RELAY_POOL_SIZE, SOUND_RELAY_REPORT_SECONDS,
        SOUND_RELAY_INPUT_DEVICE, SOUND_RELAY_OUTPUT_DEVICE.
        """
        config = base or cls()
        env = os.environ

        fmt = config.audio_format
        if "SOUND_RELAY_FORMAT" in env:
            fmt = get_format_preset(env["SOUND_RELAY_FORMAT"])
        fmt_overrides = {}
        if "SOUND_RELAY_SAMPLE_RATE" in env:
            fmt_overrides["sample_rate"] = float(env["SOUND_RELAY_SAMPLE_RATE"])
        if "SOUND_RELAY_SAMPLE_WIDTH" in env:
            fmt_overrides["sample_width"] = int(env["SOUND_RELAY_SAMPLE_WIDTH"])
        if "SOUND_RELAY_SIGNED" in env:
            fmt_overrides["signed"] = _env_bool(env["SOUND_RELAY_SIGNED"])
        if "SOUND_RELAY_BIG_ENDIAN" in env:
            fmt_overrides["big_endian"] = _env_bool(env["SOUND_RELAY_BIG_ENDIAN"])
        if fmt_overrides:
            fmt = replace(fmt, **fmt_overrides)

        buffers = config.buffers
        if "SOUND_RELAY_BUFFERS" in env:
            buffers = get_buffer_preset(env["SOUND_RELAY_BUFFERS"])
        if "SOUND_RELAY_TRANSFER_FRAMES" in env:
            buffers = replace(buffers, transfer_frames=int(env["SOUND_RELAY_TRANSFER_FRAMES"]))
        if "SOUND_RELAY_POOL_SIZE" in env:
            buffers = replace(buffers, initial_pool_size=int(env["SOUND_RELAY_POOL_SIZE"]))

        return replace(
            config,
            audio_format=fmt,
            buffers=buffers,
            report_seconds=float(env.get("SOUND_RELAY_REPORT_SECONDS", config.report_seconds)),
            input_device=env.get("SOUND_RELAY_INPUT_DEVICE", config.input_device),
            output_device=env.get("SOUND_RELAY_OUTPUT_DEVICE", config.output_device),
        )


# Default config file location
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "sound-relay" / "config.json"


def load_config(
    path: Optional[Path] = None, fallback: Optional[PipelineConfig] = None
) -> PipelineConfig:
    """Load configuration from file, or return fallback (else defaults) if it is missing."""
    if path is None:
        path = DEFAULT_CONFIG_PATH
    path = Path(path)
    if not path.exists():
        return fallback or PipelineConfig()
    return PipelineConfig.load(path)


def save_config(config: PipelineConfig, path: Optional[Path] = None) -> None:
    """Save configuration to file."""
    if path is None:
        path = DEFAULT_CONFIG_PATH
    config.save(path)
