"""
Sound Relay CLI - command-line interface for the transfer pipeline.

Commands:
    sound-relay copy       - Copy live input to output (microphone to speakers)
    sound-relay play-wave  - Play a synthetic tone through the pipeline
    sound-relay analyze    - Synthesize, encode and analyze a tone offline
"""

import argparse
import logging
import signal
import sys
import threading
from dataclasses import replace
from pathlib import Path

from .config import (
    DEFAULT_CONFIG_PATH,
    PipelineConfig,
    get_buffer_preset,
    get_format_preset,
    list_buffer_presets,
    list_format_presets,
    load_config,
    platform_buffer_settings,
    save_config,
)
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


def validate_positive_int(value: str) -> int:
    """Validate positive integer."""
    try:
        num = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer: {value}")

    if num <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got: {num}")
    return num


def validate_non_negative_int(value: str) -> int:
    """Validate integer >= 0."""
    try:
        num = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer: {value}")

    if num < 0:
        raise argparse.ArgumentTypeError(f"Value must be >= 0, got: {num}")
    return num


def validate_positive_float(value: str) -> float:
    """Validate positive number."""
    try:
        num = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number: {value}")

    if num <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got: {num}")
    return num


def validate_non_negative_float(value: str) -> float:
    """Validate number >= 0."""
    try:
        num = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number: {value}")

    if num < 0:
        raise argparse.ArgumentTypeError(f"Value must be >= 0, got: {num}")
    return num


def validate_format_preset(value: str) -> str:
    """Validate audio format preset name."""
    if value.lower() not in list_format_presets():
        raise argparse.ArgumentTypeError(
            f"Unknown format preset: {value} (choose from {', '.join(list_format_presets())})"
        )
    return value.lower()


def validate_buffer_preset(value: str) -> str:
    """Validate buffer preset name."""
    if value.lower() not in list_buffer_presets():
        raise argparse.ArgumentTypeError(
            f"Unknown buffer preset: {value} (choose from {', '.join(list_buffer_presets())})"
        )
    return value.lower()


def _device(value):
    """Device argument: index if numeric, otherwise a name fragment."""
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return value


def build_config(args, default_format: str) -> PipelineConfig:
    """
    Resolve the pipeline configuration: file, then env, then flags.

    The file is --config when given, else the default config path if it
    exists. With --save-config the resolved configuration is written out.
    """
    preset = PipelineConfig(
        audio_format=get_format_preset(default_format),
        buffers=platform_buffer_settings(),
    )
    config = load_config(Path(args.config) if args.config else None, fallback=preset)
    config = PipelineConfig.from_env(config)

    if args.format:
        config = replace(config, audio_format=get_format_preset(args.format))
    if args.buffers:
        config = replace(config, buffers=get_buffer_preset(args.buffers))
    if args.transfer_frames:
        config = replace(config, buffers=replace(config.buffers, transfer_frames=args.transfer_frames))
    if args.pool_size is not None:
        config = replace(config, buffers=replace(config.buffers, initial_pool_size=args.pool_size))
    if args.report_seconds:
        config = replace(config, report_seconds=args.report_seconds)
    if getattr(args, "input_device", None) is not None:
        config = replace(config, input_device=args.input_device)
    if args.output_device is not None:
        config = replace(config, output_device=args.output_device)

    if args.save_config:
        save_config(config, Path(args.save_config))
        logger.info(f"Saved configuration to {args.save_config}")
    return config


def _add_pipeline_arguments(parser: argparse.ArgumentParser, default_format: str, with_input: bool):
    fmt_group = parser.add_argument_group("Audio Format")
    fmt_group.add_argument(
        "--format",
        type=validate_format_preset,
        help=f"Format preset (default: {default_format}; choices: {', '.join(list_format_presets())})",
    )
    fmt_group.add_argument(
        "--config", help=f"JSON configuration file (default: {DEFAULT_CONFIG_PATH} if present)"
    )
    fmt_group.add_argument("--save-config", metavar="PATH", help="Write the resolved configuration to PATH")

    buf_group = parser.add_argument_group("Buffers")
    buf_group.add_argument(
        "--buffers",
        type=validate_buffer_preset,
        help=f"Buffer preset (default: chosen by platform; choices: {', '.join(list_buffer_presets())})",
    )
    buf_group.add_argument(
        "--transfer-frames", type=validate_positive_int, help="Requested frames per transfer buffer"
    )
    buf_group.add_argument("--pool-size", type=validate_non_negative_int, help="Buffers allocated up front")
    buf_group.add_argument(
        "--report-seconds", type=validate_positive_float, help="Seconds of audio between stats reports"
    )

    dev_group = parser.add_argument_group("Devices")
    if with_input:
        dev_group.add_argument("--input-device", type=_device, help="Input device index or name")
    dev_group.add_argument("--output-device", type=_device, help="Output device index or name")

    run_group = parser.add_argument_group("Run")
    run_group.add_argument(
        "--duration",
        type=validate_positive_float,
        help="Stop after this many seconds (default: run until Ctrl+C)",
    )


def _run_pipeline(source, sink, config: PipelineConfig, duration, wait_for_pool: bool = False) -> int:
    """Run a pipeline until Ctrl+C or the duration elapses."""
    from .pipeline import TransferPipeline
    from .stages import StageSetupError

    done = threading.Event()

    # Signal handlers
    def signal_handler(sig, frame):
        done.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    pipeline = TransferPipeline(source, sink, config, wait_for_pool=wait_for_pool)
    try:
        pipeline.start()
    except StageSetupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("Running. Press Ctrl+C to stop.")
    try:
        done.wait(duration)
    finally:
        pipeline.stop()

    report = pipeline.playback.stats.report()
    print(
        f"Played {report.passes} buffers "
        f"({report.short_transfers} short, {report.interruptions} interrupted waits)"
    )
    return 0


def _cmd_copy(args) -> int:
    """Copy input device audio to the output device."""
    from .devices import SoundDeviceSink, SoundDeviceSource

    config = build_config(args, default_format="copy")
    settings = config.buffers
    source = SoundDeviceSource(config.audio_format, settings.internal_frames_in, _device(config.input_device))
    sink = SoundDeviceSink(config.audio_format, settings.internal_frames_out, _device(config.output_device))
    return _run_pipeline(source, sink, config, args.duration)


def _cmd_play_wave(args) -> int:
    """Play a synthetic tone (default: C major triad)."""
    from .devices import SoundDeviceSink, WaveSource
    from .synth import CompositeWave, triad_wave

    config = build_config(args, default_format="default")
    fmt = config.audio_format

    if args.frequency:
        if args.amplitude is not None:
            amplitude = args.amplitude
        else:
            amplitude = ((1 << (fmt.bits - 1)) - 1) // len(args.frequency) - 1
        wave = CompositeWave(args.frequency, [amplitude] * len(args.frequency), fmt)
    else:
        wave = triad_wave(fmt, args.amplitude)

    sink = SoundDeviceSink(fmt, config.buffers.internal_frames_out, _device(config.output_device))
    # Synthesis never blocks, so the pool paces it against the device
    return _run_pipeline(WaveSource(wave), sink, config, args.duration, wait_for_pool=True)


def _cmd_analyze(args) -> int:
    """Synthesize tones, round-trip them through the codec and print spectral peaks."""
    from .config import AudioFormat
    from .sample_codec import decode_samples, max_amplitude_for_bits
    from .spectral import SpectralEngine
    from .synth import CompositeWave

    fmt = AudioFormat(
        sample_rate=args.sample_rate,
        sample_width=args.width,
        signed=not args.unsigned,
        big_endian=not args.little_endian,
    )
    frequencies = args.frequency or [400.0]
    if args.amplitude is not None:
        amplitude = args.amplitude
    else:
        amplitude = max_amplitude_for_bits(fmt.bits) // len(frequencies) - 1
    wave = CompositeWave(frequencies, [amplitude] * len(frequencies), fmt)

    buffer = bytearray(args.size * fmt.frame_size)
    wave.insert_next_bytes(buffer, 0, len(buffer))
    samples = decode_samples(buffer, fmt.sample_width, fmt.signed, fmt.big_endian)

    engine = SpectralEngine(args.size, fmt.sample_rate)
    engine.transform(samples)
    if args.smoothed:
        found = engine.smoothed_power_peaks(args.margin, args.threshold, args.center)
    else:
        found = engine.power_peaks(args.margin, args.threshold, args.center)
    strongest = sorted(found)[: args.top]

    print(f"\nN={args.size} rate={fmt.sample_rate:.0f}Hz resolution={engine.frequency_at_index(1):.2f}Hz")
    print(f"Average power: {engine.average_power():.6g}  maximum: {engine.maximum_power():.6g}")
    print("-" * 50)
    print(f"  {'bin':>5}  {'freq (Hz)':>10}  {'power':>14}")
    for peak in strongest:
        print(f"  {peak.index:>5}  {engine.frequency_at_index(peak.index):>10.2f}  {peak.value:>14.6g}")
    if not strongest:
        print("  No peaks above threshold.")
    print("-" * 50)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sound-relay",
        description="Sound Relay - real-time PCM transfer and spectral analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sound-relay copy                              # Microphone to speakers, 16kHz 16-bit
  sound-relay copy --buffers windows --duration 30
  sound-relay play-wave                         # C major triad
  sound-relay play-wave -f 440 --format phone-8k-16bit
  sound-relay analyze -f 400 -f 1000 --sample-rate 8000 --size 512 --center
        """,
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: SOUND_RELAY_LOG_LEVEL or INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    copy_parser = subparsers.add_parser("copy", help="Copy live input to output")
    _add_pipeline_arguments(copy_parser, "copy", with_input=True)
    copy_parser.set_defaults(func=_cmd_copy)

    wave_parser = subparsers.add_parser("play-wave", help="Play a synthetic tone")
    _add_pipeline_arguments(wave_parser, "default", with_input=False)
    wave_group = wave_parser.add_argument_group("Wave")
    wave_group.add_argument(
        "-f", "--frequency", type=validate_positive_float, action="append",
        help="Tone frequency in Hz, repeat for a chord (default: C major triad)",
    )
    wave_group.add_argument(
        "--amplitude", type=validate_non_negative_float, help="Peak value of each tone"
    )
    wave_parser.set_defaults(func=_cmd_play_wave)

    analyze_parser = subparsers.add_parser("analyze", help="Analyze a synthetic tone offline")
    signal_group = analyze_parser.add_argument_group("Signal")
    signal_group.add_argument(
        "-f", "--frequency", type=validate_positive_float, action="append",
        help="Tone frequency in Hz, repeat for several tones (default: 400)",
    )
    signal_group.add_argument("--amplitude", type=validate_non_negative_float, help="Peak value of each tone")
    signal_group.add_argument(
        "--sample-rate", type=validate_positive_float, default=8000.0, help="Sample rate in Hz (default: 8000)"
    )
    signal_group.add_argument(
        "--size", type=validate_positive_int, default=512, help="Transform length N (default: 512)"
    )
    signal_group.add_argument("--width", type=validate_positive_int, default=2, help="Bytes per sample (default: 2)")
    signal_group.add_argument("--unsigned", action="store_true", help="Unsigned samples")
    signal_group.add_argument("--little-endian", action="store_true", help="Little-endian samples")

    peak_group = analyze_parser.add_argument_group("Peaks")
    peak_group.add_argument(
        "--margin", type=validate_non_negative_float, default=0.0, help="Plateau margin (default: 0)"
    )
    peak_group.add_argument(
        "--threshold", type=float, default=0.0, help="Smallest power reported (default: 0)"
    )
    peak_group.add_argument("--top", type=validate_positive_int, default=5, help="Peaks to show (default: 5)")
    peak_group.add_argument("--center", action="store_true", help="One entry per plateau")
    peak_group.add_argument("--smoothed", action="store_true", help="Search the smoothed power spectrum")
    analyze_parser.set_defaults(func=_cmd_analyze)

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        return args.func(args)
    except KeyboardInterrupt:
        return 0
    except (ValueError, KeyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
