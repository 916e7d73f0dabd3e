"""Tests for CLI argument validation and the offline analyze command."""

import argparse

import pytest

from sound_relay import cli, config as config_module
from sound_relay.config import PipelineConfig, get_buffer_preset


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level=None: None)


@pytest.fixture(autouse=True)
def default_config_path(tmp_path, monkeypatch):
    """Point the default config file somewhere empty so a user config never leaks in."""
    path = tmp_path / "home" / "config.json"
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", path)
    return path


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


class TestValidators:
    def test_positive_int(self):
        assert cli.validate_positive_int("5") == 5
        with pytest.raises(argparse.ArgumentTypeError):
            cli.validate_positive_int("0")
        with pytest.raises(argparse.ArgumentTypeError):
            cli.validate_positive_int("abc")

    def test_non_negative_int(self):
        assert cli.validate_non_negative_int("0") == 0
        with pytest.raises(argparse.ArgumentTypeError):
            cli.validate_non_negative_int("-1")

    def test_positive_float(self):
        assert cli.validate_positive_float("2.5") == 2.5
        with pytest.raises(argparse.ArgumentTypeError):
            cli.validate_positive_float("-2.5")

    def test_presets(self):
        assert cli.validate_format_preset("COPY") == "copy"
        assert cli.validate_buffer_preset("windows") == "windows"
        with pytest.raises(argparse.ArgumentTypeError):
            cli.validate_format_preset("surround")
        with pytest.raises(argparse.ArgumentTypeError):
            cli.validate_buffer_preset("tiny")


# ---------------------------------------------------------------------------
# Parsing and configuration
# ---------------------------------------------------------------------------


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_bad_frequency_rejected(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["analyze", "-f", "0"])

    def test_build_config_from_flags(self, monkeypatch):
        for name in ("SOUND_RELAY_FORMAT", "SOUND_RELAY_BUFFERS", "SOUND_RELAY_TRANSFER_FRAMES"):
            monkeypatch.delenv(name, raising=False)
        args = cli.build_parser().parse_args(
            ["copy", "--buffers", "windows", "--pool-size", "10", "--input-device", "3"]
        )
        config = cli.build_config(args, default_format="copy")
        assert config.audio_format.sample_rate == 16000.0
        assert config.audio_format.sample_width == 2
        assert config.buffers.transfer_frames == get_buffer_preset("windows").transfer_frames
        assert config.buffers.initial_pool_size == 10
        assert config.input_device == 3

    def test_config_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SOUND_RELAY_FORMAT", raising=False)
        path = tmp_path / "config.json"
        path.write_text('{"stats": {"report_seconds": 7.0}}')
        args = cli.build_parser().parse_args(["play-wave", "--config", str(path)])
        assert cli.build_config(args, default_format="default").report_seconds == 7.0

    def test_default_config_file_used_when_present(self, default_config_path, monkeypatch):
        monkeypatch.delenv("SOUND_RELAY_POOL_SIZE", raising=False)
        default_config_path.parent.mkdir(parents=True)
        default_config_path.write_text('{"buffers": {"initial_pool_size": 9}}')
        args = cli.build_parser().parse_args(["play-wave"])
        assert cli.build_config(args, default_format="default").buffers.initial_pool_size == 9

    def test_missing_default_config_falls_back_to_preset(self, monkeypatch):
        monkeypatch.delenv("SOUND_RELAY_FORMAT", raising=False)
        args = cli.build_parser().parse_args(["copy"])
        config = cli.build_config(args, default_format="copy")
        assert config.audio_format.sample_rate == 16000.0
        assert config.audio_format.sample_width == 2

    def test_save_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SOUND_RELAY_POOL_SIZE", raising=False)
        path = tmp_path / "saved" / "config.json"
        args = cli.build_parser().parse_args(
            ["play-wave", "--pool-size", "12", "--report-seconds", "3", "--save-config", str(path)]
        )
        config = cli.build_config(args, default_format="default")

        assert path.exists()
        loaded = PipelineConfig.load(path)
        assert loaded == config
        assert loaded.buffers.initial_pool_size == 12
        assert loaded.report_seconds == 3.0


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------


class TestAnalyze:
    def test_reports_tone_bin(self, capsys):
        code = cli.main(
            ["analyze", "-f", "1000", "--sample-rate", "8000", "--size", "512", "--margin", "1",
             "--threshold", "1", "--center", "--top", "1"]
        )
        out = capsys.readouterr().out
        assert code == 0
        assert "N=512" in out
        assert "1000.00" in out

    def test_no_peaks(self, capsys):
        code = cli.main(["analyze", "--amplitude", "0", "--threshold", "1"])
        assert code == 0
        assert "No peaks above threshold." in capsys.readouterr().out
