"""Tests for hark.cli: argument parsing, overrides and offline commands."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from conftest import CATALOG_DATA

from hark import cli
from hark.config import HarkConfig
from hark.segmenter import SuppressionPolicy


class TestArgParser:
    def test_defaults(self) -> None:
        args = cli.build_arg_parser().parse_args([])
        assert args.subcommand is None
        assert not args.ui
        assert args.threshold is None

    def test_resolve(self) -> None:
        args = cli.build_arg_parser().parse_args(["resolve", "lights", "on", "-k", "3"])
        assert args.subcommand == "resolve"
        assert args.text == ["lights", "on"]
        assert args.k == 3

    def test_run_flags(self) -> None:
        args = cli.build_arg_parser().parse_args(
            ["run", "--device", "2", "--strict", "--engine", "espeak", "--ui"]
        )
        assert args.subcommand == "run"
        assert args.device == "2"
        assert args.strict and args.ui

    def test_flags_before_run_are_kept(self) -> None:
        args = cli.build_arg_parser().parse_args(
            ["--strict", "--threshold", "0.7", "run", "--max-silence", "0.9"]
        )
        assert args.subcommand == "run"
        assert args.strict
        assert args.threshold == 0.7
        assert args.max_silence == 0.9
        assert not args.ui

    def test_threshold_before_resolve_is_kept(self) -> None:
        args = cli.build_arg_parser().parse_args(
            ["--threshold", "0.7", "resolve", "lights"]
        )
        assert args.threshold == 0.7


class TestApplyOverrides:
    def test_flags_override_config(self) -> None:
        args = cli.build_arg_parser().parse_args(
            [
                "--device",
                "2",
                "--output-device",
                "USB Speaker",
                "--threshold",
                "0.7",
                "--max-silence",
                "0.9",
                "--strict",
                "--require-wake",
                "--engine",
                "espeak",
            ]
        )
        config = cli.apply_overrides(HarkConfig(), args)
        assert config.audio.input_device == 2
        assert config.audio.output_device == "USB Speaker"
        assert config.resolver.threshold == 0.7
        assert config.segmenter.max_silence_s == 0.9
        assert config.segmenter.policy is SuppressionPolicy.STRICT
        assert config.segmenter.require_wake
        assert config.synth.engine == "espeak"

    def test_no_flags_keeps_config(self) -> None:
        args = cli.build_arg_parser().parse_args([])
        assert cli.apply_overrides(HarkConfig(), args) == HarkConfig()


class TestMain:
    def run_main(self, monkeypatch, argv: list[str]) -> int:
        monkeypatch.setattr(sys, "argv", ["hark", *argv])
        return cli.main()

    def test_check_reports_missing_files(self, tmp_path: Path, monkeypatch, capsys) -> None:
        (tmp_path / "catalog.json").write_text(json.dumps(CATALOG_DATA))
        code = self.run_main(monkeypatch, ["--data-dir", str(tmp_path), "check"])
        out = capsys.readouterr().out
        assert code == 1
        assert "4 intents" in out

    def test_check_uses_bundled_catalog(self, tmp_path: Path, monkeypatch, capsys) -> None:
        code = self.run_main(monkeypatch, ["--data-dir", str(tmp_path), "check"])
        assert code == 1
        assert "5 intents" in capsys.readouterr().out

    def test_invalid_catalog_fails_check(self, tmp_path: Path, monkeypatch) -> None:
        (tmp_path / "catalog.json").write_text("{}")
        code = self.run_main(monkeypatch, ["--data-dir", str(tmp_path), "check"])
        assert code == 1

    def test_missing_models_exit_with_status_one(self, tmp_path: Path, monkeypatch) -> None:
        code = self.run_main(
            monkeypatch, ["--data-dir", str(tmp_path), "resolve", "lights", "on"]
        )
        assert code == 1

    def test_bad_config_exit_with_status_one(self, tmp_path: Path, monkeypatch) -> None:
        (tmp_path / "config.json").write_text("{not json")
        code = self.run_main(monkeypatch, ["--data-dir", str(tmp_path), "check"])
        assert code == 1

    @pytest.mark.parametrize("value,expected", [("3", 3), ("pulse", "pulse"), (None, None)])
    def test_device_parsing(self, value, expected) -> None:
        assert cli._device(value) == expected
