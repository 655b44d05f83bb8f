"""Tests for the command-line entry point."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
import yaml

from discord_bridge import cli
from discord_bridge.errors import CallbackNotBoundError, ConfigurationError, StartupError
from discord_bridge.runtime.models import StartupState


class TestParser:
    def test_defaults(self):
        args = cli._build_parser().parse_args([])
        assert args.generate_registration is False
        assert args.file == "discord-registration.yaml"
        assert args.config == "config.yaml"
        assert args.port == 9005
        assert args.log_level == "info"

    def test_short_flags(self):
        args = cli._build_parser().parse_args(["-r", "-u", "http://as:9005", "-f", "out.yaml"])
        assert args.generate_registration
        assert args.url == "http://as:9005"
        assert args.file == "out.yaml"


class TestGenerateRegistration:
    def test_writes_registration_and_exits_zero(self, tmp_path, capsys):
        out = tmp_path / "reg.yaml"
        code = cli.run(["-r", "-u", "http://as:9005", "-f", str(out)])
        assert code == 0
        data = yaml.safe_load(out.read_text())
        assert data["url"] == "http://as:9005"
        assert data["sender_localpart"] == "_discord_bot"
        assert data["protocols"] == ["discord"]
        assert "Registration written" in capsys.readouterr().out

    def test_two_runs_produce_different_tokens(self, tmp_path):
        a, b = tmp_path / "a.yaml", tmp_path / "b.yaml"
        cli.run(["-r", "-f", str(a)])
        cli.run(["-r", "-f", str(b)])
        assert yaml.safe_load(a.read_text())["as_token"] != yaml.safe_load(b.read_text())["as_token"]

    def test_unwritable_path(self, tmp_path):
        code = cli.run(["-r", "-f", str(tmp_path / "missing-dir" / "reg.yaml")])
        assert code == 1


class TestRun:
    def test_missing_config_exits_one(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        code = cli.run(["-c", str(tmp_path / "nope.yaml")])
        assert code == 1

    def test_startup_failure_exits_one(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = tmp_path / "config.yaml"
        config.write_text("bridge:\n  domain: example.org\n  homeserverUrl: http://hs\n")

        with patch.object(cli, "StartupSequencer") as seq_cls:
            sequencer = seq_cls.return_value
            sequencer.start = AsyncMock(
                side_effect=StartupError(
                    StartupState.REGISTRATION_LOADED, ConfigurationError("bad")
                )
            )
            sequencer.stop = AsyncMock()
            code = cli.run(["-c", str(config), "-f", str(tmp_path / "missing.yaml")])

        assert code == 1
        sequencer.stop.assert_awaited_once()
        sequencer.serve.assert_not_called()
        kwargs = seq_cls.call_args.kwargs
        assert kwargs["registration_path"] == str(tmp_path / "missing.yaml")

    def test_clean_run_exits_zero(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = tmp_path / "config.yaml"
        config.write_text("bridge:\n  domain: example.org\n  homeserverUrl: http://hs\n")

        with patch.object(cli, "StartupSequencer") as seq_cls:
            sequencer = seq_cls.return_value
            sequencer.start = AsyncMock()
            sequencer.serve = AsyncMock()
            sequencer.stop = AsyncMock()
            code = cli.run(["-c", str(config), "-p", "9100"])

        assert code == 0
        sequencer.serve.assert_awaited_once()
        sequencer.stop.assert_awaited_once()
        assert seq_cls.call_args.kwargs["port"] == 9100

    def test_fatal_error_while_serving_exits_one(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = tmp_path / "config.yaml"
        config.write_text("bridge:\n  domain: example.org\n  homeserverUrl: http://hs\n")

        with patch.object(cli, "StartupSequencer") as seq_cls:
            sequencer = seq_cls.return_value
            sequencer.start = AsyncMock()
            sequencer.serve = AsyncMock(side_effect=CallbackNotBoundError("onEvent"))
            sequencer.stop = AsyncMock()
            code = cli.run(["-c", str(config)])

        assert code == 1
        sequencer.stop.assert_awaited_once()

    def test_main_exits_with_code(self):
        with patch.object(cli, "run", return_value=1):
            with pytest.raises(SystemExit) as exc_info:
                cli.main()
        assert exc_info.value.code == 1
