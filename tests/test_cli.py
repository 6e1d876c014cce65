"""Tests for the admin CLI dispatch."""

import pytest

from strategy_sync import cli


def test_usage_without_command(monkeypatch, capsys):
    monkeypatch.setattr("sys.argv", ["strategy-sync"])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    assert exc.value.code == 1
    assert "create-tables" in capsys.readouterr().out


def test_unknown_command(monkeypatch, capsys):
    monkeypatch.setattr("sys.argv", ["strategy-sync", "frobnicate"])
    with pytest.raises(SystemExit):
        cli.main()
    assert "Unknown command: frobnicate" in capsys.readouterr().out


def test_dispatches_known_command(monkeypatch):
    calls = []
    monkeypatch.setitem(cli.COMMANDS, "dedup-report", lambda: calls.append("dedup-report"))
    monkeypatch.setattr("sys.argv", ["strategy-sync", "dedup-report"])
    cli.main()
    assert calls == ["dedup-report"]
