"""Tests for the maintenance CLI entry point."""

from __future__ import annotations

import base64

import pytest

from contribution_vault.cli import build_parser, main


def test_generate_key(capsys):
    main(["generate-key"])
    material = capsys.readouterr().out.strip()
    assert len(base64.b64decode(material)) == 32


def test_export_arguments():
    args = build_parser().parse_args(["export", "--output", "out.csv", "--status", "paid"])
    assert args.command == "export"
    assert str(args.output) == "out.csv"
    assert args.status == "paid"


def test_command_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_database_commands_need_url(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("DATABASE_URL", "")
    with pytest.raises(SystemExit):
        main(["--env-file", str(tmp_path / "missing.env"), "init-schema"])
    assert "DATABASE_URL" in capsys.readouterr().out
