from __future__ import annotations

import logging
from pathlib import Path

import pytest

from threadkeeper.config import (
    config_path,
    init_workspace,
    load_config,
    validate_aliases,
)
from threadkeeper.errors import ConfigError

BUILTINS = ("add", "list", "show")


def _write_config(text: str) -> Path:
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_config_path_follows_xdg(tmp_path: Path) -> None:
    assert config_path() == tmp_path / "xdg-config" / "threadkeeper" / "config.toml"


def test_defaults_without_config(tmp_path: Path) -> None:
    cfg = load_config()
    assert cfg.workspace == tmp_path / "xdg-data" / "threadkeeper"
    assert cfg.threads_dir == cfg.workspace / "threads"
    assert cfg.date_locale == "iso"
    assert cfg.aliases == {}
    assert not cfg.initialized


def test_workspace_precedence(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_config('default_workspace = "~/from-config"\n')
    assert load_config().workspace == tmp_path / "home" / "from-config"

    monkeypatch.setenv("THREADKEEPER_WORKSPACE", str(tmp_path / "from-env"))
    assert load_config().workspace == tmp_path / "from-env"

    assert load_config(str(tmp_path / "from-flag")).workspace == tmp_path / "from-flag"


def test_date_locale(caplog: pytest.LogCaptureFixture) -> None:
    _write_config('date_locale = "US"\n')
    assert load_config().date_locale == "us"

    _write_config('date_locale = "fr"\n')
    with caplog.at_level(logging.WARNING, logger="threadkeeper.config"):
        assert load_config().date_locale == "iso"
    assert "fr" in caplog.text


def test_malformed_config_raises() -> None:
    path = _write_config("default_workspace = \n")
    with pytest.raises(ConfigError) as excinfo:
        load_config()
    assert str(path) in str(excinfo.value)


def test_aliases_are_validated() -> None:
    _write_config(
        "[alias]\n"
        'ls = "list"\n'
        'add = "list"\n'
        'bogus = "frobnicate"\n'
        "num = 3\n"
    )
    assert load_config(builtins=BUILTINS).aliases == {"ls": "list"}


def test_validate_aliases_rejects_non_table() -> None:
    assert validate_aliases("ls=list", BUILTINS) == {}
    assert validate_aliases(None, BUILTINS) == {}


def test_editor_from_config() -> None:
    _write_config('editor = "nano -w"\n')
    assert load_config().editor == "nano -w"


def test_init_workspace(tmp_path: Path) -> None:
    cfg = load_config(str(tmp_path / "ws"))

    assert init_workspace(cfg) is True
    assert cfg.initialized
    assert cfg.config_path.is_file()
    assert "date_locale" in cfg.config_path.read_text(encoding="utf-8")

    assert init_workspace(cfg) is False


def test_init_workspace_keeps_existing_config(tmp_path: Path) -> None:
    path = _write_config('date_locale = "eu"\n')
    cfg = load_config(str(tmp_path / "ws"))

    init_workspace(cfg)

    assert path.read_text(encoding="utf-8") == 'date_locale = "eu"\n'
