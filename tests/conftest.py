"""Shared fixtures: every test runs against a throwaway workspace and config."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from threadkeeper.store import ThreadStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's real config, workspace and editor out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for var in ("THREADKEEPER_WORKSPACE", "TK_EDITOR", "EDITOR"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def threads_dir(tmp_path: Path) -> Path:
    path = tmp_path / "workspace" / "threads"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def store(threads_dir: Path) -> ThreadStore:
    return ThreadStore(threads_dir)
