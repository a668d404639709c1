"""TKConfig: user config and workspace resolution.

Config file (optional):

    $XDG_CONFIG_HOME/threadkeeper/config.toml   (default ~/.config/threadkeeper/)

config.toml example:

    default_workspace = "~/work/threads"
    date_locale = "us"        # iso (default) | us | eu
    editor = "nvim"           # after $TK_EDITOR and $EDITOR

    [alias]
    ls = "list"
    a = "attach"

Workspace precedence: --path > $THREADKEEPER_WORKSPACE > default_workspace >
$XDG_DATA_HOME/threadkeeper (default ~/.local/share/threadkeeper).

Workspace layout:

    <workspace>/
        threads/
            <bucket>/<durable-id>/thread.json
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from threadkeeper.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Collection

logger = logging.getLogger("threadkeeper.config")

APP_DIR_NAME = "threadkeeper"
WORKSPACE_ENV_VAR = "THREADKEEPER_WORKSPACE"
_CONFIG_FILENAME = "config.toml"
_THREADS_DIRNAME = "threads"

DATE_LOCALE_ISO = "iso"
DATE_LOCALE_US = "us"
DATE_LOCALE_EU = "eu"
DATE_LOCALES = (DATE_LOCALE_ISO, DATE_LOCALE_US, DATE_LOCALE_EU)


@dataclass
class TKConfig:
    """Resolved configuration for one invocation."""

    workspace: Path
    config_path: Path
    date_locale: str = DATE_LOCALE_ISO
    editor: str = ""
    aliases: dict[str, str] = field(default_factory=dict)

    @property
    def threads_dir(self) -> Path:
        return self.workspace / _THREADS_DIRNAME

    @property
    def initialized(self) -> bool:
        return self.threads_dir.is_dir()


def expand_user(value: str) -> Path:
    return Path(value.strip()).expanduser()


def config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME", "").strip()
    root = Path(base) if base else Path.home() / ".config"
    return root / APP_DIR_NAME / _CONFIG_FILENAME


def default_data_dir() -> Path:
    base = os.environ.get("XDG_DATA_HOME", "").strip()
    root = Path(base) if base else Path.home() / ".local" / "share"
    return root / APP_DIR_NAME


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        msg = f"malformed config file {path}: {exc}"
        raise ConfigError(msg) from exc
    except OSError as exc:
        msg = f"cannot read config file {path}: {exc.strerror or exc}"
        raise ConfigError(msg) from exc


def validate_aliases(raw: Any, builtins: Collection[str]) -> dict[str, str]:
    """Keep aliases that point at a built-in command and do not shadow one."""
    if not isinstance(raw, dict):
        if raw is not None:
            logger.warning("ignoring [alias]: expected a table")
        return {}
    aliases: dict[str, str] = {}
    for name, target in raw.items():
        name = str(name).strip()
        if not name:
            logger.warning("ignoring alias with empty name")
            continue
        if name in builtins:
            logger.warning("ignoring alias %r: shadows a built-in command", name)
            continue
        if not isinstance(target, str) or target.strip() not in builtins:
            logger.warning("ignoring alias %r: target %r is not a command", name, target)
            continue
        aliases[name] = target.strip()
    return aliases


def load_config(custom_path: str | None = None, builtins: Collection[str] = ()) -> TKConfig:
    """Load config.toml and resolve the workspace directory."""
    cfg_path = config_path()
    raw = _read_toml(cfg_path)

    if custom_path and custom_path.strip():
        workspace = expand_user(custom_path)
    elif os.environ.get(WORKSPACE_ENV_VAR, "").strip():
        workspace = expand_user(os.environ[WORKSPACE_ENV_VAR])
    elif isinstance(raw.get("default_workspace"), str) and raw["default_workspace"].strip():
        workspace = expand_user(raw["default_workspace"])
    else:
        workspace = default_data_dir()

    locale = str(raw.get("date_locale", DATE_LOCALE_ISO)).strip().lower()
    if locale not in DATE_LOCALES:
        logger.warning("unknown date_locale %r in %s, using iso", locale, cfg_path)
        locale = DATE_LOCALE_ISO

    return TKConfig(
        workspace=workspace,
        config_path=cfg_path,
        date_locale=locale,
        editor=str(raw.get("editor", "")).strip(),
        aliases=validate_aliases(raw.get("alias"), builtins),
    )


def init_workspace(cfg: TKConfig) -> bool:
    """Create the workspace and a default config file. Returns False if it existed."""
    existed = cfg.initialized
    try:
        cfg.threads_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        msg = f"cannot create workspace {cfg.threads_dir}: {exc.strerror or exc}"
        raise ConfigError(msg) from exc
    if not cfg.config_path.exists():
        try:
            init_config(cfg.config_path)
        except OSError as exc:
            logger.warning("could not write default config %s: %s", cfg.config_path, exc)
    return not existed


def init_config(path: Path) -> Path:
    """Write a commented default config.toml. Raises if it already exists."""
    if path.exists():
        msg = f"config already exists at {path}"
        raise FileExistsError(msg)
    path.parent.mkdir(parents=True, exist_ok=True)
    content = """\
# threadkeeper configuration

# default_workspace = "~/.local/share/threadkeeper"
# date_locale = "iso"   # iso | us | eu: how --due dates like 03/04 are read
# editor = "vi"         # used when $TK_EDITOR and $EDITOR are unset

# [alias]
# ls = "list"
# a = "attach"
"""
    path.write_text(content, encoding="utf-8")
    return path
