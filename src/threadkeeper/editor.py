"""Capture text through the user's editor."""

from __future__ import annotations

import logging
import os

import click

logger = logging.getLogger("threadkeeper.editor")

_DEFAULT_EDITOR = "vi"
_MAX_HEADER_LINES = 3


def resolve_editor(configured: str = "") -> str:
    """$TK_EDITOR, then $EDITOR, then the config value, then vi."""
    for candidate in (os.environ.get("TK_EDITOR"), os.environ.get("EDITOR"), configured):
        if candidate and candidate.strip():
            return candidate.strip()
    return _DEFAULT_EDITOR


def strip_header(text: str) -> str:
    """Drop up to three leading '#' lines and one blank line after them."""
    lines = text.splitlines()
    dropped = 0
    while lines and dropped < _MAX_HEADER_LINES and lines[0].startswith("#"):
        lines.pop(0)
        dropped += 1
    if dropped and lines and not lines[0].strip():
        lines.pop(0)
    return "\n".join(lines)


def capture_note(title: str, editor: str = "") -> str | None:
    """Open the editor on an empty note. Returns None if nothing was written."""
    header = f"# Note for: {title}\n# Lines starting with '#' at the top are removed.\n\n"
    cmd = resolve_editor(editor)
    logger.debug("launching editor %r", cmd)
    edited = click.edit(header, editor=cmd, extension=".md", require_save=True)
    if edited is None:
        return None
    body = strip_header(edited)
    if not body.strip():
        return None
    return body.rstrip("\n") + "\n"


def edit_description(current: str, editor: str = "") -> str | None:
    """Edit a description in place. None means the user quit without saving."""
    edited = click.edit(current, editor=resolve_editor(editor), extension=".md", require_save=True)
    if edited is None:
        return None
    return edited.strip()
