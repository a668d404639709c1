"""Exception taxonomy for the thread store.

Library code raises these; the CLI turns them into ``click.ClickException``.
A malformed ledger line is not an exception: ``load_events`` counts it instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path


class ThreadkeeperError(Exception):
    """Base class for every error the core reports."""


class NotFoundError(ThreadkeeperError):
    """Unknown durable ID, short alias or attachment."""


class ThreadNotFoundError(NotFoundError):
    def __init__(self, token: str, message: str | None = None) -> None:
        super().__init__(message or f"thread {token} not found")
        self.token = token


class AttachmentNotFoundError(NotFoundError):
    pass


class AmbiguousError(ThreadkeeperError):
    """A short alias matched more than one active thread."""

    def __init__(self, short_id: int, thread_ids: Sequence[str]) -> None:
        super().__init__(
            f"short id {short_id} refers to multiple threads "
            f"({', '.join(thread_ids)}); run reindex or use a durable ID"
        )
        self.short_id = short_id
        self.thread_ids = list(thread_ids)


class InvalidInputError(ThreadkeeperError):
    """Input that can never succeed: bad token, unsupported algorithm, short hash."""


class InvalidTokenError(InvalidInputError, ThreadNotFoundError):
    """Token is neither a known durable ID nor an integer short alias."""

    def __init__(self, token: str) -> None:
        ThreadNotFoundError.__init__(
            self, token, f"'{token}' is not a valid thread ID or short id"
        )


class ConfigError(InvalidInputError):
    pass


class DateParseError(InvalidInputError):
    pass


class StorageError(ThreadkeeperError):
    """Read, write or rename failure, or an undecodable persisted record."""

    def __init__(
        self,
        message: str,
        path: Path | None = None,
        cause: BaseException | None = None,
    ) -> None:
        text = message
        if path is not None:
            text = f"{text} {path}"
        if cause is not None:
            reason = getattr(cause, "strerror", None) or str(cause)
            text = f"{text}: {reason}"
        super().__init__(text)
        self.path = path
        if cause is not None:
            self.__cause__ = cause
