"""Due-date parsing.

Input is tried against an ordered list of strategies; each returns a date or
None, and the first hit wins:

    today, +N                       shortcuts
    2026-03-04, 2026/03/04, 2026.03.04, 20260304
    03/04/2026, 3-4-2026            us: month first, eu: day first
    03/04, 3-4                      next occurrence on or after today
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING

from threadkeeper.config import DATE_LOCALE_EU, DATE_LOCALE_ISO, DATE_LOCALE_US
from threadkeeper.errors import DateParseError

if TYPE_CHECKING:
    from collections.abc import Callable

    Strategy = Callable[[str, str, date], date | None]

_SHORTCUT_RE = re.compile(r"^\+(\d+)$")
_ISO_RE = re.compile(r"^(\d{4})([-/.])(\d{1,2})\2(\d{1,2})$")
_COMPACT_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_WITH_YEAR_RE = re.compile(r"^(\d{1,2})([/-])(\d{1,2})\2(\d{4})$")
_WITHOUT_YEAR_RE = re.compile(r"^(\d{1,2})([/-])(\d{1,2})$")
_NUMERIC_RE = re.compile(r"^\d{1,2}[/-]\d{1,2}([/-]\d{2,4})?$")


def _make_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _month_day(first: str, second: str, locale: str) -> tuple[int, int]:
    if locale == DATE_LOCALE_US:
        return int(first), int(second)
    return int(second), int(first)


def parse_shortcut(text: str, locale: str, today: date) -> date | None:  # noqa: ARG001
    lowered = text.lower()
    if lowered == "today":
        return today
    m = _SHORTCUT_RE.match(lowered)
    if not m:
        return None
    try:
        return today + timedelta(days=int(m.group(1)))
    except OverflowError:
        return None


def parse_iso(text: str, locale: str, today: date) -> date | None:  # noqa: ARG001
    m = _ISO_RE.match(text) or _COMPACT_RE.match(text)
    if not m:
        return None
    groups = [g for g in m.groups() if g not in ("-", "/", ".")]
    year, month, day = (int(g) for g in groups)
    return _make_date(year, month, day)


def parse_locale_with_year(text: str, locale: str, today: date) -> date | None:  # noqa: ARG001
    if locale not in (DATE_LOCALE_US, DATE_LOCALE_EU):
        return None
    m = _WITH_YEAR_RE.match(text)
    if not m:
        return None
    month, day = _month_day(m.group(1), m.group(3), locale)
    year = int(m.group(4))
    if not 1900 <= year <= 2100:
        return None
    return _make_date(year, month, day)


def parse_locale_without_year(text: str, locale: str, today: date) -> date | None:
    if locale not in (DATE_LOCALE_US, DATE_LOCALE_EU):
        return None
    m = _WITHOUT_YEAR_RE.match(text)
    if not m:
        return None
    month, day = _month_day(m.group(1), m.group(3), locale)
    candidate = _make_date(today.year, month, day)
    if candidate is None:
        # 29 Feb outside a leap year: try next year before giving up
        return _make_date(today.year + 1, month, day)
    if candidate < today:
        return _make_date(today.year + 1, month, day)
    return candidate


STRATEGIES: tuple[Strategy, ...] = (
    parse_shortcut,
    parse_iso,
    parse_locale_with_year,
    parse_locale_without_year,
)


def parse_date(text: str, locale: str = DATE_LOCALE_ISO, today: date | None = None) -> date:
    """Parse a due date; raises DateParseError when no strategy matches."""
    value = text.strip()
    if not value:
        msg = "invalid due date: empty input"
        raise DateParseError(msg)
    today = today or date.today()

    for strategy in STRATEGIES:
        result = strategy(value, locale, today)
        if result is not None:
            return result

    if _NUMERIC_RE.match(value):
        if locale == DATE_LOCALE_US:
            msg = f"invalid due date for locale 'us': expected MM/DD[/YYYY] or MM-DD[-YYYY], got {value!r}"
        elif locale == DATE_LOCALE_EU:
            msg = f"invalid due date for locale 'eu': expected DD/MM[/YYYY] or DD-MM[-YYYY], got {value!r}"
        else:
            msg = (
                f"invalid due date: ambiguous numeric format {value!r}. "
                "Use YYYY-MM-DD or set date_locale = \"us\" or \"eu\""
            )
        raise DateParseError(msg)
    msg = f"invalid due date: unable to parse {value!r}"
    raise DateParseError(msg)


def to_due_at(d: date) -> datetime:
    """Due dates are stored as midnight UTC."""
    return datetime(d.year, d.month, d.day, tzinfo=UTC)
