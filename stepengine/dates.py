"""Relative and absolute date resolution for date inputs."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

log = logging.getLogger(__name__)

DEFAULT_DATE_PATTERN = "M/d/yyyy"

# Accepted absolute inputs, tried in order; day-first forms win on ambiguity.
INPUT_FORMATS = (
    "%d-%m-%Y",
    "%d-%b-%Y",
    "%m-%d-%Y",
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
)

_DAYS_ONLY = re.compile(r"^\d+$")
_RELATIVE = re.compile(r"(\d+)\s*(day|month|year)s?")
_PATTERN_TOKEN = re.compile(r"y+|M+|d+|E+")


def add_months(start: date, months: int) -> date:
    return start + relativedelta(months=months)


def _relative(value: str, today: date) -> Optional[date]:
    lowered = value.strip().lower()
    if _DAYS_ONLY.match(lowered):
        return today + timedelta(days=int(lowered))
    match = _RELATIVE.search(lowered)
    if not match:
        return None
    amount, unit = int(match.group(1)), match.group(2)
    if unit == "day":
        return today + relativedelta(days=amount)
    if unit == "month":
        return today + relativedelta(months=amount)
    return today + relativedelta(years=amount)


def _absolute(value: str) -> Optional[date]:
    for fmt in INPUT_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def format_date(value: date, pattern: str) -> str:
    """Render ``value`` using ``d``/``dd``/``M``/``MM``/``MMM``/``yy``/``yyyy`` tokens."""

    def render(match: re.Match[str]) -> str:
        token = match.group(0)
        head, size = token[0], len(token)
        if head == "y":
            return f"{value.year % 100:02d}" if size == 2 else f"{value.year:04d}"
        if head == "M":
            if size == 1:
                return str(value.month)
            if size == 2:
                return f"{value.month:02d}"
            return value.strftime("%b") if size == 3 else value.strftime("%B")
        if head == "d":
            return str(value.day) if size == 1 else f"{value.day:02d}"
        return value.strftime("%a") if size <= 3 else value.strftime("%A")

    return _PATTERN_TOKEN.sub(render, pattern)


def resolve_date(value: Optional[str], pattern: str = DEFAULT_DATE_PATTERN, *, today: Optional[date] = None) -> str:
    """Resolve ``"25"``, ``"2 months"`` or ``"05-03-2025"`` to ``pattern``.

    Input that is neither relative nor a known absolute format is returned
    unchanged.
    """

    if not value:
        return ""
    resolved = _relative(value, today or date.today()) or _absolute(value)
    if resolved is None:
        log.warning("Could not resolve date input %r, using it as is", value)
        return value
    result = format_date(resolved, pattern or DEFAULT_DATE_PATTERN)
    log.debug("Resolved date %r to %r using pattern %r", value, result, pattern)
    return result
