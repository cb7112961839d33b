"""Translate structured search requests into IMAP SEARCH criteria."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Sequence

from dateparser import parse as parse_datetime

from .exceptions import ConfigurationError
from .models import SearchField, SearchQuery

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass(frozen=True)
class SearchCommand:
    """Arguments for ``IMAP4.search``.

    ``literal`` carries a non-ASCII term; it is sent as a synchronizing
    literal after the last criterion, so the field name is the final entry
    of ``criteria`` when it is set.
    """

    criteria: tuple[str, ...]
    charset: str | None = None
    literal: bytes | None = None

    def describe(self) -> str:
        text = " ".join(self.criteria)
        if self.literal is not None:
            text += f" {{{len(self.literal)}}}"
        return text


def format_imap_date(value: date | datetime) -> str:
    """Format a day as ``d-Mon-yyyy``; the time of day is discarded."""
    return f"{value.day:02d}-{_MONTHS[value.month - 1]}-{value.year}"


def quote_term(term: str) -> str:
    if "\r" in term or "\n" in term:
        raise ConfigurationError("Search term must not contain line breaks")
    escaped = term.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def coerce_day(value: date | datetime | str | None) -> date | None:
    """Normalise a caller supplied date bound (natural language strings allowed)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_datetime(value, settings={"RETURN_AS_TIMEZONE_AWARE": False})
    if parsed is None:
        raise ConfigurationError(f"Unable to parse date: {value!r}")
    return parsed.date()


def build_search_command(query: SearchQuery) -> SearchCommand:
    """Build SEARCH criteria for a query.

    Terms are quoted; terms that are not plain ASCII are sent as a UTF-8
    literal together with ``CHARSET UTF-8``.
    """
    criteria: list[str] = []
    if query.since is not None:
        criteria.extend(["SINCE", format_imap_date(query.since)])
    if query.before is not None:
        criteria.extend(["BEFORE", format_imap_date(query.before)])
    if query.unread_only:
        criteria.append("UNSEEN")

    if query.term is None:
        return SearchCommand(criteria=tuple(criteria or ["ALL"]))

    field = SearchField(query.field).value
    if query.term.isascii():
        # field term first, qualifiers after: ``TEXT "invoice" UNSEEN``
        return SearchCommand(criteria=(field, quote_term(query.term), *criteria))
    return SearchCommand(
        criteria=(*criteria, field),
        charset="UTF-8",
        literal=query.term.encode("utf-8"),
    )


def order_and_page(ids: Sequence[int], limit: int | None = None, offset: int = 0) -> list[int]:
    """Sort message numbers newest first, then apply offset and limit."""
    ordered = sorted(set(ids), reverse=True)
    if offset:
        ordered = ordered[offset:]
    if limit is not None:
        ordered = ordered[:limit]
    return ordered


def date_query(
    since: date | datetime | str,
    before: date | datetime | str | None = None,
    unread_only: bool = False,
) -> SearchQuery:
    since_day = coerce_day(since)
    if since_day is None:
        raise ConfigurationError("A start date is required for a date search.")
    return SearchQuery(since=since_day, before=coerce_day(before), unread_only=unread_only)
