"""Parsers for the untagged response data returned by :mod:`imaplib` commands."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from ..models import FetchRecord

_ATOM_STOP = set(' ()"{')

Value = Any


def _as_text(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def as_text(value: Value) -> str | None:
    """Coerce a parsed scalar (quoted string, atom or literal) to ``str``."""
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, list):
        return None
    return str(value)


class _Tokenizer:
    def __init__(self, text: str, literals: Iterable[bytes]) -> None:
        self.text = text
        self.pos = 0
        self.literals = iter(literals)

    def _skip_spaces(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in " \r\n":
            self.pos += 1

    def tokens(self) -> Iterator[tuple[str, Value]]:
        text = self.text
        while True:
            self._skip_spaces()
            if self.pos >= len(text):
                return
            ch = text[self.pos]
            if ch in "()":
                self.pos += 1
                yield ch, ch
            elif ch == '"':
                yield "value", self._quoted()
            elif ch == "{":
                yield "value", self._literal()
            else:
                atom = self._atom()
                yield "value", None if atom.upper() == "NIL" else atom

    def _quoted(self) -> str:
        text = self.text
        self.pos += 1
        chars: list[str] = []
        while self.pos < len(text):
            ch = text[self.pos]
            if ch == "\\" and self.pos + 1 < len(text):
                chars.append(text[self.pos + 1])
                self.pos += 2
                continue
            if ch == '"':
                self.pos += 1
                return "".join(chars)
            chars.append(ch)
            self.pos += 1
        raise ValueError("Unterminated quoted string in IMAP response")

    def _literal(self) -> bytes:
        end = self.text.find("}", self.pos)
        if end == -1:
            raise ValueError("Unterminated literal marker in IMAP response")
        self.pos = end + 1
        try:
            return next(self.literals)
        except StopIteration as exc:
            raise ValueError("IMAP response references a literal that was not received") from exc

    def _atom(self) -> str:
        text = self.text
        start = self.pos
        depth = 0
        while self.pos < len(text):
            ch = text[self.pos]
            if ch == "[":
                depth += 1
            elif ch == "]":
                depth -= 1
            elif depth == 0 and ch in _ATOM_STOP:
                break
            self.pos += 1
        return text[start : self.pos]


def parse_values(text: str, literals: Iterable[bytes] = ()) -> list[Value]:
    """Parse a parenthesised IMAP response fragment into nested Python lists.

    Quoted strings and atoms become ``str``, literals become ``bytes`` and
    ``NIL`` becomes ``None``.
    """
    root: list[Value] = []
    stack: list[list[Value]] = [root]
    for kind, value in _Tokenizer(text, literals).tokens():
        if kind == "(":
            child: list[Value] = []
            stack[-1].append(child)
            stack.append(child)
        elif kind == ")":
            if len(stack) == 1:
                raise ValueError("Unbalanced parenthesis in IMAP response")
            stack.pop()
        else:
            stack[-1].append(value)
    if len(stack) != 1:
        raise ValueError("Unbalanced parenthesis in IMAP response")
    return root


def _paren_balance(fragment: str) -> int:
    balance = 0
    in_quote = False
    escaped = False
    for ch in fragment:
        if in_quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_quote = False
            continue
        if ch == '"':
            in_quote = True
        elif ch == "(":
            balance += 1
        elif ch == ")":
            balance -= 1
    return balance


def iter_responses(data: Iterable[Any]) -> Iterator[tuple[str, list[bytes]]]:
    """Group imaplib response items into ``(text, literals)`` pairs.

    imaplib splits a response at every literal: the text up to and including
    the ``{n}`` marker arrives as the head of a tuple whose second element is
    the literal, and the remainder arrives as a later item.
    """
    text_parts: list[str] = []
    literals: list[bytes] = []
    depth = 0
    for item in data:
        if item is None:
            continue
        if isinstance(item, tuple):
            head = _as_text(item[0])
            text_parts.append(head)
            depth += _paren_balance(head)
            literal = item[1] if len(item) > 1 else b""
            literals.append(literal if isinstance(literal, bytes) else _as_text(literal).encode("utf-8"))
            continue
        fragment = _as_text(item)
        text_parts.append(fragment)
        depth += _paren_balance(fragment)
        if depth <= 0:
            yield "".join(text_parts), literals
            text_parts, literals, depth = [], [], 0
    if text_parts:
        yield "".join(text_parts), literals


def parse_fetch_response(data: Iterable[Any]) -> list[FetchRecord]:
    """Parse the data returned by ``IMAP4.fetch`` into one record per message."""
    records: list[FetchRecord] = []
    for text, literals in iter_responses(data):
        values = parse_values(text, literals)
        if len(values) < 2 or not isinstance(values[1], list):
            continue
        try:
            sequence = int(values[0])
        except (TypeError, ValueError):
            continue
        items = values[1]
        attributes: dict[str, Value] = {}
        for index in range(0, len(items) - 1, 2):
            key = as_text(items[index])
            if key is None:
                continue
            attributes[key.upper()] = items[index + 1]
        records.append(FetchRecord(sequence=sequence, attributes=attributes))
    return records


def parse_search_response(data: Iterable[Any]) -> list[int]:
    """Return message numbers from the data of a SEARCH command."""
    numbers: list[int] = []
    for item in data:
        if item is None:
            continue
        for token in _as_text(item if not isinstance(item, tuple) else item[0]).split():
            if token.isdigit():
                numbers.append(int(token))
    return numbers


def parse_list_response(data: Iterable[Any]) -> list[tuple[list[str], str | None, str]]:
    """Return ``(flags, delimiter, name)`` triples from LIST response data."""
    entries: list[tuple[list[str], str | None, str]] = []
    for text, literals in iter_responses(data):
        try:
            values = parse_values(text, literals)
        except ValueError:
            continue
        if len(values) < 3 or not isinstance(values[0], list):
            continue
        flags = [as_text(flag) or "" for flag in values[0]]
        name = as_text(values[2])
        if name is None:
            continue
        entries.append((flags, as_text(values[1]), name))
    return entries


def parse_status_response(data: Iterable[Any]) -> dict[str, int]:
    """Return the counters of a STATUS response, e.g. ``{"MESSAGES": 12}``."""
    counters: dict[str, int] = {}
    for text, literals in iter_responses(data):
        try:
            values = parse_values(text, literals)
        except ValueError:
            continue
        items = next((value for value in values if isinstance(value, list)), [])
        for index in range(0, len(items) - 1, 2):
            key, value = as_text(items[index]), as_text(items[index + 1])
            if key and value and value.isdigit():
                counters[key.upper()] = int(value)
    return counters

