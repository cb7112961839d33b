"""Parse IMAP BODYSTRUCTURE responses into :class:`~imap_mail_reader.models.MimeNode` trees.

BODYSTRUCTURE format (RFC 3501 section 7.4.2):

- single part: ``("text" "plain" ("charset" "utf-8") id description "7bit" size lines md5 disposition ...)``
- multipart: ``(part part ... "mixed" params disposition ...)``

The extension data positions depend on the body type: text parts carry a line
count, ``message/rfc822`` parts carry an envelope, a nested body and a line
count before their extension data.
"""

from __future__ import annotations

import re
from email.utils import decode_rfc2231
from typing import Any
from urllib.parse import unquote_to_bytes

from ..models import MimeNode, MimeParameter, PrimaryType, TransferEncoding
from .imap_response import as_text

_EXTENDED_PARAM = re.compile(r"^(?P<name>[^*]+)\*(?P<index>\d+)?(?P<encoded>\*)?$")


def parse_bodystructure(structure: list[Any]) -> MimeNode:
    """Build a numbered part tree from a parsed BODYSTRUCTURE list."""
    if not isinstance(structure, list) or not structure:
        raise ValueError("BODYSTRUCTURE must be a non-empty parenthesised list")
    root = _parse_part(structure)
    if root.primary_type is PrimaryType.MULTIPART:
        _assign_part_numbers(root, "")
    else:
        root.part_number = "1"
        _assign_part_numbers(root, "1")
    return root


def _assign_part_numbers(node: MimeNode, prefix: str) -> None:
    for index, child in enumerate(node.children, start=1):
        child.part_number = f"{prefix}.{index}" if prefix else str(index)
        _assign_part_numbers(child, child.part_number)


def _parse_part(body: list[Any]) -> MimeNode:
    if body and isinstance(body[0], list):
        return _parse_multipart(body)
    return _parse_single(body)


def _parse_multipart(body: list[Any]) -> MimeNode:
    children: list[MimeNode] = []
    index = 0
    while index < len(body) and isinstance(body[index], list):
        children.append(_parse_part(body[index]))
        index += 1
    subtype = as_text(_at(body, index)) or "MIXED"
    disposition, disposition_params = _parse_disposition(_at(body, index + 2))
    return MimeNode(
        primary_type=PrimaryType.MULTIPART,
        subtype=subtype.upper(),
        parameters=_parse_parameters(_at(body, index + 1)),
        disposition=disposition,
        disposition_parameters=disposition_params,
        children=children,
    )


def _parse_single(body: list[Any]) -> MimeNode:
    if len(body) < 7:
        raise ValueError(f"Body part has {len(body)} fields, expected at least 7")
    primary = PrimaryType.from_name(as_text(body[0]))
    subtype = (as_text(body[1]) or "").upper()
    children: list[MimeNode] = []

    if primary is PrimaryType.TEXT:
        extension_index = 8
    elif primary is PrimaryType.MESSAGE and subtype in {"RFC822", "GLOBAL"} and isinstance(_at(body, 8), list):
        nested = _parse_part(body[8])
        children = nested.children if nested.children and nested.primary_type is PrimaryType.MULTIPART else [nested]
        extension_index = 10
    else:
        extension_index = 7

    disposition, disposition_params = _parse_disposition(_at(body, extension_index + 1))
    return MimeNode(
        primary_type=primary,
        subtype=subtype,
        parameters=_parse_parameters(body[2]),
        encoding=TransferEncoding.from_name(as_text(body[5])),
        size=_to_int(body[6]),
        disposition=disposition,
        disposition_parameters=disposition_params,
        children=children,
    )


def _parse_disposition(value: Any) -> tuple[str | None, list[MimeParameter]]:
    if isinstance(value, list) and value:
        kind = as_text(value[0])
        return (kind.upper() if kind else None), _parse_parameters(_at(value, 1))
    kind = as_text(value)
    return (kind.upper() if kind else None), []


def _parse_parameters(value: Any) -> list[MimeParameter]:
    if not isinstance(value, list):
        return []
    params: list[MimeParameter] = []
    extended: dict[str, list[tuple[int, bool, str]]] = {}
    for index in range(0, len(value) - 1, 2):
        attribute = as_text(value[index])
        if not attribute:
            continue
        raw = as_text(value[index + 1]) or ""
        match = _EXTENDED_PARAM.match(attribute)
        if match is None:
            params.append(MimeParameter(attribute=attribute, value=raw))
            continue
        if match.group("index") is None:
            segment = (0, True)
        else:
            segment = (int(match.group("index")), bool(match.group("encoded")))
        extended.setdefault(match.group("name"), []).append((*segment, raw))

    for name, segments in extended.items():
        params.append(MimeParameter(attribute=name, value=_join_extended(segments)))
    return params


def _join_extended(segments: list[tuple[int, bool, str]]) -> str:
    """Collapse RFC 2231 continuation/charset segments into a single string."""
    charset = "utf-8"
    payload = b""
    for position, (index, encoded, raw) in enumerate(sorted(segments, key=lambda item: item[0])):
        if encoded and position == 0 and raw.count("'") >= 2:
            declared, _language, raw = decode_rfc2231(raw)
            charset = declared or charset
        payload += unquote_to_bytes(raw) if encoded else raw.encode("utf-8")
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def _at(values: list[Any], index: int) -> Any:
    return values[index] if index < len(values) else None


def _to_int(value: Any) -> int | None:
    text = as_text(value)
    if text is None or not text.isdigit():
        return None
    return int(text)
