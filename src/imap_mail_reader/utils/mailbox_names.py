"""Mailbox name codec (IMAP modified UTF-7, RFC 3501 section 5.1.3)."""

from __future__ import annotations

import base64
import re

_SHIFTED = re.compile(r"&([^-]*)-")


def _encode_run(run: str) -> str:
    raw = base64.b64encode(run.encode("utf-16-be"), altchars=b"+,")
    return "&" + raw.decode("ascii").rstrip("=") + "-"


def encode_mailbox(value: str) -> str:
    parts: list[str] = []
    pending = ""
    for ch in value:
        if 0x20 <= ord(ch) <= 0x7E:
            if pending:
                parts.append(_encode_run(pending))
                pending = ""
            parts.append("&-" if ch == "&" else ch)
        else:
            pending += ch
    if pending:
        parts.append(_encode_run(pending))
    return "".join(parts)


def decode_mailbox(value: str) -> str:
    """Decode a modified UTF-7 name; raises ``ValueError`` on malformed input."""
    parts: list[str] = []
    position = 0
    for match in _SHIFTED.finditer(value):
        parts.append(value[position : match.start()])
        payload = match.group(1)
        if payload:
            padded = payload + "=" * (-len(payload) % 4)
            parts.append(base64.b64decode(padded, altchars=b"+,", validate=True).decode("utf-16-be"))
        else:
            parts.append("&")
        position = match.end()
    tail = value[position:]
    if "&" in tail:
        raise ValueError(f"Unterminated modified UTF-7 sequence in {value!r}")
    parts.append(tail)
    return "".join(parts)


def quote_mailbox(value: str) -> str:
    """Encode and quote a mailbox name for use as a command argument."""
    encoded = encode_mailbox(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{encoded}"'
