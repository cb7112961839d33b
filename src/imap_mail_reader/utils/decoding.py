"""Header and transfer-encoding decoding helpers."""

from __future__ import annotations

import binascii
import quopri
import re
from email.header import decode_header as _split_encoded_words

from charset_normalizer import from_bytes

from ..models import TransferEncoding

_PASSTHROUGH_CHARSETS = {"DEFAULT", "UTF-8", "UTF8"}
_FOLDING = re.compile(r"\r?\n[ \t]+")


def decode_header(value: str | bytes | None) -> str:
    """Decode RFC 2047 encoded words into a UTF-8 ``str``.

    Words in ``UTF-8`` or without a declared charset are used as-is; any other
    charset is transcoded with undecodable sequences dropped.
    """
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if "=?" not in value:
        return value
    try:
        chunks = _split_encoded_words(value)
    except (binascii.Error, ValueError):
        return value

    result: list[str] = []
    for chunk, charset in chunks:
        if isinstance(chunk, str):
            result.append(chunk)
            continue
        name = (charset or "DEFAULT").upper()
        if name in _PASSTHROUGH_CHARSETS:
            result.append(chunk.decode("utf-8", errors="replace"))
        else:
            result.append(_transcode(chunk, charset))
    return "".join(result)


def _transcode(chunk: bytes, charset: str | None) -> str:
    try:
        return chunk.decode(charset or "utf-8", errors="ignore")
    except LookupError:
        detection = from_bytes(chunk).best()
        if detection is None:
            return chunk.decode("utf-8", errors="ignore")
        return str(detection)


def decode_transfer(data: bytes, encoding: TransferEncoding | int) -> bytes:
    """Undo a part's Content-Transfer-Encoding.

    Code 3 is base64, code 4 is quoted-printable; every other code is passed
    through unchanged.
    """
    if encoding == TransferEncoding.BASE64:
        return _decode_base64(data)
    if encoding == TransferEncoding.QUOTED_PRINTABLE:
        return quopri.decodestring(data)
    return data


def _decode_base64(data: bytes) -> bytes:
    cleaned = b"".join(data.split())
    cleaned += b"=" * (-len(cleaned) % 4)
    try:
        return binascii.a2b_base64(cleaned)
    except binascii.Error:
        # keep the longest prefix that decodes
        usable = len(cleaned) - len(cleaned) % 4
        while usable > 0:
            try:
                return binascii.a2b_base64(cleaned[:usable])
            except binascii.Error:
                usable -= 4
        return b""


def parse_header_block(raw: bytes | None) -> dict[str, str]:
    """Unfold a raw header block into a ``{lower-cased name: raw value}`` mapping.

    Only the first occurrence of each header is kept; values are not decoded.
    """
    if not raw:
        return {}
    text = raw.decode("utf-8", errors="replace")
    unfolded = _FOLDING.sub(" ", text)
    headers: dict[str, str] = {}
    for line in unfolded.splitlines():
        name, sep, value = line.partition(":")
        name = name.strip()
        if sep and name and " " not in name:
            headers.setdefault(name.lower(), value.strip())
    return headers


def decode_text(payload: bytes, charset: str | None) -> str:
    """Turn a decoded body payload into text using its declared charset or detection."""
    if not payload:
        return ""
    if charset:
        try:
            return payload.decode(charset, errors="replace")
        except LookupError:
            pass
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        pass
    detection = from_bytes(payload).best()
    if detection is None:
        return payload.decode("utf-8", errors="replace")
    return str(detection)
