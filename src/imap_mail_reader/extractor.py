"""Locate body and attachment parts in a message part tree."""

from __future__ import annotations

from dataclasses import dataclass

from .models import AttachmentData, MimeNode
from .utils.decoding import decode_header, decode_text, decode_transfer


@dataclass(frozen=True)
class AttachmentPart:
    """A part classified as an attachment, before its payload is fetched."""

    part_number: str
    filename: str
    node: MimeNode


def find_body_parts(root: MimeNode, mime_type: str) -> list[MimeNode]:
    """Return the leaves (depth-first) whose ``TYPE/subtype`` matches ``mime_type``."""
    wanted = mime_type.upper()
    return [node for node in root.walk() if not node.children and node.mime_type.upper() == wanted]


def classify_attachment(node: MimeNode) -> tuple[bool, str]:
    """Return ``(is_attachment, decoded_filename)`` for a part.

    A part is an attachment when its disposition is ``ATTACHMENT`` or when it
    carries a ``NAME`` parameter or a ``FILENAME`` disposition parameter, so
    inline parts with a file name are included.
    """
    is_attachment = (node.disposition or "").upper() == "ATTACHMENT"
    filename = ""
    for param in node.parameters:
        if param.attribute.upper() == "NAME":
            filename = decode_header(param.value)
            is_attachment = True
    for param in node.disposition_parameters:
        if param.attribute.upper() == "FILENAME":
            filename = decode_header(param.value)
            is_attachment = True
    return is_attachment, filename


def find_attachment_parts(root: MimeNode) -> list[AttachmentPart]:
    """Collect attachment parts in traversal order.

    Only multipart messages can carry attachments; the root itself is never
    one.
    """
    if not root.is_multipart:
        return []
    parts: list[AttachmentPart] = []
    for child in root.children:
        parts.extend(_attachment_parts(child))
    return parts


def _attachment_parts(node: MimeNode) -> list[AttachmentPart]:
    is_attachment, filename = classify_attachment(node)
    found: list[AttachmentPart] = []
    if is_attachment and filename:
        found.append(AttachmentPart(part_number=node.part_number, filename=filename, node=node))
    for child in node.children:
        found.extend(_attachment_parts(child))
    return found


def build_attachment(index: int, part: AttachmentPart, raw: bytes) -> AttachmentData:
    data = decode_transfer(raw, part.node.encoding)
    return AttachmentData(
        index=index,
        filename=part.filename,
        size=len(data),
        type=part.node.mime_type,
        part_number=part.part_number,
        data=data,
    )


def decode_body(node: MimeNode, raw: bytes) -> str:
    """Decode a text part's payload using its transfer encoding and charset."""
    return decode_text(decode_transfer(raw, node.encoding), node.parameter("charset"))
