"""Shared data models used by the mail reader."""

from __future__ import annotations

from datetime import date
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SessionState(str, Enum):
    """Connection state of a mail reader session."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class PrimaryType(IntEnum):
    """Primary MIME body type, numbered like the c-client body type codes."""

    TEXT = 0
    MULTIPART = 1
    MESSAGE = 2
    APPLICATION = 3
    AUDIO = 4
    IMAGE = 5
    VIDEO = 6
    MODEL = 7
    OTHER = 8

    @classmethod
    def from_name(cls, name: str | None) -> "PrimaryType":
        if not name:
            return cls.TEXT
        try:
            return cls[name.upper()]
        except KeyError:
            return cls.OTHER


class TransferEncoding(IntEnum):
    """Content-Transfer-Encoding codes."""

    SEVEN_BIT = 0
    EIGHT_BIT = 1
    BINARY = 2
    BASE64 = 3
    QUOTED_PRINTABLE = 4
    OTHER = 5

    @classmethod
    def from_name(cls, name: str | None) -> "TransferEncoding":
        mapping = {
            "7BIT": cls.SEVEN_BIT,
            "8BIT": cls.EIGHT_BIT,
            "BINARY": cls.BINARY,
            "BASE64": cls.BASE64,
            "QUOTED-PRINTABLE": cls.QUOTED_PRINTABLE,
        }
        if not name:
            return cls.SEVEN_BIT
        return mapping.get(name.upper(), cls.OTHER)


class MimeParameter(BaseModel):
    """Attribute/value pair from a Content-Type or Content-Disposition header."""

    attribute: str
    value: str


class MimeNode(BaseModel):
    """A node of a message body-part tree."""

    primary_type: PrimaryType = Field(default=PrimaryType.TEXT, description="Primary body type.")
    subtype: str = Field(default="PLAIN", description="Upper-cased MIME subtype.")
    encoding: TransferEncoding = Field(default=TransferEncoding.SEVEN_BIT, description="Transfer encoding code.")
    disposition: str | None = Field(default=None, description="Upper-cased disposition type, if any.")
    parameters: list[MimeParameter] = Field(default_factory=list, description="Content-Type parameters.")
    disposition_parameters: list[MimeParameter] = Field(
        default_factory=list, description="Content-Disposition parameters."
    )
    size: int | None = Field(default=None, description="Encoded size in octets reported by the server.")
    part_number: str = Field(default="", description="Dotted IMAP section number; empty for a multipart root.")
    children: list["MimeNode"] = Field(default_factory=list, description="Child parts in declaration order.")

    @property
    def mime_type(self) -> str:
        return f"{self.primary_type.name}/{self.subtype}"

    @property
    def is_multipart(self) -> bool:
        return bool(self.children)

    def parameter(self, attribute: str) -> str | None:
        wanted = attribute.upper()
        for param in self.parameters:
            if param.attribute.upper() == wanted:
                return param.value
        return None

    def walk(self):
        """Yield descendants depth-first, children in declaration order."""
        for child in self.children:
            yield child
            yield from child.walk()


class SearchField(str, Enum):
    """Header or body field a text search is applied to."""

    TEXT = "TEXT"
    SUBJECT = "SUBJECT"
    FROM = "FROM"
    TO = "TO"
    CC = "CC"
    BCC = "BCC"
    BODY = "BODY"


class SearchQuery(BaseModel):
    """Structured search request translated into IMAP SEARCH criteria."""

    term: str | None = Field(default=None, description="Text to match; omitted for pure date/unread searches.")
    field: SearchField = Field(default=SearchField.TEXT, description="Field the term is matched against.")
    unread_only: bool = Field(default=False, description="Restrict results to messages without \\Seen.")
    since: date | None = Field(default=None, description="Inclusive lower date bound (day resolution).")
    before: date | None = Field(default=None, description="Exclusive upper date bound (day resolution).")
    limit: int | None = Field(default=None, ge=0, description="Maximum number of identifiers to return.")
    offset: int = Field(default=0, ge=0, description="Number of identifiers to skip after sorting.")


class EmailOverview(BaseModel):
    """Lightweight envelope metadata for list views."""

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(description="Mailbox-relative sequence number.")
    uid: int | None = Field(default=None, description="Server UID, if reported.")
    subject: str = Field(default="", description="Decoded subject.")
    from_: str = Field(default="", alias="from", description="Decoded From header.")
    to: str = Field(default="", description="Decoded To header.")
    date: str = Field(default="", description="Raw Date header as sent by the server.")
    size: int = Field(default=0, description="RFC822 size in octets.")
    seen: bool = False
    flagged: bool = False
    answered: bool = False

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class AttachmentMeta(BaseModel):
    """Attachment metadata surfaced on an email."""

    index: int = Field(description="Position of the attachment in traversal order.")
    filename: str = Field(description="Decoded attachment file name.")
    size: int = Field(description="Decoded payload length in bytes.")
    type: str = Field(description="MIME type string, e.g. APPLICATION/PDF.")


class AttachmentData(AttachmentMeta):
    """Attachment metadata plus decoded payload."""

    part_number: str = Field(description="IMAP section the payload was fetched from.")
    data: bytes = Field(default=b"", repr=False, description="Decoded attachment payload.")

    def meta(self) -> AttachmentMeta:
        return AttachmentMeta(index=self.index, filename=self.filename, size=self.size, type=self.type)


class Email(EmailOverview):
    """Full message representation."""

    has_attachments: bool = False
    attachments: list[AttachmentMeta] = Field(default_factory=list)
    body_plain: str | None = Field(default=None, description="Plain text body, only when requested.")
    body_html: str | None = Field(default=None, description="HTML body, only when requested.")

    def to_dict(self) -> dict[str, Any]:
        exclude = {name for name in ("body_plain", "body_html") if getattr(self, name) is None}
        return self.model_dump(by_alias=True, exclude=exclude)


class DownloadResult(BaseModel):
    """Result of saving an attachment to disk."""

    filename: str
    size: int
    type: str
    path: str

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


class FetchRecord(BaseModel):
    """Attributes of one message from a FETCH response."""

    sequence: int
    attributes: dict[str, Any] = Field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name.upper(), default)

    def section(self, name: str) -> bytes | None:
        """Return the literal of ``BODY[<name>]``, tolerating ``<origin>`` suffixes."""
        wanted = f"BODY[{name.upper()}]"
        for key, value in self.attributes.items():
            if key.split("<", 1)[0] == wanted:
                if value is None:
                    return b""
                return value if isinstance(value, bytes) else str(value).encode("utf-8")
        return None

    def header_block(self) -> bytes | None:
        """Return the literal of the first ``BODY[HEADER...]`` item."""
        for key, value in self.attributes.items():
            if key.startswith("BODY[HEADER"):
                if value is None:
                    return b""
                return value if isinstance(value, bytes) else str(value).encode("utf-8")
        return None


MimeNode.model_rebuild()
