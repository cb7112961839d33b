"""Pydantic models describing tool outputs for the MCP server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .models import DownloadResult, Email, EmailOverview


def _message_list_field(*, description: str) -> Any:
    """Helper to declare list-of-message fields with schema metadata."""
    return Field(
        default_factory=list,
        description=description,
        json_schema_extra={"items": {"type": "object"}},
    )


class MailboxListResult(BaseModel):
    """Mailboxes visible to the account."""

    model_config = ConfigDict(title="mail.list_mailboxes response")

    mailboxes: list[str] = Field(default_factory=list, description="Decoded mailbox names.")
    selected: str = Field(description="Mailbox the session currently operates on.")


class MailListResult(BaseModel):
    """Page of envelope overviews, newest first."""

    model_config = ConfigDict(
        title="mail.list response",
        json_schema_extra={
            "examples": [
                {
                    "mailbox": "INBOX",
                    "items": [
                        {
                            "id": 42,
                            "uid": 1042,
                            "subject": "Quarterly report",
                            "from": "Alice <alice@example.com>",
                            "to": "bob@example.com",
                            "date": "Mon, 5 Feb 2024 10:00:00 +0000",
                            "size": 18234,
                            "seen": False,
                            "flagged": False,
                            "answered": False,
                        }
                    ],
                    "total": 120,
                }
            ]
        },
    )

    mailbox: str
    items: list[dict[str, Any]] = _message_list_field(description="Overview entries keyed like the email headers.")
    total: int = Field(description="Messages in the mailbox when the page was fetched.")

    @classmethod
    def build(cls, mailbox: str, overviews: list[EmailOverview], total: int) -> MailListResult:
        return cls(mailbox=mailbox, items=[overview.to_dict() for overview in overviews], total=total)


class MailSearchResult(BaseModel):
    """Search hits, newest first."""

    model_config = ConfigDict(title="mail.search response")

    ids: list[int] = Field(default_factory=list, description="Matching message numbers after paging.")
    emails: list[dict[str, Any]] = _message_list_field(description="Full emails, present when include_emails is set.")

    @classmethod
    def build(cls, ids: list[int], emails: list[Email] | None = None) -> MailSearchResult:
        return cls(ids=ids, emails=[email.to_dict() for email in emails or []])


class MailGetResult(BaseModel):
    """Single email with attachment metadata and optional bodies."""

    model_config = ConfigDict(title="mail.get response")

    email: dict[str, Any]

    @classmethod
    def build(cls, email: Email) -> MailGetResult:
        return cls(email=email.to_dict())


class MailDownloadAttachmentResult(BaseModel):
    """Where an attachment was written."""

    model_config = ConfigDict(title="mail.download_attachment response")

    message_id: int
    filename: str
    size: int = Field(description="Bytes written to disk.")
    type: str
    path: str

    @classmethod
    def build(cls, message_id: int, result: DownloadResult) -> MailDownloadAttachmentResult:
        return cls(message_id=message_id, **result.to_dict())


class MailMutationResult(BaseModel):
    """Outcome of a delete or expunge request."""

    model_config = ConfigDict(title="mail mutation response")

    ok: bool = Field(description="False when an expunge found nothing to remove.")
    message_id: int | None = None
