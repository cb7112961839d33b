"""Entrypoint exposing a single mail reader session as MCP tools."""

from __future__ import annotations

import argparse
import os
import threading
from functools import partial
from pathlib import Path
from typing import Annotated, Any, Callable, Iterable, TypeVar

import anyio
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger
from pydantic import Field

from .config import MailReaderSettings, load_settings
from .exceptions import MailReaderError
from .models import SearchField, SearchQuery
from .reader import MailReader
from .search import coerce_day
from .tooling import (
    MailboxListResult,
    MailDownloadAttachmentResult,
    MailGetResult,
    MailListResult,
    MailMutationResult,
    MailSearchResult,
)

logger = get_logger(__name__)

T = TypeVar("T")

TRANSPORT_CHOICES = ("stdio", "sse", "streamable-http")


def create_server(settings: MailReaderSettings, reader: MailReader | None = None) -> FastMCP:
    """Create a configured FastMCP application instance."""

    reader = reader or MailReader(settings)
    lock = threading.Lock()
    host = os.environ.get("FASTMCP_HOST", "127.0.0.1")
    port = _coerce_int(os.environ.get("FASTMCP_PORT"), default=8000)

    requested_log_level = os.environ.get("FASTMCP_LOG_LEVEL", "INFO").upper()
    allowed_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if requested_log_level not in allowed_log_levels:
        print(
            f"[imap-mail-reader] Unsupported FASTMCP_LOG_LEVEL '{requested_log_level}'. "
            "Falling back to INFO. Valid values: DEBUG, INFO, WARNING, ERROR, CRITICAL.",
            flush=True,
        )
        log_level = "INFO"
    else:
        log_level = requested_log_level
    debug = os.environ.get("FASTMCP_DEBUG", "false").lower() in ("1", "true", "yes", "on")

    mcp = FastMCP(
        "imap-mail-reader",
        host=host,
        port=port,
        log_level=log_level,  # type: ignore[arg-type]
        debug=debug,
    )

    def _locked(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        # the session owns a single connection
        with lock:
            if not reader.is_connected:
                reader.connect()
            return func(*args, **kwargs)

    async def _run(tool: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return await anyio.to_thread.run_sync(partial(_locked, func, *args, **kwargs))
        except MailReaderError:
            logger.exception("%s failed", tool)
            raise

    def _limit(value: int | None) -> int | None:
        return value if value is not None else settings.default_limit

    @mcp.tool(
        name="mail.list_mailboxes",
        description="List the mailboxes (folders) of the configured account.",
        structured_output=True,
    )
    async def mail_list_mailboxes() -> MailboxListResult:
        mailboxes = await _run("mail.list_mailboxes", reader.list_mailboxes)
        return MailboxListResult(mailboxes=mailboxes, selected=reader.mailbox)

    @mcp.tool(
        name="mail.list",
        description="List message overviews (subject, from, to, date, size, flags) newest first.",
        structured_output=True,
    )
    async def mail_list(
        unread_only: Annotated[bool, Field(description="Only list messages without the \\Seen flag.")] = False,
        limit: Annotated[int | None, Field(default=None, ge=1, description="Maximum number of messages.")] = None,
        offset: Annotated[int, Field(ge=0, description="Messages to skip from the newest.")] = 0,
        mailbox: Annotated[str | None, Field(default=None, description="Mailbox to switch to first.")] = None,
    ) -> MailListResult:
        def _list() -> MailListResult:
            if mailbox and mailbox != reader.mailbox:
                reader.select_mailbox(mailbox)
            overviews = reader.get_overviews(unread_only=unread_only, limit=_limit(limit), offset=offset)
            return MailListResult.build(reader.mailbox, overviews, reader.get_message_count())

        return await _run("mail.list", _list)

    @mcp.tool(
        name="mail.search",
        description=(
            "Search the selected mailbox by text (subject, from, to, body...) and/or a date window. "
            "Dates accept ISO dates or natural language such as '2 weeks ago'."
        ),
        structured_output=True,
    )
    async def mail_search(
        term: Annotated[str | None, Field(default=None, description="Text to search for.")] = None,
        field: Annotated[SearchField, Field(description="Field the term is matched against.")] = SearchField.TEXT,
        since: Annotated[str | None, Field(default=None, description="Inclusive start day.")] = None,
        before: Annotated[str | None, Field(default=None, description="Exclusive end day.")] = None,
        unread_only: Annotated[bool, Field(description="Only match unread messages.")] = False,
        limit: Annotated[int | None, Field(default=None, ge=1, description="Maximum number of hits.")] = None,
        offset: Annotated[int, Field(ge=0, description="Hits to skip from the newest.")] = 0,
        include_emails: Annotated[bool, Field(description="Also return each matching email.")] = False,
        include_body: Annotated[bool, Field(description="Include bodies when returning emails.")] = False,
    ) -> MailSearchResult:
        query = SearchQuery(
            term=term or None,
            field=field,
            since=coerce_day(since),
            before=coerce_day(before),
            unread_only=unread_only,
            limit=_limit(limit),
            offset=offset,
        )

        def _search() -> MailSearchResult:
            ids = reader.search(query)
            if not include_emails:
                return MailSearchResult.build(ids)
            return MailSearchResult.build(ids, [reader.get_email(number, include_body=include_body) for number in ids])

        return await _run("mail.search", _search)

    @mcp.tool(
        name="mail.get",
        description="Read one message: metadata, attachment list and optionally the plain text and HTML bodies.",
        structured_output=True,
    )
    async def mail_get(
        message_id: Annotated[int, Field(ge=1, description="Message number from mail.list or mail.search.")],
        include_body: Annotated[bool, Field(description="Include body_plain and body_html.")] = True,
    ) -> MailGetResult:
        email = await _run("mail.get", reader.get_email, message_id, include_body=include_body)
        return MailGetResult.build(email)

    @mcp.tool(
        name="mail.download_attachment",
        description="Save one attachment of a message to a path on the server's filesystem.",
        structured_output=True,
    )
    async def mail_download_attachment(
        message_id: Annotated[int, Field(ge=1, description="Message number from mail.list or mail.search.")],
        attachment_index: Annotated[int, Field(ge=0, description="Position in the message's attachment list.")],
        destination: Annotated[str, Field(description="File path to write; parent directories are created.")],
    ) -> MailDownloadAttachmentResult:
        result = await _run(
            "mail.download_attachment",
            reader.download_attachment,
            message_id,
            attachment_index,
            Path(destination).expanduser(),
        )
        return MailDownloadAttachmentResult.build(message_id, result)

    @mcp.tool(
        name="mail.delete",
        description="Flag a message as deleted and, unless expunge is false, remove it permanently.",
        structured_output=True,
    )
    async def mail_delete(
        message_id: Annotated[int, Field(ge=1, description="Message number to delete.")],
        expunge: Annotated[bool, Field(description="Expunge immediately after flagging.")] = True,
    ) -> MailMutationResult:
        ok = await _run("mail.delete", reader.delete_email, message_id, expunge)
        return MailMutationResult(ok=ok, message_id=message_id)

    @mcp.tool(
        name="mail.expunge",
        description="Permanently remove every message flagged as deleted in the selected mailbox.",
        structured_output=True,
    )
    async def mail_expunge() -> MailMutationResult:
        ok = await _run("mail.expunge", reader.expunge)
        return MailMutationResult(ok=ok)

    return mcp


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the IMAP mail reader MCP server.")
    parser.add_argument(
        "--config",
        default=os.environ.get("MAIL_READER_CONFIG_FILE"),
        help="Path to an optional configuration YAML file.",
    )
    parser.add_argument(
        "--transport",
        choices=TRANSPORT_CHOICES,
        default=None,
        help="MCP transport to run (overrides FASTMCP_TRANSPORT).",
    )
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    settings = load_settings(Path(args.config) if args.config else None)
    server = create_server(settings)

    transport = (args.transport or os.environ.get("FASTMCP_TRANSPORT", "stdio")).lower()
    if transport not in TRANSPORT_CHOICES:
        raise ValueError(f"Unsupported transport '{transport}'. Expected one of {TRANSPORT_CHOICES}.")

    if transport == "stdio":
        print("[imap-mail-reader] Starting stdio transport", flush=True)
    else:
        print(f"[imap-mail-reader] Starting {transport} server on {server.settings.host}:{server.settings.port}", flush=True)

    server.run(transport=transport)


def _coerce_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        print(
            f"[imap-mail-reader] Invalid integer for environment override: {value!r}; using default {default}",
            flush=True,
        )
        return default


if __name__ == "__main__":
    main()
