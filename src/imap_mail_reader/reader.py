"""Mail reader session: connection lifecycle plus the read/search/mutate API."""

from __future__ import annotations

import contextlib
from collections.abc import Callable, Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Any

from mcp.server.fastmcp.utilities.logging import get_logger

from .config import ConnectionTarget, MailReaderSettings
from .connectors import IMAPConnector, MailConnector
from .exceptions import AttachmentError, EmailError, MailboxError, MailConnectionError, MailReaderError
from .extractor import (
    build_attachment,
    decode_body,
    find_attachment_parts,
    find_body_parts,
)
from .models import (
    AttachmentData,
    DownloadResult,
    Email,
    EmailOverview,
    FetchRecord,
    MimeNode,
    SearchQuery,
    SessionState,
)
from .search import SearchCommand, build_search_command, date_query, order_and_page
from .utils.bodystructure import parse_bodystructure
from .utils.decoding import decode_header, parse_header_block

logger = get_logger(__name__)

OVERVIEW_HEADERS = ("SUBJECT", "FROM", "TO", "DATE")
OVERVIEW_ITEMS = f"(UID FLAGS RFC822.SIZE BODY.PEEK[HEADER.FIELDS ({' '.join(OVERVIEW_HEADERS)})])"
STRUCTURE_ITEMS = "(BODYSTRUCTURE)"

ConnectorFactory = Callable[[ConnectionTarget, float], MailConnector]


def _default_connector_factory(target: ConnectionTarget, timeout: float) -> MailConnector:
    return IMAPConnector(target, timeout=timeout)


class MailReader:
    """Stateful session on a single mailbox of a single account.

    The session owns exactly one connector. Every operation except
    :meth:`connect` and :meth:`disconnect` requires the session to be
    connected and fails with :class:`MailConnectionError` otherwise.
    """

    def __init__(
        self,
        settings: MailReaderSettings | None = None,
        *,
        connector_factory: ConnectorFactory | None = None,
    ) -> None:
        self.settings = settings or MailReaderSettings()
        self._connector_factory = connector_factory or _default_connector_factory
        self._connector: MailConnector | None = None
        self._mailbox = self.settings.mailbox

    @classmethod
    def from_dsn(cls, dsn: str, *, connector_factory: ConnectorFactory | None = None, **options: Any) -> MailReader:
        """Build a reader from a DSN string plus optional settings fields."""
        return cls(MailReaderSettings(dsn=dsn, **options), connector_factory=connector_factory)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        if self._connector is not None and self._connector.is_open:
            return SessionState.CONNECTED
        return SessionState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    @property
    def mailbox(self) -> str:
        """Currently selected (or next to be selected) mailbox name."""
        return self._mailbox

    def connect(self, mailbox: str | None = None) -> MailReader:
        """Open the connection, authenticate and select ``mailbox``.

        An already open connection is closed first. Every failure surfaces as
        :class:`MailConnectionError` and leaves the session disconnected.
        """
        if self.settings.dsn is None or not self.settings.dsn.get_secret_value():
            raise MailConnectionError("DSN not provided. Set DSN before connecting.")
        if self._connector is not None:
            self.disconnect()

        target = self.settings.target()
        if mailbox:
            self._mailbox = mailbox
        connector = self._connector_factory(target, float(self.settings.timeout_seconds))
        try:
            connector.open()
            count = connector.select(self._mailbox)
        except MailConnectionError:
            connector.close()
            raise
        except Exception as exc:
            connector.close()
            raise MailConnectionError(f"Failed to connect to mail server: {exc}") from exc

        self._connector = connector
        logger.info("Selected mailbox %s (%d messages)", self._mailbox, count)
        return self

    def disconnect(self) -> None:
        connector, self._connector = self._connector, None
        if connector is not None:
            with contextlib.suppress(Exception):
                connector.close()

    def __enter__(self) -> MailReader:
        if not self.is_connected:
            self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect()

    def __del__(self) -> None:
        if getattr(self, "_connector", None) is not None:
            with contextlib.suppress(Exception):
                self.disconnect()

    def _require_connector(self) -> MailConnector:
        connector = self._connector
        if connector is None or not connector.is_open:
            raise MailConnectionError("Not connected to mail server. Call connect() first.")
        return connector

    # ------------------------------------------------------------------
    # Mailboxes
    # ------------------------------------------------------------------
    def select_mailbox(self, mailbox: str) -> MailReader:
        """Switch the session to ``mailbox``; earlier message numbers become invalid.

        A failed SELECT leaves the server with no mailbox selected, so the
        previous mailbox is selected again before the error propagates. When
        that also fails the session is disconnected.
        """
        connector = self._require_connector()
        try:
            count = connector.select(mailbox)
        except MailboxError:
            self._reselect(connector, self._mailbox)
            raise
        self._mailbox = mailbox
        logger.info("Selected mailbox %s (%d messages)", mailbox, count)
        return self

    def _reselect(self, connector: MailConnector, mailbox: str) -> None:
        try:
            connector.select(mailbox)
        except MailReaderError as exc:
            logger.warning("Could not reselect mailbox %s: %s", mailbox, exc)
            self.disconnect()

    def list_mailboxes(self) -> list[str]:
        return self._require_connector().list_mailboxes()

    def get_message_count(self) -> int:
        status = self._require_connector().status(self._mailbox)
        return status.get("MESSAGES", 0)

    def get_unread_count(self) -> int:
        return len(self._require_connector().search(SearchCommand(criteria=("UNSEEN",))))

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    def search(self, query: SearchQuery) -> list[int]:
        """Return matching message numbers, newest first, paged by ``offset``/``limit``."""
        connector = self._require_connector()
        command = build_search_command(query)
        ids = connector.search(command)
        logger.debug("Search %s matched %d message(s)", command.describe(), len(ids))
        return order_and_page(ids, query.limit, query.offset)

    def search_by_date(
        self,
        since: date | datetime | str,
        before: date | datetime | str | None = None,
        unread_only: bool = False,
        limit: int | None = None,
    ) -> list[int]:
        self._require_connector()
        query = date_query(since, before, unread_only)
        if limit is not None:
            query = query.model_copy(update={"limit": limit})
        return self.search(query)

    def search_emails(self, query: SearchQuery, include_body: bool = False) -> list[Email]:
        return [self.get_email(number, include_body=include_body) for number in self.search(query)]

    def search_emails_by_date(
        self,
        since: date | datetime | str,
        before: date | datetime | str | None = None,
        unread_only: bool = False,
        include_body: bool = False,
    ) -> list[Email]:
        numbers = self.search_by_date(since, before, unread_only)
        return [self.get_email(number, include_body=include_body) for number in numbers]

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------
    def get_overviews(self, unread_only: bool = False, limit: int | None = None, offset: int = 0) -> list[EmailOverview]:
        """List envelope metadata with one FETCH and no body-structure parsing."""
        numbers = self.search(SearchQuery(unread_only=unread_only, limit=limit, offset=offset))
        return self._fetch_overviews(numbers)

    def get_emails(
        self,
        unread_only: bool = False,
        limit: int | None = None,
        offset: int = 0,
        include_body: bool = True,
    ) -> list[Email]:
        numbers = self.search(SearchQuery(unread_only=unread_only, limit=limit, offset=offset))
        return [self.get_email(number, include_body=include_body) for number in numbers]

    def _fetch_overviews(self, numbers: list[int]) -> list[EmailOverview]:
        if not numbers:
            return []
        records = self._require_connector().fetch(numbers, OVERVIEW_ITEMS)
        by_number = {record.sequence: record for record in records}
        return [_overview_from_record(by_number[number]) for number in numbers if number in by_number]

    # ------------------------------------------------------------------
    # Message content
    # ------------------------------------------------------------------
    def fetch_structure(self, message_number: int) -> MimeNode:
        """Fetch and parse the BODYSTRUCTURE of one message."""
        records = self._require_connector().fetch([message_number], STRUCTURE_ITEMS)
        record = _record_for(records, message_number)
        structure = record.get("BODYSTRUCTURE") if record else None
        if not structure:
            raise EmailError(f"Email #{message_number} not found")
        try:
            return parse_bodystructure(structure)
        except ValueError as exc:
            raise EmailError(f"Malformed body structure for email #{message_number}: {exc}") from exc

    def get_body(self, message_number: int, mime_type: str) -> str:
        """Return the decoded text of the first part of ``mime_type`` ("" if none)."""
        structure = self.fetch_structure(message_number)
        return self._body_from_structure(message_number, structure, mime_type)

    def get_attachments(self, message_number: int) -> list[AttachmentData]:
        structure = self.fetch_structure(message_number)
        return self._attachments_from_structure(message_number, structure)

    def get_email(self, message_number: int, include_body: bool = True) -> Email:
        """Return metadata, attachment list and optionally bodies of one message.

        Any failure past the connection check is reported as :class:`EmailError`.
        """
        self._require_connector()
        try:
            overviews = self._fetch_overviews([message_number])
            if not overviews:
                raise EmailError(f"Email #{message_number} not found")
            structure = self.fetch_structure(message_number)
            attachments = self._attachments_from_structure(message_number, structure)
            email = Email(
                **overviews[0].model_dump(),
                has_attachments=bool(attachments),
                attachments=[attachment.meta() for attachment in attachments],
            )
            if include_body:
                email.body_plain = self._body_from_structure(message_number, structure, "TEXT/PLAIN")
                email.body_html = self._body_from_structure(message_number, structure, "TEXT/HTML")
        except Exception as exc:
            raise EmailError(f"Failed to get email: {exc}") from exc
        return email

    def _fetch_sections(self, message_number: int, sections: Iterable[str]) -> dict[str, bytes]:
        sections = list(sections)
        verb = "BODY" if self.settings.mark_seen else "BODY.PEEK"
        items = "(" + " ".join(f"{verb}[{section}]" for section in sections) + ")"
        records = self._require_connector().fetch([message_number], items)
        record = _record_for(records, message_number)
        if record is None:
            raise EmailError(f"Email #{message_number} not found")
        return {section: record.section(section) or b"" for section in sections}

    def _body_from_structure(self, message_number: int, structure: MimeNode, mime_type: str) -> str:
        if not structure.is_multipart:
            raw = self._fetch_sections(message_number, ["TEXT"])["TEXT"]
            return decode_body(structure, raw)
        # First matching part with content wins; empty alternatives are skipped.
        for node in find_body_parts(structure, mime_type):
            raw = self._fetch_sections(message_number, [node.part_number])[node.part_number]
            body = decode_body(node, raw)
            if body:
                return body
        return ""

    def _attachments_from_structure(self, message_number: int, structure: MimeNode) -> list[AttachmentData]:
        parts = find_attachment_parts(structure)
        if not parts:
            return []
        payloads = self._fetch_sections(message_number, [part.part_number for part in parts])
        return [build_attachment(index, part, payloads[part.part_number]) for index, part in enumerate(parts)]

    # ------------------------------------------------------------------
    # Attachments on disk
    # ------------------------------------------------------------------
    def download_attachment(
        self,
        message_number: int,
        attachment_index: int,
        destination: str | Path,
    ) -> DownloadResult:
        """Write one attachment's decoded payload to ``destination``.

        Missing parent directories are created with mode 0755. Nothing is
        written when the index is out of range.
        """
        self._require_connector()
        try:
            attachments = self.get_attachments(message_number)
        except MailConnectionError:
            raise
        except MailReaderError as exc:
            raise AttachmentError(f"Failed to read attachments of email #{message_number}: {exc}") from exc

        if attachment_index < 0 or attachment_index >= len(attachments):
            raise AttachmentError(f"Attachment index not found: {attachment_index}")
        attachment = attachments[attachment_index]

        path = Path(destination)
        directory = path.parent
        if not directory.is_dir():
            try:
                directory.mkdir(mode=0o755, parents=True, exist_ok=True)
            except OSError as exc:
                raise AttachmentError(f"Failed to create directory: {directory}") from exc
        try:
            path.write_bytes(attachment.data)
        except OSError as exc:
            raise AttachmentError(f"Failed to write attachment to: {path}") from exc

        logger.info("Saved attachment %s of email #%d to %s", attachment.filename, message_number, path)
        return DownloadResult(filename=attachment.filename, size=len(attachment.data), type=attachment.type, path=str(path))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def delete_email(self, message_number: int, expunge_immediately: bool = True) -> bool:
        """Flag a message ``\\Deleted`` and, unless told otherwise, expunge right away."""
        connector = self._require_connector()
        connector.mark_deleted(message_number)
        logger.info("Marked email #%d in %s for deletion", message_number, self._mailbox)
        if expunge_immediately:
            connector.expunge()
        return True

    def expunge(self) -> bool:
        """Permanently remove flagged messages; False when nothing was removed."""
        removed = self._require_connector().expunge()
        if removed:
            logger.info("Expunged %d email(s) from %s", len(removed), self._mailbox)
        return bool(removed)


def _record_for(records: list[FetchRecord], message_number: int) -> FetchRecord | None:
    for record in records:
        if record.sequence == message_number:
            return record
    return None


def _overview_from_record(record: FetchRecord) -> EmailOverview:
    headers = parse_header_block(record.header_block())
    flags = {str(flag).upper() for flag in record.get("FLAGS") or []}
    uid = record.get("UID")
    size = record.get("RFC822.SIZE")
    return EmailOverview(
        id=record.sequence,
        uid=int(uid) if uid is not None else None,
        subject=decode_header(headers.get("subject")),
        from_=decode_header(headers.get("from")),
        to=decode_header(headers.get("to")),
        date=headers.get("date", ""),
        size=int(size) if size is not None else 0,
        seen="\\SEEN" in flags,
        flagged="\\FLAGGED" in flags,
        answered="\\ANSWERED" in flags,
    )
