"""IMAP connector backed by :mod:`imaplib`."""

from __future__ import annotations

import contextlib
import imaplib
import ssl
from collections.abc import Callable
from typing import Any, Sequence

from mcp.server.fastmcp.utilities.logging import get_logger

from ..config import ConnectionTarget
from ..exceptions import EmailError, MailboxError, MailConnectionError, MailReaderError
from ..models import FetchRecord
from ..search import SearchCommand
from ..utils.imap_response import (
    parse_fetch_response,
    parse_list_response,
    parse_search_response,
    parse_status_response,
)
from ..utils.mailbox_names import decode_mailbox, quote_mailbox
from .base import MailConnector

logger = get_logger(__name__)

SUPPORTED_PROTOCOLS = {"imap", "imap4", "imap4rev1"}
TRANSPORT_ERRORS = (imaplib.IMAP4.abort, OSError)

ClientFactory = Callable[[ConnectionTarget, float, "ssl.SSLContext | None"], imaplib.IMAP4]


def build_ssl_context(target: ConnectionTarget) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not target.validate_cert:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def default_client_factory(
    target: ConnectionTarget, timeout: float, ssl_context: ssl.SSLContext | None
) -> imaplib.IMAP4:
    """Open an ``imaplib`` client according to the target's security mode.

    ``ssl`` uses implicit TLS, ``tls`` upgrades with STARTTLS, anything else
    (``notls``) stays in clear text.
    """
    port = target.effective_port()
    if target.security == "ssl":
        return imaplib.IMAP4_SSL(target.host, port, ssl_context=ssl_context, timeout=timeout)
    client = imaplib.IMAP4(target.host, port, timeout=timeout)
    if target.security == "tls":
        client.starttls(ssl_context=ssl_context)
    return client


class IMAPConnector(MailConnector):
    """Owned IMAP connection used by a single :class:`~imap_mail_reader.reader.MailReader`."""

    def __init__(
        self,
        target: ConnectionTarget,
        *,
        timeout: float = 30.0,
        client_factory: ClientFactory | None = None,
    ) -> None:
        super().__init__(target, timeout=timeout)
        self._client_factory = client_factory or default_client_factory
        self._client: imaplib.IMAP4 | None = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def open(self) -> None:
        if self._client is not None:
            return
        target = self.target
        if target.protocol not in SUPPORTED_PROTOCOLS:
            raise MailConnectionError(f"Failed to connect to mail server: unsupported protocol '{target.protocol}'")

        ssl_context: ssl.SSLContext | None = None
        if target.security in {"ssl", "tls"}:
            ssl_context = build_ssl_context(target)
            if not target.validate_cert:
                logger.warning("Certificate validation is disabled for %s", target.mailbox_spec())

        logger.info("Connecting to %s", target.mailbox_spec())
        try:
            client = self._client_factory(target, self.timeout, ssl_context)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailConnectionError(f"Failed to connect to mail server: {exc}") from exc

        try:
            client.login(target.username, target.password.get_secret_value())
        except (imaplib.IMAP4.error, OSError, UnicodeError) as exc:
            self._shutdown(client)
            raise MailConnectionError(f"Failed to connect to mail server: {exc}") from exc
        self._client = client

    def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            self._shutdown(client)
            logger.info("Disconnected from %s", self.target.mailbox_spec())

    @staticmethod
    def _shutdown(client: imaplib.IMAP4) -> None:
        # LOGOUT rather than CLOSE: CLOSE would silently expunge \Deleted messages.
        with contextlib.suppress(Exception):
            client.logout()

    def _drop(self, client: imaplib.IMAP4) -> None:
        # A transport failure leaves the socket unusable; forget it so the session reads as disconnected.
        self._client = None
        self._shutdown(client)
        logger.warning("Lost connection to %s", self.target.mailbox_spec())

    def _require_client(self) -> imaplib.IMAP4:
        if self._client is None:
            raise MailConnectionError("Not connected to mail server. Call connect() first.")
        return self._client

    def _run(
        self,
        error_cls: type[MailReaderError],
        description: str,
        command: str,
        *args: Any,
        **kwargs: Any,
    ) -> tuple[str, list[Any]]:
        client = self._require_client()
        logger.debug("IMAP %s %s", command.upper(), description)
        try:
            typ, data = getattr(client, command)(*args, **kwargs)
        except TRANSPORT_ERRORS as exc:
            self._drop(client)
            raise MailConnectionError(f"Connection to mail server lost during {command.upper()}: {exc}") from exc
        except imaplib.IMAP4.error as exc:
            raise error_cls(f"{description}: {exc}") from exc
        if typ != "OK":
            raise error_cls(f"{description}: {_response_text(data)}")
        return typ, list(data or [])

    def select(self, mailbox: str) -> int:
        _, data = self._run(MailboxError, f"Failed to select mailbox: {mailbox}", "select", quote_mailbox(mailbox))
        count = parse_search_response(data[:1])
        return count[0] if count else 0

    def list_mailboxes(self, pattern: str = "*") -> list[str]:
        client = self._require_client()
        try:
            typ, data = client.list('""', pattern)
        except TRANSPORT_ERRORS as exc:
            self._drop(client)
            raise MailConnectionError(f"Connection to mail server lost during LIST: {exc}") from exc
        except imaplib.IMAP4.error as exc:
            raise MailboxError(f"Failed to list mailboxes: {exc}") from exc
        if typ != "OK" or not data:
            return []
        try:
            return [decode_mailbox(name) for _flags, _delimiter, name in parse_list_response(data)]
        except ValueError as exc:
            raise MailboxError(f"Failed to decode mailbox name: {exc}") from exc

    def status(self, mailbox: str) -> dict[str, int]:
        _, data = self._run(
            MailboxError,
            f"Failed to read status of mailbox: {mailbox}",
            "status",
            quote_mailbox(mailbox),
            "(MESSAGES UNSEEN)",
        )
        return parse_status_response(data)

    def search(self, command: SearchCommand) -> list[int]:
        client = self._require_client()
        client.literal = command.literal
        try:
            _, data = self._run(
                MailboxError,
                f"Search failed ({command.describe()})",
                "search",
                command.charset,
                *command.criteria,
            )
        finally:
            client.literal = None
        return parse_search_response(data)

    def fetch(self, message_set: Sequence[int], items: str) -> list[FetchRecord]:
        if not message_set:
            return []
        numbers = ",".join(str(number) for number in message_set)
        _, data = self._run(EmailError, f"Failed to fetch {items} for message(s) {numbers}", "fetch", numbers, items)
        try:
            return parse_fetch_response(data)
        except ValueError as exc:
            raise EmailError(f"Malformed FETCH response for message(s) {numbers}: {exc}") from exc

    def mark_deleted(self, message_number: int) -> None:
        self._run(
            EmailError,
            f"Failed to mark email #{message_number} for deletion",
            "store",
            str(message_number),
            "+FLAGS",
            "(\\Deleted)",
        )

    def expunge(self) -> list[int]:
        _, data = self._run(EmailError, "Failed to expunge deleted emails", "expunge")
        return parse_search_response(data)


def _response_text(data: Any) -> str:
    if not data:
        return "no details from server"
    parts: list[str] = []
    for item in data:
        if isinstance(item, bytes):
            parts.append(item.decode("utf-8", errors="replace"))
        elif item is not None:
            parts.append(str(item))
    return " ".join(parts) or "no details from server"
