"""Abstract base class for the transport a mail reader session owns."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from ..config import ConnectionTarget
from ..models import FetchRecord
from ..search import SearchCommand


class MailConnector(ABC):
    """Single-owner handle on one authenticated server connection.

    A connector is opened once, used by exactly one session and closed once;
    it never reconnects on its own.
    """

    def __init__(self, target: ConnectionTarget, *, timeout: float = 30.0) -> None:
        self.target = target
        self.timeout = timeout

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True between a successful :meth:`open` and :meth:`close`."""

    @abstractmethod
    def open(self) -> None:
        """Open the transport and authenticate."""

    @abstractmethod
    def close(self) -> None:
        """Release the transport. Must be safe to call more than once."""

    @abstractmethod
    def select(self, mailbox: str) -> int:
        """Select ``mailbox`` read-write and return its message count."""

    @abstractmethod
    def list_mailboxes(self, pattern: str = "*") -> list[str]:
        """Return mailbox names under the namespace root."""

    @abstractmethod
    def status(self, mailbox: str) -> dict[str, int]:
        """Return STATUS counters (MESSAGES, UNSEEN) for ``mailbox``."""

    @abstractmethod
    def search(self, command: SearchCommand) -> list[int]:
        """Run SEARCH in the selected mailbox and return message numbers."""

    @abstractmethod
    def fetch(self, message_set: Sequence[int], items: str) -> list[FetchRecord]:
        """Run FETCH for the given message numbers."""

    @abstractmethod
    def mark_deleted(self, message_number: int) -> None:
        """Add the \\Deleted flag to a message."""

    @abstractmethod
    def expunge(self) -> list[int]:
        """Remove messages flagged \\Deleted and return the expunged numbers."""
