"""Transport connectors owned by a mail reader session."""

from .base import MailConnector
from .imap import IMAPConnector, default_client_factory

__all__ = [
    "MailConnector",
    "IMAPConnector",
    "default_client_factory",
]
