"""imap-mail-reader package."""

from importlib.metadata import PackageNotFoundError, version as _version

from .config import ConnectionTarget, MailReaderSettings, load_settings, parse_dsn
from .exceptions import (
    AttachmentError,
    ConfigurationError,
    EmailError,
    MailboxError,
    MailConnectionError,
    MailReaderError,
)
from .models import SearchField, SearchQuery
from .reader import MailReader

__all__ = [
    "__version__",
    "AttachmentError",
    "ConfigurationError",
    "ConnectionTarget",
    "EmailError",
    "MailConnectionError",
    "MailReader",
    "MailReaderError",
    "MailReaderSettings",
    "MailboxError",
    "SearchField",
    "SearchQuery",
    "load_settings",
    "parse_dsn",
]
try:
    __version__ = _version("imap-mail-reader")
except PackageNotFoundError:
    __version__ = "0.0.0"
