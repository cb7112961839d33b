"""Custom exceptions for the IMAP mail reader."""


class MailReaderError(Exception):
    """Base exception for mail reader failures."""


class MailConnectionError(MailReaderError):
    """Raised when the session cannot be opened or is not open."""


class ConfigurationError(MailReaderError):
    """Raised when configuration or caller input is invalid."""


class MailboxError(MailReaderError):
    """Raised when a mailbox cannot be selected or inspected."""


class EmailError(MailReaderError):
    """Raised when a message cannot be fetched or modified."""


class AttachmentError(MailReaderError):
    """Raised when an attachment cannot be located or saved."""
