"""Custom exceptions for taswear."""

from typing import Optional


class TASWearError(Exception):
    """Base exception for all taswear errors."""

    pass


class ValidationError(TASWearError):
    """Raised when user input is rejected before any backend call."""

    pass


class AuthError(TASWearError):
    """Raised by the identity provider for credential or session failures.

    The message is the provider's text and is passed through unmodified.
    """

    pass


class NotFoundError(TASWearError):
    """Raised when a requested document doesn't exist."""

    def __init__(self, collection: str, doc_id: str, message: Optional[str] = None):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(message or f"{collection.rstrip('s').capitalize()} not found")


class BackendError(TASWearError):
    """Raised when the document store is unreachable or rejects a call."""

    pass


class ParseError(TASWearError):
    """Raised when a stored document can't be mapped onto its entity."""

    def __init__(self, collection: str, doc_id: str, reason: str):
        self.collection = collection
        self.doc_id = doc_id
        self.reason = reason
        super().__init__(f"Failed to parse {collection} document {doc_id}: {reason}")
