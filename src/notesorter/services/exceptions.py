"""Custom exceptions for notesorter services."""

from typing import Optional


class NoteSorterError(Exception):
    """Base exception for notesorter errors."""

    pass


class DocumentNotFoundError(NoteSorterError):
    """Raised when the backing store has no (live) document for an id."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class ClassificationUnavailable(NoteSorterError):
    """Raised when every classifier attempt failed.

    Attributes:
        models: Model names that were attempted, in order
    """

    def __init__(self, message: str, models: Optional[list[str]] = None):
        self.models = models or []
        super().__init__(message)


class MalformedResponse(ClassificationUnavailable):
    """Classifier output could not be parsed as a routing array.

    Attributes:
        raw: The raw response text (after fence stripping)
    """

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(message)


class DestinationResolutionFailure(NoteSorterError):
    """A routed chunk's target path could not be found or created.

    Attributes:
        path: The target path that failed to resolve
    """

    def __init__(self, path: str, message: str = "Cannot resolve destination"):
        self.path = path
        super().__init__(f"{message}: {path}")


class RevertFailure(NoteSorterError):
    """Raised when the store rejects a revert write."""

    def __init__(self, document_id: str, message: str):
        self.document_id = document_id
        self.message = message
        super().__init__(f"Revert failed for {document_id}: {message}")

