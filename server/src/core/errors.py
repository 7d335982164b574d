"""
Exception types raised across the server.

Not-found results are never exceptions: the store returns empty lists or
``None``. Everything below is a real failure that a caller must handle.
"""

from typing import Optional


class SkirmishError(Exception):
    """Base class for server errors."""


class StorageFaultError(SkirmishError):
    """The document store failed for a reason other than not-found or conflict."""

    def __init__(self, operation: str, collection: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.collection = collection
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} on '{collection}' failed{detail}")


class UnknownRouteError(SkirmishError, LookupError):
    """No handler is registered for a category/action pair."""

    def __init__(self, category: str, action: Optional[str]):
        self.category = category
        self.action = action
        super().__init__(f"No handler for {category}.{action}")


class InvalidTransitionError(SkirmishError):
    """A bootstrap signal arrived in a stage that cannot accept it."""

    def __init__(self, stage: str, signal: str):
        self.stage = stage
        self.signal = signal
        super().__init__(f"Signal '{signal}' is not valid in stage {stage}")


class EnvelopeValidationError(SkirmishError, ValueError):
    """An inbound envelope is missing required fields."""
