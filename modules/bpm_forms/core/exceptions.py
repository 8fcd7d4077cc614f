"""
BPM-specific exceptions.

Raised by the outbound clients and the repository; the sync orchestrator
turns them into typed results before they reach a caller.
"""


class BpmError(Exception):
    """Base exception for BPM-related errors."""
    pass


class BpmConnectionError(BpmError):
    """
    Raised when the BPM engine is unreachable or answers with a non-2xx status.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class BpmResponseError(BpmError):
    """Raised when a BPM response body is not JSON or not in a recognised shape."""
    pass


class FormNotFoundError(BpmError):
    """Raised when an operation requires a form that the primary store doesn't have."""

    def __init__(self, form_id: str) -> None:
        self.form_id = form_id
        super().__init__(f"Form not found: {form_id}")
