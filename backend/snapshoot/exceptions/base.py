"""
Error taxonomy for the messaging core.

Repositories and services raise these; routers never build error bodies by
hand. `to_payload()` gives the client-facing shape and `http_status()` the
matching status code, both driven by the canonical error code.
"""

from typing import Any, Dict, Iterable, Optional


class MessagingError(Exception):
    """
    Base exception for messaging errors.

    - message: human-friendly message (safe to show to clients)
    - code: canonical short code used by clients ("invalid_input", "not_found", ...)
    - fields: optional list of payload fields related to the error
    """

    ERROR_CODE_TO_STATUS = {
        "invalid_input": 422,
        "not_found": 404,
        "recipient_unreachable": 200,
        "storage_error": 500,
    }

    def __init__(self, message: str, *, code: Optional[str] = None, fields: Iterable[str] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.fields = list(fields) if fields else None

    def __str__(self) -> str:
        parts = []
        if self.fields:
            parts.append(f"fields: {', '.join(self.fields)}")
        if self.code:
            parts.append(f"code: {self.code}")
        if parts:
            return f"{self.message} ({'; '.join(parts)})"
        return self.message

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message}
        if self.code:
            payload["code"] = self.code
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload

    def to_event(self) -> Dict[str, Any]:
        """Shape used for realtime error events sent to a connection."""
        event: Dict[str, Any] = {"error": self.message}
        if self.code:
            event["code"] = self.code
        if self.fields:
            event["fields"] = list(self.fields)
        return event

    def http_status(self) -> int:
        if self.code:
            return self.ERROR_CODE_TO_STATUS.get(self.code, 400)
        return 400


class ValidationError(MessagingError):
    def __init__(self, message: str, *, fields: Iterable[str] | None = None):
        super().__init__(message, code="invalid_input", fields=fields)


class NotFoundError(MessagingError):
    def __init__(self, message: str = "Not found", *, fields: Iterable[str] | None = None):
        super().__init__(message, code="not_found", fields=fields)


class UnreachableRecipientError(MessagingError):
    """
    The recipient had no live connection when the push was attempted.

    Informational only: the message is already stored, so this is reported to
    the sender as an event and never turned into an HTTP error.
    """

    def __init__(self, recipient_id: str, message_id: Optional[str] = None):
        super().__init__("Recipient not connected", code="recipient_unreachable")
        self.recipient_id = recipient_id
        self.message_id = message_id

    def to_event(self) -> Dict[str, Any]:
        event = super().to_event()
        event["recipientId"] = self.recipient_id
        if self.message_id:
            event["messageId"] = self.message_id
        return event


class StorageError(MessagingError):
    def __init__(self, message: str = "Storage unavailable"):
        super().__init__(message, code="storage_error")


__all__ = [
    "MessagingError",
    "ValidationError",
    "NotFoundError",
    "UnreachableRecipientError",
    "StorageError",
]
