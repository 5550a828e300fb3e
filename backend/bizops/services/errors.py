from __future__ import annotations


class WebhookError(Exception):
    """Base error for webhook ingestion and replay."""


class InvalidSignature(WebhookError):
    """Raised when a webhook body cannot be proven to come from its sender."""


class MalformedPayload(WebhookError):
    """Raised when a verified body is not a usable event document."""


class ValidationError(WebhookError):
    """Raised when an admin replay request body is malformed."""

    def __init__(self, message: str, *, errors: list | None = None):
        self.errors = errors or []
        super().__init__(message)


class MutatorError(WebhookError):
    """Base for failures raised by a domain mutator while applying an event."""


class MissingRequiredField(MutatorError):
    def __init__(self, field: str, *, context: str | None = None):
        self.field = field
        self.context = context
        message = f"Missing required field: {field}"
        if context:
            message = f"{message} ({context})"
        super().__init__(message)


class RelatedRecordNotFound(MutatorError):
    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class UnsupportedEventSource(WebhookError):
    def __init__(self, source: str):
        self.source = source
        super().__init__(f"Unsupported event source: {source}")


class ReplayError(WebhookError):
    """Base for replay engine errors."""


class DLQEventNotFound(ReplayError):
    pass


class AlreadyReplayedError(ReplayError):
    def __init__(self, event_id: str, replayed_at, replay_count: int):
        self.event_id = event_id
        self.replayed_at = replayed_at
        self.replay_count = replay_count
        super().__init__(f"Event {event_id} already replayed")


class ReplayConflictError(ReplayError):
    """Another replay of the same event claimed the attempt first."""


class ReplayFailedError(ReplayError):
    def __init__(self, event_id: str, cause: BaseException):
        self.event_id = event_id
        self.cause = cause
        super().__init__(str(cause))
