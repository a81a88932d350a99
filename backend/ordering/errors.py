"""
Error taxonomy for the purchasing core.

Every error carries a machine-readable `code` and the HTTP status the API
layer renders it with. Services raise these; routes never build error
payloads by hand (see `register_error_handlers`).
"""

from __future__ import annotations

from typing import Any, Dict

from flask import current_app, jsonify


class OrderingError(Exception):
    default_code = "ordering_error"
    default_http_status = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        http_status: int | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.http_status = int(http_status or self.default_http_status)
        self.payload = dict(payload or {})
        super().__init__(message)

    def to_response_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.payload:
            body.update(self.payload)
        return body


class ValidationError(OrderingError):
    """Missing or invalid input. Nothing was mutated."""
    default_code = "validation_error"
    default_http_status = 400


class EmptyAggregationError(ValidationError):
    default_code = "empty_aggregation"


class NotFoundError(OrderingError):
    default_code = "not_found"
    default_http_status = 404


class InvalidStateError(OrderingError):
    """Operation attempted from a state that forbids it."""
    default_code = "invalid_state"
    default_http_status = 409


class InvalidTransitionError(InvalidStateError):
    default_code = "invalid_transition"

    def __init__(self, entity: str, source: str, target: str) -> None:
        self.entity = entity
        self.source = source
        self.target = target
        super().__init__(
            f"Cannot move {entity} from '{source}' to '{target}'",
            payload={"source": source, "target": target},
        )


class DuplicateOrderError(InvalidStateError):
    default_code = "duplicate_order"


class AlreadyCompletedError(InvalidStateError):
    default_code = "already_completed"


class ImmutableRecordError(InvalidStateError):
    default_code = "immutable_record"


class ConcurrencyConflictError(OrderingError):
    """Lost the race on an atomic update. Retry from a fresh read."""
    default_code = "concurrency_conflict"
    default_http_status = 409


class TransportFailure(OrderingError):
    """Notification send failed. Recorded per item, never aborts a batch."""
    default_code = "transport_failure"
    default_http_status = 502


def register_error_handlers(app) -> None:
    @app.errorhandler(OrderingError)
    def handle_ordering_error(exc: OrderingError):
        if exc.http_status >= 500:
            current_app.logger.error("Request failed: %s", exc.message)
        return jsonify(exc.to_response_payload()), exc.http_status
