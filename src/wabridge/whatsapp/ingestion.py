"""Webhook ingestion coordinator.

One call per HTTP delivery: verify signature -> decode -> normalize ->
apply each event through the state machine. Once the delivery is
verified and parsed the result is 200 whatever happens to individual
events; only a storage failure aborts the batch (500) so the provider
redelivers, which is safe because every effect is idempotent.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from wabridge.domain.message_state import MessageStateMachine, UnknownMessageError
from wabridge.errors import AppError, DatabaseError, ValidationError
from wabridge.infra.store import Store
from wabridge.observability.logging import get_logger
from wabridge.observability.redaction import id_prefix, safe_log_context

from .meta_adapter import (
    InvalidPayloadError,
    SignatureVerificationError,
    normalize,
    verify_signature,
)
from .models import ItemFailure


@dataclass
class IngestionResult:
    """Outcome of one webhook delivery."""

    status_code: int
    error: AppError | None = None
    messages_created: int = 0
    messages_duplicate: int = 0
    statuses_processed: int = 0
    unknown_messages: int = 0
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status_code == 200

    def summary(self) -> dict[str, int]:
        return {
            "messages_created": self.messages_created,
            "messages_duplicate": self.messages_duplicate,
            "statuses_processed": self.statuses_processed,
            "unknown_messages": self.unknown_messages,
            "failures": len(self.failures),
        }


class WebhookIngestor:
    """Turns raw webhook deliveries into stored message state.

    Args:
        store: Storage collaborator.
        webhook_secret: App secret for X-Hub-Signature-256. Empty means
            every delivery is rejected.
        default_to_number: Business number used when a change carries no
            display_phone_number.
        state_machine: Optional pre-built state machine.
        logger: Optional logger.
    """

    def __init__(
        self,
        store: Store,
        *,
        webhook_secret: str,
        default_to_number: str | None = None,
        state_machine: MessageStateMachine | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._secret = webhook_secret.encode("utf-8") if webhook_secret else b""
        self._default_to = default_to_number or None
        self._logger = logger or get_logger(__name__)
        self._states = state_machine or MessageStateMachine(store, logger=self._logger)

    def handle(self, raw_body: bytes, signature_header: str | None) -> IngestionResult:
        """Process one delivery and return the HTTP status to answer with."""
        if not self._secret:
            self._logger.error("webhook rejected: secret not configured")
            return _rejected(SignatureVerificationError("webhook secret not configured"))

        if not verify_signature(raw_body, signature_header, self._secret):
            self._logger.warning(
                "webhook rejected: signature verification failed",
                extra={
                    "extra_fields": safe_log_context(
                        signature_present=bool(signature_header), body_len=len(raw_body)
                    )
                },
            )
            return _rejected(SignatureVerificationError())

        try:
            envelope = json.loads(raw_body)
        except (ValueError, RecursionError):
            self._logger.warning("webhook rejected: invalid json body")
            return _rejected(InvalidPayloadError("body is not valid JSON"))

        try:
            normalized = normalize(envelope, default_to_number=self._default_to)
        except InvalidPayloadError as exc:
            self._logger.warning(
                "webhook rejected: invalid payload",
                extra={"extra_fields": safe_log_context(error=exc.message)},
            )
            return _rejected(exc)

        result = IngestionResult(status_code=200, failures=list(normalized.failures))
        for failure in normalized.failures:
            self._log_failure(failure)

        try:
            for message_event in normalized.message_events:
                try:
                    _, created = self._states.apply_message_event(message_event)
                except ValidationError as exc:
                    failure = ItemFailure(
                        kind="message",
                        reason="validation_failed",
                        message_id=message_event.message_id,
                        detail=exc.message,
                    )
                    result.failures.append(failure)
                    self._log_failure(failure)
                    continue
                if created:
                    result.messages_created += 1
                else:
                    result.messages_duplicate += 1

            for status_event in normalized.status_events:
                try:
                    self._states.apply_status_event(status_event)
                except UnknownMessageError:
                    result.unknown_messages += 1
                    self._logger.info(
                        "status for unknown message discarded",
                        extra={
                            "extra_fields": safe_log_context(
                                wamid=id_prefix(status_event.message_id),
                                status=status_event.status[:32],
                            )
                        },
                    )
                    continue
                except ValidationError as exc:
                    failure = ItemFailure(
                        kind="status",
                        reason="validation_failed",
                        message_id=status_event.message_id,
                        detail=exc.message,
                    )
                    result.failures.append(failure)
                    self._log_failure(failure)
                    continue
                result.statuses_processed += 1
        except DatabaseError as exc:
            self._logger.error(
                "webhook batch aborted: storage failure",
                exc_info=True,
                extra={"extra_fields": safe_log_context(**result.summary())},
            )
            result.status_code = exc.status_code
            result.error = exc
            return result

        self._logger.info(
            "webhook processed",
            extra={"extra_fields": safe_log_context(**result.summary())},
        )
        return result

    def _log_failure(self, failure: ItemFailure) -> None:
        self._logger.warning(
            "webhook item skipped",
            extra={
                "extra_fields": safe_log_context(
                    kind=failure.kind,
                    reason=failure.reason,
                    wamid=id_prefix(failure.message_id),
                )
            },
        )


def _rejected(error: AppError) -> IngestionResult:
    return IngestionResult(status_code=error.status_code, error=error)
