from __future__ import annotations

import logging
import time
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError

from core.events.publisher import EventPublisher, EventPublishError
from core.events.types import PaymentEvent, PaymentEventType

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 10
FIFO_SUFFIX = ".fifo"

SqsErrors = (BotoCoreError, ClientError)


def _chunked(events: list[PaymentEvent], size: int) -> list[list[PaymentEvent]]:
    return [events[index:index + size] for index in range(0, len(events), size)]


def _entry_index(entry_id: str) -> int | None:
    _, _, suffix = str(entry_id).rpartition("-")
    try:
        return int(suffix)
    except ValueError:
        return None


class SqsEventPublisher(EventPublisher):
    """Publishes payment events to SQS with exponential backoff.

    Sends are blocking boto3 calls; async callers should push them onto a
    worker thread.
    """

    backend_name = "sqs"
    enabled = True

    def __init__(
        self,
        *,
        client: Any,
        queue_url: str,
        max_retries: int = 3,
        base_delay_seconds: float = 1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._queue_url = queue_url
        self._max_retries = max_retries
        self._base_delay_seconds = base_delay_seconds
        self._sleep = sleep

    @property
    def queue_url(self) -> str:
        return self._queue_url

    @property
    def is_fifo(self) -> bool:
        return self._queue_url.endswith(FIFO_SUFFIX)

    def publish(
        self,
        event_type: PaymentEventType,
        data: dict[str, Any],
        correlation_id: str | None = None,
    ) -> str:
        return self.publish_event(PaymentEvent.create(event_type, data, correlation_id))

    def _entry(self, event: PaymentEvent) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "MessageBody": event.to_json(),
            "MessageAttributes": event.message_attributes(),
        }
        if self.is_fifo:
            entry["MessageGroupId"] = event.group_id
            entry["MessageDeduplicationId"] = event.event_id
        return entry

    def publish_event(self, event: PaymentEvent) -> str:
        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            current = event.with_retry_count(attempt) if attempt else event
            try:
                response = self._client.send_message(QueueUrl=self._queue_url, **self._entry(current))
            except SqsErrors as err:
                last_error = err
                logger.error(
                    "Failed to send SQS message for event %s (%s): %s",
                    event.event_id,
                    event.event_type_value,
                    err,
                )
                if attempt >= self._max_retries:
                    break
                delay = self._base_delay_seconds * (2 ** attempt)
                logger.warning(
                    "Retrying SQS message in %ss (attempt %s/%s)",
                    delay,
                    attempt + 1,
                    self._max_retries,
                )
                self._sleep(delay)
                continue

            message_id = response["MessageId"]
            logger.info(
                "Payment event sent: %s for payment %s (message %s)",
                event.event_type_value,
                event.payment_id,
                message_id,
            )
            return message_id

        raise EventPublishError(
            f"Failed to send SQS message after {self._max_retries} retries: {last_error}"
        ) from last_error

    def publish_batch(self, events: list[PaymentEvent]) -> list[str]:
        """Send ``events`` in chunks of ten.

        Entries the batch call reports as failed are resent one at a time with
        the normal retry policy. If any of those still fail the remaining
        entries are attempted before :class:`EventPublishError` is raised.
        """
        message_ids: list[str] = []
        failed_event_ids: list[str] = []
        for chunk in _chunked(list(events), MAX_BATCH_SIZE):
            sent, failed = self._send_chunk(chunk)
            message_ids.extend(sent)
            failed_event_ids.extend(failed)

        if failed_event_ids:
            raise EventPublishError(
                "Failed to send batch events after retries: " + ", ".join(failed_event_ids)
            )
        return message_ids

    def _send_chunk(self, events: list[PaymentEvent]) -> tuple[list[str], list[str]]:
        entries = [{"Id": f"msg-{index}", **self._entry(event)} for index, event in enumerate(events)]
        try:
            response = self._client.send_message_batch(QueueUrl=self._queue_url, Entries=entries)
        except SqsErrors as err:
            logger.error("Batch send failed, falling back to individual sends: %s", err)
            return self._send_individually(events, range(len(events)), {})

        message_ids: dict[int, str] = {}
        for entry in response.get("Successful", []):
            index = _entry_index(entry.get("Id", ""))
            if index is not None:
                message_ids[index] = entry["MessageId"]

        retry_indexes = []
        for entry in response.get("Failed", []):
            index = _entry_index(entry.get("Id", ""))
            if index is None or index >= len(events):
                continue
            logger.error(
                "Batch entry %s failed: %s %s",
                entry.get("Id"),
                entry.get("Code"),
                entry.get("Message"),
            )
            retry_indexes.append(index)

        if retry_indexes:
            return self._send_individually(events, retry_indexes, message_ids)

        logger.info("Batch sent: %s events", len(message_ids))
        return [message_ids[index] for index in sorted(message_ids)], []

    def _send_individually(
        self,
        events: list[PaymentEvent],
        indexes,
        message_ids: dict[int, str],
    ) -> tuple[list[str], list[str]]:
        failed: list[str] = []
        for index in indexes:
            try:
                message_ids[index] = self.publish_event(events[index])
            except EventPublishError as err:
                logger.error("Event %s could not be published: %s", events[index].event_id, err)
                failed.append(events[index].event_id)
        return [message_ids[index] for index in sorted(message_ids)], failed
