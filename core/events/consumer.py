"""Long-polling SQS consumer for payment events.

Messages are deleted once their handler succeeds, and also when they are
malformed or carry an unknown event type. A message whose handler fails is left
on the queue so the visibility timeout redelivers it, until it has been
redelivered ``max_redeliveries`` times, after which it is deleted.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError

from core.events.handlers import EventHandler, get_handler
from core.events.types import InvalidEventMessage, PaymentEvent, decode_payment_event

logger = logging.getLogger(__name__)

MAX_MESSAGES_PER_POLL = 10


class MessageOutcome(str, Enum):
    PROCESSED = "processed"
    RETRY = "retry"
    DROPPED = "dropped"


def receive_count(message: dict[str, Any]) -> int:
    raw = (message.get("Attributes") or {}).get("ApproximateReceiveCount", "1")
    try:
        return max(int(raw), 1)
    except (TypeError, ValueError):
        return 1


class SqsEventConsumer:
    def __init__(
        self,
        *,
        client: Any,
        queue_url: str,
        wait_time_seconds: int = 20,
        visibility_timeout_seconds: int = 60,
        max_redeliveries: int = 3,
        poll_interval_seconds: float = 1.0,
        handler_lookup: Callable[[Any], EventHandler | None] = get_handler,
    ) -> None:
        self._client = client
        self._queue_url = queue_url
        self._wait_time_seconds = wait_time_seconds
        self._visibility_timeout_seconds = visibility_timeout_seconds
        self._max_redeliveries = max_redeliveries
        self._poll_interval_seconds = poll_interval_seconds
        self._handler_lookup = handler_lookup
        self._running = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wake: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("SQS consumer already running")
            return

        self._running = True
        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        logger.info("SQS consumer started for %s", self._queue_url)

        try:
            while self._running:
                try:
                    await self.poll_once()
                except Exception:
                    logger.exception("Error polling SQS")
                if not self._running:
                    break
                await self._pause()
        finally:
            self._running = False
            logger.info("SQS consumer stopped")

    def stop(self) -> None:
        """Ask the polling loop to exit. Safe to call repeatedly and from any thread."""
        if not self._running:
            return
        self._running = False

        loop, wake = self._loop, self._wake
        if loop is None or wake is None or loop.is_closed():
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            wake.set()
        else:
            loop.call_soon_threadsafe(wake.set)

    async def _pause(self) -> None:
        if self._wake is None:
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self._poll_interval_seconds)
        except asyncio.TimeoutError:
            pass

    def _receive_messages(self) -> list[dict[str, Any]]:
        response = self._client.receive_message(
            QueueUrl=self._queue_url,
            MaxNumberOfMessages=MAX_MESSAGES_PER_POLL,
            WaitTimeSeconds=self._wait_time_seconds,
            VisibilityTimeout=self._visibility_timeout_seconds,
            MessageAttributeNames=["All"],
            AttributeNames=["ApproximateReceiveCount"],
        )
        return response.get("Messages") or []

    async def poll_once(self) -> list[MessageOutcome]:
        messages = await asyncio.to_thread(self._receive_messages)
        if not messages:
            return []

        logger.info("Received %s messages from SQS", len(messages))
        results = await asyncio.gather(
            *(self.process_message(message) for message in messages),
            return_exceptions=True,
        )
        outcomes: list[MessageOutcome] = []
        for message, result in zip(messages, results):
            if isinstance(result, BaseException):
                logger.error("Unhandled error processing message %s: %s", message.get("MessageId"), result)
                outcomes.append(MessageOutcome.RETRY)
            else:
                outcomes.append(result)
        return outcomes

    async def process_message(self, message: dict[str, Any]) -> MessageOutcome:
        message_id = message.get("MessageId")
        try:
            event = decode_payment_event(message.get("Body"))
        except InvalidEventMessage as err:
            logger.error("Dropping invalid message %s: %s", message_id, err)
            await self._delete(message)
            return MessageOutcome.DROPPED

        handler = self._handler_lookup(event.event_type)
        if handler is None:
            logger.warning("Dropping message %s with unknown event type: %s", message_id, event.event_type_value)
            await self._delete(message)
            return MessageOutcome.DROPPED

        logger.info("Processing event %s (%s)", event.event_type_value, event.event_id)
        try:
            await handler(event)
        except Exception:
            logger.exception("Handler failed for event %s (%s)", event.event_type_value, event.event_id)
            return await self._handle_failure(message, event)

        await self._delete(message)
        logger.info("Event processed: %s (%s)", event.event_type_value, event.event_id)
        return MessageOutcome.PROCESSED

    async def _handle_failure(self, message: dict[str, Any], event: PaymentEvent) -> MessageOutcome:
        redeliveries = receive_count(message) - 1
        if redeliveries < self._max_redeliveries:
            logger.warning(
                "Event %s will be redelivered (redelivery %s/%s)",
                event.event_id,
                redeliveries + 1,
                self._max_redeliveries,
            )
            return MessageOutcome.RETRY

        logger.error(
            "Event %s exceeded %s redeliveries, dropping message",
            event.event_id,
            self._max_redeliveries,
        )
        await self._delete(message)
        return MessageOutcome.DROPPED

    async def _delete(self, message: dict[str, Any]) -> None:
        receipt_handle = message.get("ReceiptHandle")
        if not receipt_handle:
            return
        try:
            await asyncio.to_thread(
                self._client.delete_message,
                QueueUrl=self._queue_url,
                ReceiptHandle=receipt_handle,
            )
        except (BotoCoreError, ClientError) as err:
            logger.error("Failed to delete message %s: %s", message.get("MessageId"), err)
