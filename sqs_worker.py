import asyncio
import logging
import signal

from core import event_handlers as _event_handler_registration  # noqa: F401
from core.events.consumer import SqsEventConsumer
from core.events.sqs_client import build_sqs_client
from core.logging_config import configure_logging
from core.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def build_consumer(settings: Settings) -> SqsEventConsumer:
    return SqsEventConsumer(
        client=build_sqs_client(settings),
        queue_url=settings.sqs_queue_url or "",
        wait_time_seconds=settings.sqs_wait_time_seconds,
        visibility_timeout_seconds=settings.sqs_visibility_timeout_seconds,
        max_redeliveries=settings.sqs_max_redeliveries,
    )


async def run_worker() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)

    if not settings.sqs_enabled:
        logger.warning("SQS is not configured; nothing to consume")
        return

    consumer = build_consumer(settings)
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, consumer.stop)

    await consumer.start()


if __name__ == "__main__":
    asyncio.run(run_worker())
