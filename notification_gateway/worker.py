"""
Точка входа для запуска RabbitMQ воркера.
Обслуживает RPC запросы и очередь email уведомлений.

Использование:
    python -m notification_gateway.worker
"""

import asyncio
import logging
import sys

from aio_pika.abc import AbstractIncomingMessage

from notification_gateway.config.app_config import settings
from notification_gateway.config.logging_config import setup_logging
from notification_gateway.config.rabbitmq_config import rabbitmq_settings
from notification_gateway.config.topology_config import EMAIL_QUEUE
from notification_gateway.services.ping_service import PingService
from notification_gateway.transport.json_rpc.dispatcher import PatternDispatcher
from notification_gateway.transport.rabbitmq.consumer import RPCConsumer
from notification_gateway.transport.rabbitmq.gateway import MessagingGateway
from notification_gateway.transport.rabbitmq.notification_consumer import NotificationConsumer

setup_logging(log_level=settings.LOG_LEVEL, log_dir=settings.LOG_DIR)
logger = logging.getLogger(__name__)

REQUIRED_NOTIFICATION_FIELDS = ("recipient", "template_code")


async def log_notification(payload: dict, message: AbstractIncomingMessage) -> None:
    """
    Обработчик по умолчанию: проверяет обязательные поля и логирует уведомление.
    Сообщение без обязательных полей уходит в dead-letter очередь.
    """
    if not isinstance(payload, dict):
        raise ValueError("Notification payload must be a JSON object")
    missing = [field for field in REQUIRED_NOTIFICATION_FIELDS if not payload.get(field)]
    if missing:
        raise ValueError(f"Missing notification fields: {', '.join(missing)}")

    logger.info(
        f"Received notification. Trace ID: {payload.get('trace_id')}, "
        f"Template: {payload['template_code']}, Recipient: {payload['recipient']}"
    )


def build_dispatcher() -> PatternDispatcher:
    dispatcher = PatternDispatcher()
    dispatcher.register_service(PingService())
    return dispatcher


async def main():
    """
    Главная функция запуска воркера.
    Инициализирует все компоненты и слушает очереди до остановки.
    """
    gateway = MessagingGateway.from_settings(rabbitmq_settings)
    consumers = []

    try:
        logger.info("=" * 60)
        logger.info("Starting RabbitMQ Worker")
        logger.info("=" * 60)

        logger.info(f"Connecting to RabbitMQ at {rabbitmq_settings.RABBITMQ_HOST}:{rabbitmq_settings.RABBITMQ_PORT}")
        await gateway.connect()
        await gateway.setup_topology()

        consumers = [
            RPCConsumer(
                gateway.connection_manager,
                build_dispatcher(),
                queue_name=rabbitmq_settings.RABBITMQ_RPC_QUEUE,
                prefetch_count=rabbitmq_settings.RABBITMQ_PREFETCH_COUNT,
            ),
            NotificationConsumer(
                gateway.connection_manager,
                EMAIL_QUEUE,
                log_notification,
                prefetch_count=rabbitmq_settings.RABBITMQ_PREFETCH_COUNT,
            ),
        ]
        for consumer in consumers:
            await consumer.start()

        logger.info("=" * 60)
        logger.info("RabbitMQ Worker is ready!")
        logger.info("Waiting for messages... Press Ctrl+C to stop.")
        logger.info("=" * 60)

        # Блокируемся до сигнала остановки
        await asyncio.Event().wait()

    except asyncio.CancelledError:
        logger.info("Received shutdown signal")

    except Exception as e:
        logger.error(f"Fatal error in worker: {e}", exc_info=True)
        sys.exit(1)

    finally:
        for consumer in consumers:
            await consumer.stop()
        await gateway.close()
        logger.info("RabbitMQ Worker stopped.")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        # Обрабатываем Ctrl+C на уровне asyncio.run()
        pass
