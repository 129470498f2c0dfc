"""
Fire-and-forget публикация сообщений в RabbitMQ.
Вызов ждет только подтверждения брокера, но не обработки сообщения консьюмером.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractChannel, AbstractExchange

from .connection import ConnectionManager
from notification_gateway.exceptions.gateway_exceptions import PublishError
from notification_gateway.utils.event_utils import emit_event

logger = logging.getLogger(__name__)


def build_message(payload: Any, **properties: Any) -> Message:
    """
    Формирует AMQP сообщение из произвольной полезной нагрузки.
    bytes отправляются как есть, все остальное сериализуется в JSON.

    :param payload: Полезная нагрузка
    :param properties: Дополнительные свойства aio_pika.Message
    :return: Сообщение, готовое к публикации
    """
    if isinstance(payload, (bytes, bytearray)):
        body = bytes(payload)
        content_type = "application/octet-stream"
    else:
        body = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
        content_type = "application/json"

    properties.setdefault("content_type", content_type)
    properties.setdefault("delivery_mode", DeliveryMode.PERSISTENT)
    properties.setdefault("message_id", str(uuid.uuid4()))
    properties.setdefault("timestamp", datetime.now(timezone.utc))
    return Message(body, **properties)


class Publisher:
    """
    Публикатор сообщений в очередь или в обменник по ключу маршрутизации.

    Не повторяет отправку: политика повторов остается за вызывающим кодом
    или за dead-letter механизмом.
    """

    def __init__(self, connection_manager: ConnectionManager):
        """
        :param connection_manager: Менеджер соединений с RabbitMQ
        """
        self.connection_manager = connection_manager
        self._exchanges: Dict[str, AbstractExchange] = {}
        self._exchanges_channel: Optional[AbstractChannel] = None

    async def publish_to_queue(self, queue_name: str, message: Any) -> None:
        """
        Отправляет сообщение напрямую в очередь через обменник по умолчанию.

        :param queue_name: Имя очереди
        :param message: Полезная нагрузка
        :raises PublishError: При любой ошибке транспорта
        """
        destination = f"queue '{queue_name}'"
        try:
            channel = await self.connection_manager.get_channel()
            await self._publish(channel.default_exchange, queue_name, message)
        except Exception as e:
            self._on_failure(destination, e)
            raise PublishError(destination, e) from e

        logger.info(f"Message published to queue: {queue_name}")
        emit_event("publish.sent", destination=destination, queue=queue_name)

    async def publish_to_exchange(self, exchange_name: str, routing_key: str, message: Any) -> None:
        """
        Отправляет сообщение в обменник; брокер доставит его в привязанные очереди.

        :param exchange_name: Имя обменника
        :param routing_key: Ключ маршрутизации
        :param message: Полезная нагрузка
        :raises PublishError: При любой ошибке транспорта
        """
        destination = f"exchange '{exchange_name}' (routing key '{routing_key}')"
        try:
            channel = await self.connection_manager.get_channel()
            exchange = await self._get_exchange(channel, exchange_name)
            await self._publish(exchange, routing_key, message)
        except Exception as e:
            self._on_failure(destination, e)
            raise PublishError(destination, e) from e

        logger.info(f"Message published to exchange: {exchange_name}, routingKey: {routing_key}")
        emit_event("publish.sent", destination=destination, exchange=exchange_name, routing_key=routing_key)

    async def _publish(self, exchange: AbstractExchange, routing_key: str, payload: Any) -> None:
        message = build_message(payload)
        # Запись в общий канал строго по одной
        async with self.connection_manager.write_lock:
            await exchange.publish(message, routing_key=routing_key, mandatory=True)

    async def _get_exchange(self, channel: AbstractChannel, name: str) -> AbstractExchange:
        # Кэш действует, пока жив канал, из которого получены обменники
        if self._exchanges_channel is not channel:
            self._exchanges = {}
            self._exchanges_channel = channel
        if name not in self._exchanges:
            self._exchanges[name] = await channel.get_exchange(name, ensure=False)
        return self._exchanges[name]

    @staticmethod
    def _on_failure(destination: str, error: Exception) -> None:
        logger.error(f"Failed to publish to {destination}: {error}")
        emit_event("publish.failed", logging.ERROR, destination=destination, error=str(error))
