"""
Консьюмер очереди уведомлений.

Успешно обработанное сообщение подтверждается. Сообщение, которое не удалось
разобрать или обработать, отклоняется без повторной постановки в очередь,
и брокер перенаправляет его в dead-letter обменник.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional

from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue

from .connection import ConnectionManager
from notification_gateway.utils.event_utils import emit_event

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[Any, AbstractIncomingMessage], Awaitable[None]]


class NotificationConsumer:
    """
    Слушает очередь уведомлений и передает разобранные сообщения обработчику.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        queue_name: str,
        handler: NotificationHandler,
        prefetch_count: int = 10,
    ):
        """
        :param connection_manager: Менеджер соединений с RabbitMQ
        :param queue_name: Очередь, объявленная при настройке топологии
        :param handler: Корутина (payload, message) -> None
        :param prefetch_count: Количество неподтвержденных сообщений на консьюмер
        """
        self.connection_manager = connection_manager
        self.queue_name = queue_name
        self.handler = handler
        self.prefetch_count = prefetch_count
        self._channel: Optional[AbstractChannel] = None
        self._queue: Optional[AbstractQueue] = None
        self._consumer_tag: Optional[str] = None

    async def start(self) -> str:
        """
        Начинает прослушивание очереди.
        Очередь не объявляется заново: ее аргументы задает таблица топологии.

        :return: Тег консьюмера
        """
        self._channel = await self.connection_manager.open_channel()
        await self._channel.set_qos(prefetch_count=self.prefetch_count)
        self._queue = await self._channel.get_queue(self.queue_name, ensure=True)
        self._consumer_tag = await self._queue.consume(self.on_message)
        logger.info(f"Started consuming from queue: {self.queue_name}")
        return self._consumer_tag

    async def stop(self) -> None:
        try:
            if self._queue is not None and self._consumer_tag is not None:
                await self._queue.cancel(self._consumer_tag)
            if self._channel is not None and not self._channel.is_closed:
                await self._channel.close()
            logger.info(f"Stopped consuming from queue: {self.queue_name}")
        except Exception as e:
            logger.error(f"Error stopping consumer for {self.queue_name}: {e}", exc_info=True)
        finally:
            self._queue = None
            self._consumer_tag = None
            self._channel = None

    async def on_message(self, message: AbstractIncomingMessage) -> None:
        try:
            payload = json.loads(message.body.decode())
        except (UnicodeDecodeError, ValueError) as e:
            logger.error(f"Failed to parse message from {self.queue_name}: {e}")
            await self._reject(message, f"invalid payload: {e}")
            return

        try:
            await self.handler(payload, message)
        except Exception as e:
            logger.error(f"Handler failed for message from {self.queue_name}: {e}", exc_info=True)
            await self._reject(message, str(e))
            return

        await message.ack()
        logger.debug(f"Message acknowledged. Queue: {self.queue_name}, ID: {message.message_id}")

    async def _reject(self, message: AbstractIncomingMessage, reason: str) -> None:
        logger.warning(f"Rejecting message from {self.queue_name}: {reason}")
        emit_event(
            "consumer.rejected",
            logging.WARNING,
            queue=self.queue_name,
            message_id=message.message_id,
            reason=reason
        )
        await message.reject(requeue=False)
