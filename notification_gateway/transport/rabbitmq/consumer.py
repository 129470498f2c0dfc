"""
RabbitMQ консьюмер для обработки RPC запросов.
Слушает очередь, обрабатывает JSON-RPC запросы через диспетчер и отправляет ответы.
"""

import json
import logging
from typing import Optional

from aio_pika import Message
from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue

from .connection import ConnectionManager
from notification_gateway.transport.json_rpc.dispatcher import PatternDispatcher

logger = logging.getLogger(__name__)


class RPCConsumer:
    """
    Консьюмер для обработки RPC запросов из RabbitMQ.

    Получает сообщения из очереди, передает их в PatternDispatcher
    для обработки и отправляет ответы в очередь reply_to клиента.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        dispatcher: PatternDispatcher,
        queue_name: str = "rpc_requests_queue",
        prefetch_count: int = 10,
    ):
        """
        Инициализация консьюмера.

        :param connection_manager: Менеджер соединений с RabbitMQ
        :param dispatcher: JSON-RPC диспетчер для обработки запросов
        :param queue_name: Очередь RPC запросов
        :param prefetch_count: Количество неподтвержденных сообщений на консьюмер
        """
        self.connection_manager = connection_manager
        self.dispatcher = dispatcher
        self.queue_name = queue_name
        self.prefetch_count = prefetch_count
        self._channel: Optional[AbstractChannel] = None
        self._queue: Optional[AbstractQueue] = None
        self._consumer_tag: Optional[str] = None
        logger.info("RPCConsumer initialized")

    async def start(self) -> str:
        """
        Объявляет очередь запросов и начинает ее слушать.

        :return: Тег консьюмера
        """
        self._channel = await self.connection_manager.open_channel()
        await self._channel.set_qos(prefetch_count=self.prefetch_count)

        # Очередь переживет перезапуск RabbitMQ
        self._queue = await self._channel.declare_queue(self.queue_name, durable=True)
        self._consumer_tag = await self._queue.consume(self.on_message)

        logger.info(f"Started consuming from queue: {self.queue_name}")
        return self._consumer_tag

    async def stop(self) -> None:
        """
        Прекращает прослушивание очереди и закрывает канал.
        """
        try:
            if self._queue is not None and self._consumer_tag is not None:
                await self._queue.cancel(self._consumer_tag)
            if self._channel is not None and not self._channel.is_closed:
                await self._channel.close()
            logger.info(f"Stopped consuming from queue: {self.queue_name}")
        except Exception as e:
            logger.error(f"Error stopping RPC consumer: {e}", exc_info=True)
        finally:
            self._queue = None
            self._consumer_tag = None
            self._channel = None

    async def on_message(self, message: AbstractIncomingMessage) -> None:
        """
        Callback для обработки каждого входящего сообщения.
        Необработанное исключение отклоняет сообщение без повторной постановки.

        :param message: Входящее сообщение из RabbitMQ
        """
        async with message.process(requeue=False):
            try:
                request_body = message.body.decode()
                logger.info(f"Received RPC request. Correlation ID: {message.correlation_id}")

                response_body = await self.dispatcher.handle_request(request_body)

                logger.info(f"RPC request processed. Correlation ID: {message.correlation_id}")
            except Exception as e:
                logger.error(f"Error processing message: {e}", exc_info=True)
                response_body = json.dumps({
                    "jsonrpc": "2.0",
                    "error": {
                        "code": -32603,
                        "message": "Internal error",
                        "data": str(e)
                    },
                    "id": None
                })

            if not response_body:
                # Уведомление без id: ответ не предусмотрен
                return
            if not message.reply_to:
                logger.warning("No reply_to address specified. Response will not be sent.")
                return

            await self._send_response(message.reply_to, response_body, message.correlation_id)

    async def _send_response(
        self,
        reply_to: str,
        response_body: str,
        correlation_id: Optional[str]
    ) -> None:
        """
        Отправляет ответ обратно клиенту.

        :param reply_to: Адрес очереди для ответа
        :param response_body: Тело ответа в формате JSON
        :param correlation_id: ID корреляции для связывания запроса и ответа
        """
        response_message = Message(
            body=response_body.encode(),
            correlation_id=correlation_id,
            content_type='application/json'
        )

        # Клиент мог уже уйти, и его эксклюзивная очередь удалена: не mandatory
        await self._channel.default_exchange.publish(
            response_message,
            routing_key=reply_to,
            mandatory=False
        )

        logger.info(f"Response sent to {reply_to}. Correlation ID: {correlation_id}")
