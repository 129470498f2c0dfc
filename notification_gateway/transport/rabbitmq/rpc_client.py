"""
RabbitMQ клиент для RPC запросов с ожиданием ответа.

Каждый запрос помечается уникальным correlation_id и отправляется с reply_to,
указывающим на эксклюзивную очередь ответов клиента. Ответы сопоставляются с
ожидающими вызовами через словарь correlation_id -> Future.
"""

import asyncio
import json
import logging
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue

from .connection import ConnectionManager, ConnectionState
from .publisher import build_message
from notification_gateway.exceptions.gateway_exceptions import (
    BrokerConnectionError,
    RPCRemoteError,
    RPCTimeoutError,
    RPCTransportError,
)
from notification_gateway.utils.event_utils import emit_event

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 5000


class RPCCallState(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class RPCClient:
    """
    Клиент для RPC вызовов через RabbitMQ.

    Ожидание ответов не блокирует других вызывающих: под блокировкой записи
    выполняется только публикация запроса. Регистрация, разрешение и удаление
    Future происходят без await между извлечением из словаря и установкой
    результата, поэтому каждый вызов разрешается ровно один раз.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        request_queue: str = "rpc_requests_queue",
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ):
        """
        :param connection_manager: Менеджер соединений с RabbitMQ
        :param request_queue: Очередь, которую слушает отвечающая сторона
        :param default_timeout_ms: Таймаут по умолчанию в миллисекундах
        """
        self.connection_manager = connection_manager
        self.request_queue = request_queue
        self.default_timeout_ms = default_timeout_ms
        self._futures: Dict[str, asyncio.Future] = {}
        self._patterns: Dict[str, str] = {}
        self._channel: Optional[AbstractChannel] = None
        self._callback_queue: Optional[AbstractQueue] = None
        self._consumer_tag: Optional[str] = None
        self._reply_to_queue_name: Optional[str] = None
        self.connection_manager.add_listener(self._on_connection_state)
        logger.info("RPCClient initialized")

    @property
    def is_started(self) -> bool:
        return self._consumer_tag is not None and self._channel is not None and not self._channel.is_closed

    @property
    def pending_count(self) -> int:
        return len(self._futures)

    async def start(self) -> None:
        """
        Создает временную эксклюзивную очередь для ответов и начинает ее слушать.
        Должен быть вызван после ConnectionManager.connect().
        """
        if self.is_started:
            return

        self._channel = await self.connection_manager.open_channel()
        self._channel.close_callbacks.add(self._on_channel_closed)

        # Пустое имя - RabbitMQ сгенерирует уникальное имя
        self._callback_queue = await self._channel.declare_queue(
            name='',
            exclusive=True,
            auto_delete=True
        )
        self._reply_to_queue_name = self._callback_queue.name
        self._consumer_tag = await self._callback_queue.consume(self._on_response, no_ack=True)

        logger.info(f"RPCClient started. Reply queue: {self._reply_to_queue_name}")

    async def send_with_response(
        self,
        pattern: str,
        payload: Any,
        timeout_ms: Optional[float] = None,
    ) -> Any:
        """
        Выполняет RPC вызов и ждет ответ не дольше timeout_ms.

        :param pattern: Имя вызываемого метода (например, "gateway.ping")
        :param payload: Данные запроса
        :param timeout_ms: Таймаут ожидания ответа в миллисекундах
        :return: Поле result ответа
        :raises ValueError: Если таймаут не положительный
        :raises RPCTimeoutError: Если ответ не получен вовремя
        :raises RPCTransportError: Если соединение недоступно или потеряно
        :raises RPCRemoteError: Если удаленная сторона вернула ошибку
        """
        if timeout_ms is None:
            timeout_ms = self.default_timeout_ms
        if timeout_ms <= 0:
            raise ValueError(f"RPC timeout must be positive, got {timeout_ms}")

        if not self.is_started:
            error = BrokerConnectionError("RPC client is not started")
            self._finish(pattern, "-", RPCCallState.FAILED, 0.0, error=str(error))
            raise RPCTransportError(pattern, error)

        correlation_id = str(uuid.uuid4())
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._futures[correlation_id] = future
        self._patterns[correlation_id] = pattern
        started = loop.time()

        try:
            request_body = {
                "jsonrpc": "2.0",
                "method": pattern,
                "params": {"data": payload},
                "id": correlation_id
            }
            logger.info(f"Sending RPC request. Method: {pattern}, ID: {correlation_id}")
            logger.debug(f"Request: {request_body}")

            # Один дедлайн на ожидание блокировки записи, подтверждение брокера и ответ
            try:
                result = await asyncio.wait_for(
                    self._publish_and_wait(pattern, request_body, correlation_id, future),
                    timeout=timeout_ms / 1000
                )
            except asyncio.TimeoutError:
                elapsed_ms = (loop.time() - started) * 1000
                self._finish(pattern, correlation_id, RPCCallState.TIMED_OUT, elapsed_ms)
                raise RPCTimeoutError(pattern, timeout_ms, elapsed_ms) from None
            except (RPCTransportError, RPCRemoteError) as e:
                elapsed_ms = (loop.time() - started) * 1000
                self._finish(pattern, correlation_id, RPCCallState.FAILED, elapsed_ms, error=str(e))
                raise

            elapsed_ms = (loop.time() - started) * 1000
            self._finish(pattern, correlation_id, RPCCallState.FULFILLED, elapsed_ms)
            logger.debug(f"Response: {result}")
            return result

        finally:
            # Удаляем регистрацию при любом исходе
            self._futures.pop(correlation_id, None)
            self._patterns.pop(correlation_id, None)

    async def _publish_and_wait(
        self,
        pattern: str,
        request_body: dict,
        correlation_id: str,
        future: asyncio.Future,
    ) -> Any:
        try:
            await self._publish_request(request_body, correlation_id)
        except Exception as e:
            raise RPCTransportError(pattern, e) from e
        return await future

    async def _publish_request(self, request_body: dict, correlation_id: str) -> None:
        channel = await self.connection_manager.get_channel()
        message = build_message(
            request_body,
            correlation_id=correlation_id,
            # Имя берется из очереди: после восстановления канала оно меняется
            reply_to=self._callback_queue.name,
        )
        async with self.connection_manager.write_lock:
            await channel.default_exchange.publish(
                message,
                routing_key=self.request_queue,
                mandatory=True
            )
        logger.debug(f"Request published to {self.request_queue}")

    async def _on_response(self, message: AbstractIncomingMessage) -> None:
        """
        Callback для обработки ответов из очереди reply-to.

        :param message: Входящее сообщение с ответом
        """
        correlation_id = message.correlation_id
        if not correlation_id:
            logger.warning("Received response without correlation_id")
            emit_event("rpc.discarded", logging.WARNING, reason="missing correlation_id")
            return

        # Извлечение и разрешение выполняются без переключения задач
        future = self._futures.pop(correlation_id, None)
        pattern = self._patterns.pop(correlation_id, "-")
        if future is None or future.done():
            logger.warning(f"No pending request for correlation_id: {correlation_id}")
            emit_event("rpc.discarded", logging.WARNING, correlation_id=correlation_id, reason="no pending request")
            return

        try:
            response_body = json.loads(message.body.decode())
        except (UnicodeDecodeError, ValueError) as e:
            logger.error(f"Malformed RPC response for {correlation_id}: {e}")
            future.set_exception(RPCTransportError(pattern, e))
            return

        if not isinstance(response_body, dict):
            future.set_exception(RPCTransportError(pattern, ValueError("response is not a JSON object")))
        elif response_body.get("error") is not None:
            error = response_body["error"]
            logger.error(f"RPC error: {error}")
            if not isinstance(error, dict):
                future.set_exception(RPCTransportError(pattern, ValueError(f"malformed error object: {error!r}")))
                return
            future.set_exception(
                RPCRemoteError(
                    pattern,
                    error.get("code", -32603),
                    error.get("message", "Unknown error"),
                    error.get("data"),
                )
            )
        else:
            future.set_result(response_body.get("result"))

    def fail_pending(self, cause: BaseException) -> int:
        """
        Завершает все ожидающие вызовы с RPCTransportError.

        :param cause: Причина отказа транспорта
        :return: Количество завершенных вызовов
        """
        failed = 0
        for correlation_id in list(self._futures):
            future = self._futures.pop(correlation_id, None)
            pattern = self._patterns.pop(correlation_id, "-")
            if future is not None and not future.done():
                future.set_exception(RPCTransportError(pattern, cause))
                failed += 1
        if failed:
            logger.warning(f"Failed {failed} pending RPC calls: {cause}")
        return failed

    def _on_connection_state(self, state: ConnectionState, exc: Optional[BaseException]) -> None:
        if state in (ConnectionState.CLOSING, ConnectionState.DISCONNECTED):
            self.fail_pending(exc or BrokerConnectionError(f"Connection {state.value}"))

    def _on_channel_closed(self, sender, exc: Optional[BaseException] = None) -> None:
        self.fail_pending(exc or BrokerConnectionError("Reply channel closed"))

    def _finish(
        self,
        pattern: str,
        correlation_id: str,
        state: RPCCallState,
        elapsed_ms: float,
        **fields: Any,
    ) -> None:
        if state is RPCCallState.FULFILLED:
            logger.info(f"Received RPC response. Method: {pattern}, ID: {correlation_id}")
            level = logging.INFO
        elif state is RPCCallState.TIMED_OUT:
            logger.error(f"RPC request timeout. Method: {pattern}, ID: {correlation_id}")
            level = logging.WARNING
        else:
            logger.error(f"RPC request failed. Method: {pattern}, ID: {correlation_id}: {fields.get('error')}")
            level = logging.ERROR
        emit_event(
            f"rpc.{state.value}",
            level,
            pattern=pattern,
            correlation_id=correlation_id,
            elapsed_ms=round(elapsed_ms, 1),
            **fields
        )

    async def close(self) -> None:
        """
        Отписывается от очереди ответов и завершает ожидающие вызовы.
        Ошибки только логируются.
        """
        self.fail_pending(BrokerConnectionError("RPC client closed"))
        channel = self._channel
        self._channel = None

        try:
            if self._callback_queue is not None and self._consumer_tag is not None and channel is not None and not channel.is_closed:
                await self._callback_queue.cancel(self._consumer_tag)
            if channel is not None:
                channel.close_callbacks.discard(self._on_channel_closed)
                if not channel.is_closed:
                    await channel.close()
            logger.info("RPCClient closed")
        except Exception as e:
            logger.error(f"Error closing RPCClient: {e}", exc_info=True)
        finally:
            self._callback_queue = None
            self._consumer_tag = None
