"""
Шлюз брокера сообщений: единая точка входа для прикладного кода.

Собирает ConnectionManager, TopologyDeclarator, Publisher и RPCClient поверх
одного соединения и не принимает публикации и RPC вызовы, пока топология
не объявлена.
"""

import logging
from typing import Any, Iterable, Optional

from .connection import ConnectionManager, ConnectionState
from .publisher import Publisher
from .rpc_client import RPCClient
from .topology import TopologyDeclarator
from notification_gateway.config.rabbitmq_config import RabbitMQSettings
from notification_gateway.config.topology_config import DEFAULT_TOPOLOGY, TopologyEntry
from notification_gateway.exceptions.gateway_exceptions import (
    BrokerConnectionError,
    PublishError,
    RPCTransportError,
)

logger = logging.getLogger(__name__)


class MessagingGateway:
    """
    Шлюз для fire-and-forget публикаций и RPC вызовов через RabbitMQ.

    Порядок запуска: connect() -> setup_topology() -> публикации и вызовы.
    Ошибки connect() и setup_topology() считаются фатальными для процесса.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        rpc_queue: str = "rpc_requests_queue",
        default_timeout_ms: int = 5000,
        topology: Iterable[TopologyEntry] = DEFAULT_TOPOLOGY,
    ):
        """
        :param connection_manager: Менеджер соединений с RabbitMQ
        :param rpc_queue: Очередь RPC запросов
        :param default_timeout_ms: Таймаут RPC по умолчанию в миллисекундах
        :param topology: Таблица топологии
        """
        self.connection_manager = connection_manager
        self.topology_declarator = TopologyDeclarator(connection_manager, topology)
        self.publisher = Publisher(connection_manager)
        self.rpc_client = RPCClient(connection_manager, rpc_queue, default_timeout_ms)
        self.connection_manager.add_listener(self._on_connection_state)

    @classmethod
    def from_settings(cls, settings: RabbitMQSettings) -> "MessagingGateway":
        connection_manager = ConnectionManager(
            url=settings.url,
            connect_timeout=settings.RABBITMQ_CONNECT_TIMEOUT,
            max_attempts=settings.RABBITMQ_CONNECT_ATTEMPTS,
            retry_delay=settings.RABBITMQ_RECONNECT_DELAY,
        )
        return cls(
            connection_manager,
            rpc_queue=settings.RABBITMQ_RPC_QUEUE,
            default_timeout_ms=settings.RABBITMQ_RPC_TIMEOUT_MS,
        )

    @property
    def is_ready(self) -> bool:
        return self.connection_manager.is_connected and self.topology_declarator.is_declared

    async def connect(self) -> None:
        """
        :raises BrokerConnectionError: Если брокер недоступен
        """
        await self.connection_manager.connect()
        try:
            await self.rpc_client.start()
        except Exception as e:
            await self.connection_manager.close()
            raise BrokerConnectionError(f"Failed to start RPC reply consumer: {e}") from e

    async def setup_topology(self) -> None:
        """
        :raises TopologyError: С указанием сущности, объявление которой не удалось
        """
        await self.topology_declarator.setup_topology()

    async def close(self) -> None:
        """Закрывает RPC клиент и соединение. Никогда не выбрасывает исключений."""
        await self.rpc_client.close()
        await self.connection_manager.close()
        self.topology_declarator.is_declared = False

    async def publish_to_queue(self, queue_name: str, message: Any) -> None:
        self._ensure_ready_for_publish(f"queue '{queue_name}'")
        await self.publisher.publish_to_queue(queue_name, message)

    async def publish_to_exchange(self, exchange_name: str, routing_key: str, message: Any) -> None:
        self._ensure_ready_for_publish(f"exchange '{exchange_name}' (routing key '{routing_key}')")
        await self.publisher.publish_to_exchange(exchange_name, routing_key, message)

    async def send_with_response(self, pattern: str, payload: Any, timeout_ms: Optional[float] = None) -> Any:
        if not self.is_ready:
            raise RPCTransportError(pattern, self._not_ready_cause())
        return await self.rpc_client.send_with_response(pattern, payload, timeout_ms)

    def health(self) -> dict:
        """
        Состояние шлюза для health checks.
        """
        return {
            "status": "ok" if self.is_ready else "unavailable",
            "connection": self.connection_manager.state.value,
            "topology_declared": self.topology_declarator.is_declared,
            "rpc_pending": self.rpc_client.pending_count,
            "error": None if self.is_ready else str(self._not_ready_cause()),
        }

    def _ensure_ready_for_publish(self, destination: str) -> None:
        if not self.is_ready:
            cause = self._not_ready_cause()
            logger.error(f"Failed to publish to {destination}: {cause}")
            raise PublishError(destination, cause)

    def _not_ready_cause(self) -> BrokerConnectionError:
        if not self.connection_manager.is_connected:
            return BrokerConnectionError(
                f"Not connected to RabbitMQ (state: {self.connection_manager.state.value})"
            )
        return BrokerConnectionError("Topology is not declared")

    def _on_connection_state(self, state: ConnectionState, exc: Optional[BaseException]) -> None:
        if state is ConnectionState.CLOSING:
            self.topology_declarator.is_declared = False
