"""
Объявление топологии RabbitMQ: обменники, очереди, привязки и dead-letter маршрутизация.
"""

import logging
from typing import Dict, Iterable, Optional

from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractQueue

from .connection import ConnectionManager
from notification_gateway.config.topology_config import (
    DEFAULT_TOPOLOGY,
    EntityKind,
    TopologyEntry,
    validate_topology,
)
from notification_gateway.exceptions.gateway_exceptions import TopologyError
from notification_gateway.utils.event_utils import emit_event

logger = logging.getLogger(__name__)


class TopologyDeclarator:
    """
    Применяет таблицу топологии к брокеру.

    Все объявления работают по принципу declare-if-absent, поэтому повторный
    вызов setup_topology() на уже настроенном брокере ничего не меняет.
    Объявление идет в отдельном канале: ошибка PRECONDITION_FAILED закрывает
    канал, и общий канал публикации при этом не страдает.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        topology: Iterable[TopologyEntry] = DEFAULT_TOPOLOGY,
    ):
        """
        :param connection_manager: Менеджер соединений с RabbitMQ
        :param topology: Упорядоченная таблица сущностей
        """
        self.connection_manager = connection_manager
        self.topology = tuple(topology)
        self.is_declared = False

    async def setup_topology(self) -> None:
        """
        Объявляет все сущности таблицы в заданном порядке.

        :raises TopologyError: С указанием сущности, объявление которой не удалось
        """
        validate_topology(self.topology)

        try:
            channel = await self.connection_manager.open_channel()
        except Exception as e:
            logger.error(f"Cannot open channel for topology setup: {e}")
            emit_event("topology.failed", logging.ERROR, entity="channel", error=str(e))
            raise TopologyError("channel", e) from e

        exchanges: Dict[str, AbstractExchange] = {}
        queues: Dict[str, AbstractQueue] = {}

        try:
            for entry in self.topology:
                try:
                    await self._declare(channel, entry, exchanges, queues)
                except Exception as e:
                    self.is_declared = False
                    logger.error(f"Failed to declare {entry.label}: {e}")
                    emit_event("topology.failed", logging.ERROR, entity=entry.label, error=str(e))
                    raise TopologyError(entry.label, e) from e
                logger.debug(f"Declared {entry.label}")
        finally:
            await self._close_channel(channel)

        self.is_declared = True
        emit_event(
            "topology.declared",
            exchanges=sorted(exchanges),
            queues=sorted(queues),
            entries=len(self.topology),
        )
        logger.info("Queues and exchanges configured")

    async def _declare(
        self,
        channel: AbstractChannel,
        entry: TopologyEntry,
        exchanges: Dict[str, AbstractExchange],
        queues: Dict[str, AbstractQueue],
    ) -> None:
        if entry.kind is EntityKind.EXCHANGE:
            exchanges[entry.name] = await channel.declare_exchange(
                entry.name,
                entry.exchange_type,
                durable=entry.durable,
            )
        elif entry.kind is EntityKind.QUEUE:
            queues[entry.name] = await channel.declare_queue(
                entry.name,
                durable=entry.durable,
                arguments=entry.queue_arguments or None,
            )
        else:
            await queues[entry.name].bind(exchanges[entry.exchange], routing_key=entry.routing_key)

    @staticmethod
    async def _close_channel(channel: Optional[AbstractChannel]) -> None:
        if channel is None or channel.is_closed:
            return
        try:
            await channel.close()
        except Exception as e:
            logger.warning(f"Error closing topology channel: {e}")
