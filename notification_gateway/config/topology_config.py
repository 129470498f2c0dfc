"""
Декларативное описание топологии RabbitMQ.

Топология задается таблицей строк TopologyEntry. Порядок строк является
порядком объявления: привязка может ссылаться только на уже объявленные
обменник и очередь.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from aio_pika import ExchangeType

from notification_gateway.exceptions.gateway_exceptions import TopologyError

# Имена сущностей
NOTIFICATIONS_EXCHANGE = "notifications.direct"
DEAD_LETTER_EXCHANGE = "dlx.exchange"
EMAIL_QUEUE = "email.queue"
FAILED_QUEUE = "failed.queue"

# Ключи маршрутизации
EMAIL_ROUTING_KEY = "email"
FAILED_ROUTING_KEY = "failed"


class EntityKind(str, Enum):
    EXCHANGE = "exchange"
    QUEUE = "queue"
    BINDING = "binding"


@dataclass(frozen=True)
class TopologyEntry:
    """
    Одна строка таблицы топологии.

    Для привязки name - это очередь, exchange - источник, routing_key - ключ.
    """
    kind: EntityKind
    name: str
    durable: bool = True
    exchange_type: ExchangeType = ExchangeType.DIRECT
    dead_letter_exchange: Optional[str] = None
    dead_letter_routing_key: Optional[str] = None
    exchange: Optional[str] = None
    routing_key: Optional[str] = None

    @property
    def label(self) -> str:
        if self.kind is EntityKind.BINDING:
            return f"binding '{self.exchange}' -> '{self.name}' ({self.routing_key})"
        return f"{self.kind.value} '{self.name}'"

    @property
    def queue_arguments(self) -> Dict[str, str]:
        arguments: Dict[str, str] = {}
        if self.dead_letter_exchange is not None:
            arguments["x-dead-letter-exchange"] = self.dead_letter_exchange
        if self.dead_letter_routing_key is not None:
            arguments["x-dead-letter-routing-key"] = self.dead_letter_routing_key
        return arguments


def exchange(name: str, exchange_type: ExchangeType = ExchangeType.DIRECT, durable: bool = True) -> TopologyEntry:
    return TopologyEntry(EntityKind.EXCHANGE, name, durable=durable, exchange_type=exchange_type)


def queue(
    name: str,
    durable: bool = True,
    dead_letter_exchange: Optional[str] = None,
    dead_letter_routing_key: Optional[str] = None,
) -> TopologyEntry:
    return TopologyEntry(
        EntityKind.QUEUE,
        name,
        durable=durable,
        dead_letter_exchange=dead_letter_exchange,
        dead_letter_routing_key=dead_letter_routing_key,
    )


def binding(exchange_name: str, queue_name: str, routing_key: str) -> TopologyEntry:
    return TopologyEntry(EntityKind.BINDING, queue_name, exchange=exchange_name, routing_key=routing_key)


DEFAULT_TOPOLOGY: Tuple[TopologyEntry, ...] = (
    exchange(NOTIFICATIONS_EXCHANGE),
    exchange(DEAD_LETTER_EXCHANGE),
    queue(FAILED_QUEUE),
    binding(DEAD_LETTER_EXCHANGE, FAILED_QUEUE, FAILED_ROUTING_KEY),
    queue(
        EMAIL_QUEUE,
        dead_letter_exchange=DEAD_LETTER_EXCHANGE,
        dead_letter_routing_key=FAILED_ROUTING_KEY,
    ),
    binding(NOTIFICATIONS_EXCHANGE, EMAIL_QUEUE, EMAIL_ROUTING_KEY),
)


def validate_topology(entries: Iterable[TopologyEntry]) -> None:
    """
    Проверяет таблицу топологии до обращения к брокеру.

    - привязка ссылается на объявленные ранее обменник и очередь;
    - очередь с dead-letter обменником должна иметь dead-letter очередь,
      привязанную к нему под тем же ключом;
    - очередь без dead-letter обменника допустима только как dead-letter очередь.

    :raises TopologyError: С указанием сущности, нарушившей правило
    """
    entries = tuple(entries)
    exchanges = set()
    queues = set()
    bindings = set()

    for entry in entries:
        if entry.kind is EntityKind.EXCHANGE:
            exchanges.add(entry.name)
        elif entry.kind is EntityKind.QUEUE:
            queues.add(entry.name)
        else:
            if entry.exchange not in exchanges:
                raise TopologyError(entry.label, ValueError(f"exchange '{entry.exchange}' is not declared before binding"))
            if entry.name not in queues:
                raise TopologyError(entry.label, ValueError(f"queue '{entry.name}' is not declared before binding"))
            bindings.add((entry.exchange, entry.routing_key, entry.name))

    dead_letter_exchanges = {
        entry.dead_letter_exchange
        for entry in entries
        if entry.kind is EntityKind.QUEUE and entry.dead_letter_exchange
    }
    dead_letter_queues = {name for (source, _, name) in bindings if source in dead_letter_exchanges}

    for entry in entries:
        if entry.kind is not EntityKind.QUEUE:
            continue
        if entry.dead_letter_exchange is None:
            if entry.name not in dead_letter_queues:
                raise TopologyError(entry.label, ValueError("queue has no dead-letter destination"))
            continue
        if entry.dead_letter_exchange not in exchanges:
            raise TopologyError(
                entry.label,
                ValueError(f"dead-letter exchange '{entry.dead_letter_exchange}' is not declared")
            )
        routed = any(
            source == entry.dead_letter_exchange and key == entry.dead_letter_routing_key
            for (source, key, _) in bindings
        )
        if not routed:
            raise TopologyError(
                entry.label,
                ValueError(
                    f"no queue is bound to '{entry.dead_letter_exchange}' "
                    f"with routing key '{entry.dead_letter_routing_key}'"
                )
            )
