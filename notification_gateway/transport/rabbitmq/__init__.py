"""
Модуль для работы с RabbitMQ.
Содержит компоненты для объявления топологии, отправки и получения сообщений.
"""

from .connection import ConnectionManager, ConnectionState
from .topology import TopologyDeclarator
from .publisher import Publisher
from .rpc_client import RPCClient, RPCCallState
from .consumer import RPCConsumer
from .notification_consumer import NotificationConsumer
from .gateway import MessagingGateway

__all__ = [
    'ConnectionManager',
    'ConnectionState',
    'TopologyDeclarator',
    'Publisher',
    'RPCClient',
    'RPCCallState',
    'RPCConsumer',
    'NotificationConsumer',
    'MessagingGateway',
]
