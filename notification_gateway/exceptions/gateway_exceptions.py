"""
Исключения шлюза брокера сообщений.
Каждая ошибка транспорта доходит до вызывающего кода в типизированном виде.
"""

from typing import Any, Optional


class GatewayError(Exception):
    """Базовое исключение для всех операций шлюза."""
    pass


class BrokerConnectionError(GatewayError, ConnectionError):
    """Брокер недоступен, отклонил учетные данные или не ответил на рукопожатие."""
    pass


class TopologyError(GatewayError):
    """Исключение, возникающее при ошибке объявления сущности топологии."""

    def __init__(self, entity: str, cause: Optional[BaseException] = None):
        self.entity = entity
        self.cause = cause
        message = f"Failed to declare {entity}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class PublishError(GatewayError):
    """Исключение, возникающее при ошибке отправки fire-and-forget сообщения."""

    def __init__(self, destination: str, cause: Optional[BaseException] = None):
        self.destination = destination
        self.cause = cause
        message = f"Failed to publish to {destination}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class RPCError(GatewayError):
    """Базовое исключение для RPC вызовов."""

    def __init__(self, pattern: str, message: str):
        self.pattern = pattern
        super().__init__(message)


class RPCTimeoutError(RPCError, TimeoutError):
    """Ответ не получен за отведенное время."""

    def __init__(self, pattern: str, timeout_ms: float, elapsed_ms: float):
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        super().__init__(
            pattern,
            f"RPC call '{pattern}' timed out after {elapsed_ms:.0f} ms (timeout {timeout_ms} ms)"
        )


class RPCTransportError(RPCError):
    """Соединение потеряно или закрыто во время ожидания ответа."""

    def __init__(self, pattern: str, cause: Optional[BaseException] = None):
        self.cause = cause
        message = f"RPC call '{pattern}' failed on transport"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(pattern, message)


class RPCRemoteError(RPCError):
    """Удаленная сторона вернула JSON-RPC ошибку."""

    def __init__(self, pattern: str, code: int, message: str, data: Any = None):
        self.code = code
        self.remote_message = message
        self.data = data
        super().__init__(pattern, f"RPC Error [{code}]: {message}")
