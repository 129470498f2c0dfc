"""
JSON-RPC диспетчер для обработки RPC запросов.
Использует библиотеку jsonrpcserver для обработки JSON-RPC вызовов.
Поддерживает sync и async обработчики.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Union

from jsonrpcserver import Error, Result, Success, async_dispatch

from notification_gateway.services.base_service import BaseService

logger = logging.getLogger(__name__)

# Код ошибки выполнения метода (диапазон server error в JSON-RPC 2.0)
SERVICE_EXECUTION_ERROR = -32000

Handler = Callable[[Any], Union[Any, Awaitable[Any]]]


class PatternDispatcher:
    """
    Диспетчер, сопоставляющий паттерн запроса с обработчиком.

    Реестр методов принадлежит экземпляру, поэтому несколько диспетчеров
    в одном процессе не мешают друг другу.
    """

    def __init__(self):
        self.handlers: Dict[str, Handler] = {}
        self._methods: Dict[str, Callable[..., Awaitable[Result]]] = {}
        logger.info("PatternDispatcher initialized")

    def register(self, pattern: str, handler: Handler) -> None:
        """
        Регистрирует обработчик паттерна.

        :param pattern: Имя метода (например, "gateway.ping")
        :param handler: Функция, принимающая данные запроса
        """
        if pattern in self.handlers:
            raise ValueError(f"Pattern already registered: {pattern}")

        async def execute_wrapper(data: Any = None) -> Result:
            """
            Обертка, приводящая результат обработчика к Success/Error.
            """
            try:
                logger.info(f"Executing RPC method: {pattern}")
                logger.debug(f"Request data: {data}")

                result = handler(data)
                if inspect.isawaitable(result):
                    result = await result

                logger.info(f"RPC method {pattern} executed successfully")
                return Success(result)

            except Exception as e:
                logger.error(f"Error executing RPC method {pattern}: {e}", exc_info=True)
                return Error(SERVICE_EXECUTION_ERROR, "Service execution failed", str(e))

        self.handlers[pattern] = handler
        self._methods[pattern] = execute_wrapper
        logger.info(f"Registered RPC method: {pattern}")

    def register_service(self, service: BaseService) -> None:
        """
        Регистрирует метод execute сервиса под его паттерном.

        :param service: Экземпляр сервиса
        """
        self.register(service.get_pattern(), service.execute)

    async def handle_request(self, request_body: str) -> str:
        """
        Обрабатывает входящий JSON-RPC запрос.

        :param request_body: Тело JSON-RPC запроса в виде строки
        :return: JSON-RPC ответ в виде строки (пустая строка для уведомлений)
        """
        logger.debug(f"Request body: {request_body}")
        response = await async_dispatch(request_body, methods=self._methods)
        logger.debug(f"Response: {response}")
        return response

    def get_registered_methods(self) -> List[str]:
        """
        Возвращает список зарегистрированных RPC методов.

        :return: Список имен методов
        """
        return list(self.handlers.keys())
