import re
from typing import Any, Optional


def to_snake_case(name: str) -> str:
    """
    Преобразует строку из CamelCase в snake_case.
    Например, 'TokenCheckService' -> 'token_check_service'.
    """
    s1 = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', name)
    return re.sub('([a-z0-9])([A-Z])', r'\1_\2', s1).lower()


class BaseService:
    """Базовый класс для сервисов, отвечающих на RPC паттерны."""

    # Явный паттерн; если не задан, строится из имени класса
    pattern: Optional[str] = None

    def getName(self) -> str:
        """Возвращает имя сервиса, которое является именем класса."""
        return self.__class__.__name__

    def get_pattern(self) -> str:
        """
        Возвращает паттерн, под которым сервис регистрируется в диспетчере.
        'TokenCheckService' -> 'token_check.execute'
        """
        if self.pattern:
            return self.pattern

        service_name = self.getName()
        if service_name.endswith('Service'):
            service_name = service_name[:-7]
        return f"{to_snake_case(service_name)}.execute"

    def execute(self, data: Any) -> Any:
        """Метод, который должен быть реализован в каждом сервисе."""
        raise NotImplementedError("Метод execute должен быть реализован в подклассе.")
