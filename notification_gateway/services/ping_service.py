"""
Сервис проверки связи через RPC.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from notification_gateway.services.base_service import BaseService

logger = logging.getLogger(__name__)


class PingService(BaseService):
    """
    Отвечает на паттерн gateway.ping, возвращая полученные данные.
    Используется для проверки полного цикла запрос -> ответ.
    """

    pattern = "gateway.ping"

    def execute(self, data: Any) -> dict:
        logger.debug(f"PingService.execute called with data: {data}")
        return {
            "status": "ok",
            "echo": data,
            "service": self.getName(),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
