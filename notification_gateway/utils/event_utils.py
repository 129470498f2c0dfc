"""
Структурированные события шлюза для мониторинга и health checks.
"""

import json
import logging
from typing import Any

from notification_gateway.config.logging_config import EVENTS_LOGGER

events_logger = logging.getLogger(EVENTS_LOGGER)


def emit_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    """
    Записывает событие как JSON сообщение в логгер событий.

    Имя события дополнительно кладется в record.event, а поля в record.fields,
    чтобы обработчики могли фильтровать записи без разбора текста.

    :param event: Имя события (например, "broker.connected")
    :param level: Уровень логирования
    :param fields: Произвольные поля события
    """
    payload = {"event": event, **fields}
    events_logger.log(
        level,
        json.dumps(payload, ensure_ascii=False, default=str),
        extra={"event": event, "fields": fields}
    )
