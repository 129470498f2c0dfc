import logging
import logging.config
from pathlib import Path
from typing import Any, Dict

EVENTS_LOGGER = "notification_gateway.events"

LOG_MAX_BYTES = 10485760  # 10MB
LOG_BACKUP_COUNT = 5


def _rotating_file(path: Path, level: str, formatter: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": formatter,
        "filename": str(path),
        "maxBytes": LOG_MAX_BYTES,
        "backupCount": LOG_BACKUP_COUNT,
        "encoding": "utf8"
    }


def setup_logging(log_level: str = "INFO", log_dir: str = "var/log") -> None:
    """
    Настройка логирования шлюза и воркера.

    Кроме общих app.log и error.log, события брокера (broker.*, topology.*,
    publish.*, rpc.*) дополнительно пишутся в events.log по одному JSON на строку.

    Args:
        log_level: Уровень логирования корневого логгера
        log_dir: Директория для файлов логов
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s:%(lineno)d - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "event": {
                "format": "%(asctime)s %(levelname)s %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG",
                "formatter": "default",
                "stream": "ext://sys.stdout"
            },
            "file_info": _rotating_file(log_path / "app.log", "INFO", "detailed"),
            "file_error": _rotating_file(log_path / "error.log", "ERROR", "detailed"),
            "file_events": _rotating_file(log_path / "events.log", "INFO", "event")
        },
        "loggers": {
            "": {  # root logger
                "level": log_level,
                "handlers": ["console", "file_info", "file_error"]
            },
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console", "file_info"],
                "propagate": False
            },
            "uvicorn.error": {
                "level": "INFO",
                "handlers": ["console", "file_error"],
                "propagate": False
            },
            "uvicorn.access": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False
            },
            # Клиентские библиотеки AMQP слишком многословны на DEBUG
            "aio_pika": {"level": "WARNING"},
            "aiormq": {"level": "WARNING"},
            EVENTS_LOGGER: {
                "level": "INFO",
                "handlers": ["file_events"]
            }
        }
    }

    logging.config.dictConfig(logging_config)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging system initialized. Log files will be saved to: {log_path.absolute()}")
    logger.info(f"Log level set to: {log_level}")
