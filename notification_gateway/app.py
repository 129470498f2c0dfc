import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from notification_gateway.config.app_config import settings
from notification_gateway.config.logging_config import setup_logging
from notification_gateway.config.rabbitmq_config import rabbitmq_settings
from notification_gateway.routes import get_apps_router
from notification_gateway.transport.rabbitmq.gateway import MessagingGateway

# Инициализация системы логирования
setup_logging(log_level=settings.LOG_LEVEL, log_dir=settings.LOG_DIR)
logger = logging.getLogger(__name__)


def get_application(gateway: Optional[MessagingGateway] = None) -> FastAPI:
    logger.info("Initializing FastAPI application")
    application = FastAPI(
        title=settings.PROJECT_NAME,
        debug=settings.DEBUG,
        version=settings.VERSION
    )

    application.state.gateway = gateway or MessagingGateway.from_settings(rabbitmq_settings)

    # Ошибка подключения или объявления топологии прерывает запуск:
    # сервис не должен принимать трафик без рабочей топологии
    @application.on_event("startup")
    async def startup_event():
        logger.info("Running startup tasks...")
        await application.state.gateway.connect()
        await application.state.gateway.setup_topology()
        logger.info("Messaging gateway is ready")

    @application.on_event("shutdown")
    async def shutdown_event():
        logger.info("Running shutdown tasks...")
        await application.state.gateway.close()

    application.include_router(get_apps_router())

    logger.info("FastAPI application initialized successfully")

    return application


app = get_application()


if __name__ == "__main__":
    logger.info("Starting application server")
    uvicorn.run("notification_gateway.app:app", host=settings.HOST, port=settings.PORT)
