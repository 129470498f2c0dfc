"""
FastAPI dependencies для доступа к шлюзу брокера.
"""
import logging

from fastapi import HTTPException, Request

from notification_gateway.transport.rabbitmq.gateway import MessagingGateway

logger = logging.getLogger(__name__)


def get_gateway(request: Request) -> MessagingGateway:
    """
    Возвращает шлюз, созданный при старте приложения.

    :raises HTTPException: Если шлюз не инициализирован
    """
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        logger.error("Messaging gateway is not initialized")
        raise HTTPException(
            status_code=503,
            detail={"code": "GATEWAY_NOT_INITIALIZED", "detail": "Messaging gateway is not initialized"}
        )
    return gateway
