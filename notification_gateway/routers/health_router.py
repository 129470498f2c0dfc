"""
Роутер health checks: состояние соединения с брокером и топологии.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from notification_gateway.dependencies import get_gateway
from notification_gateway.schemas.response_schema import HealthResponse
from notification_gateway.transport.rabbitmq.gateway import MessagingGateway

router = APIRouter(prefix='/health', tags=["health"])
logger = logging.getLogger(__name__)


@router.get("", response_model=HealthResponse)
async def health(gateway: MessagingGateway = Depends(get_gateway)) -> JSONResponse:
    """
    200, если соединение установлено и топология объявлена, иначе 503.
    """
    state = gateway.health()
    response = HealthResponse(
        status=state["status"],
        message=None if gateway.is_ready else "Messaging gateway is not ready",
        error=state["error"],
        connection=state["connection"],
        topology_declared=state["topology_declared"],
        rpc_pending=state["rpc_pending"],
    )

    if not gateway.is_ready:
        logger.warning(f"Health check failed: {state}")
        return JSONResponse(response.model_dump(), status_code=503)
    return JSONResponse(response.model_dump(), status_code=200)
