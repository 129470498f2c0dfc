from pydantic import BaseModel


class BaseResponse(BaseModel):
    status: str
    message: str | None = None
    error: str | None = None


class HealthResponse(BaseResponse):
    connection: str
    topology_declared: bool
    rpc_pending: int = 0
