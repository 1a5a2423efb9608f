import time
from datetime import datetime
from http import HTTPStatus

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends

from order_intake.application.container import ApplicationContainer
from order_intake.core.clock import utc_now
from order_intake.core.models import CamelModel

router = APIRouter(tags=["health"])

_started_at = time.monotonic()


class HealthResponse(CamelModel):
    status: str
    timestamp: datetime
    uptime: float
    environment: str


@router.get("/health", status_code=HTTPStatus.OK, response_model=HealthResponse)
@inject
async def health(
    environment: str = Depends(Provide[ApplicationContainer.config.app.environment]),
):
    return HealthResponse(
        status="ok",
        timestamp=utc_now(),
        uptime=round(time.monotonic() - _started_at, 3),
        environment=environment or "development",
    )
