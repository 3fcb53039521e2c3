from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from sfinsight.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from sfinsight.core.config import get_settings


router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    demo_mode: bool


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", demo_mode=get_settings().demo_mode)
