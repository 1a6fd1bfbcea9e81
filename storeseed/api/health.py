"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from storeseed.api.dependencies import get_store_client
from storeseed.infrastructure.config import settings
from storeseed.infrastructure.store_client import StoreClient

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response schema."""

    status: str
    store: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="storeseed",
        version=settings.api_version,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(
    client: Annotated[StoreClient, Depends(get_store_client)],
) -> ReadinessResponse | JSONResponse:
    """Check that the remote store answers with our credentials.

    Returns:
        Readiness status, 503 when the store is unreachable.
    """
    try:
        reachable = await client.verify_connection()
    finally:
        await client.close()

    if not reachable:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=ReadinessResponse(status="not_ready", store="unreachable").model_dump(),
        )
    return ReadinessResponse(status="ready", store="reachable")
