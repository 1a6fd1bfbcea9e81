"""Pipeline endpoints.

Runs provisioning and teardown as Server-Sent Event streams. Each event
is written as ``data: <json>`` followed by a blank line; the stream ends
after the Complete or Error event. Disconnecting cancels the pipeline.
"""

import json
from collections.abc import AsyncIterator
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from storeseed.api.dependencies import get_catalog, get_manifest, get_store_client
from storeseed.application.progress import Producer, stream_events
from storeseed.application.provisioning_service import ProvisioningPipeline
from storeseed.application.teardown_service import TeardownPipeline
from storeseed.catalog import CatalogDefinition
from storeseed.domain.events import PipelineEvent
from storeseed.infrastructure.config import settings
from storeseed.infrastructure.manifest import OwnershipManifest
from storeseed.infrastructure.store_client import StoreClient

logger = structlog.get_logger()

router = APIRouter(tags=["Runs"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


class ExpectedCountsResponse(BaseModel):
    """Resource counts a full provisioning run creates."""

    mode: str
    seed: int
    brand_terms: int
    categories: int
    simple_items: int
    composite_items: int
    variants: int
    bundle_items: int
    total_items: int


def format_sse(event: PipelineEvent) -> str:
    """Encode one event as an SSE frame."""
    return f"data: {json.dumps(event.to_dict())}\n\n"


async def _sse_stream(
    producer: Producer,
    client: StoreClient,
    run: str,
) -> AsyncIterator[str]:
    logger.info("Stream opened", run=run)
    try:
        async for event in stream_events(producer, settings.heartbeat_interval_seconds):
            yield format_sse(event)
    finally:
        await client.close()
        logger.info("Stream closed", run=run)


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "/catalog/expected",
    response_model=ExpectedCountsResponse,
    status_code=status.HTTP_200_OK,
    summary="Expected counts",
    description="Resource counts the configured catalog provisions.",
)
async def expected_counts(
    catalog: Annotated[CatalogDefinition, Depends(get_catalog)],
) -> ExpectedCountsResponse:
    """Report what a provisioning run of the configured catalog creates.

    Returns:
        Counts per resource type.
    """
    return ExpectedCountsResponse(
        mode=settings.catalog_mode,
        seed=settings.catalog_seed,
        **catalog.expected_counts(),
    )


@router.get(
    "/provision/stream",
    summary="Provision catalog",
    description="Provision the configured catalog, streaming progress as SSE.",
)
async def provision_stream(
    client: Annotated[StoreClient, Depends(get_store_client)],
    catalog: Annotated[CatalogDefinition, Depends(get_catalog)],
    manifest: Annotated[OwnershipManifest, Depends(get_manifest)],
) -> StreamingResponse:
    """Stream a provisioning run.

    Returns:
        ``text/event-stream`` response.
    """
    pipeline = ProvisioningPipeline.from_settings(client, catalog, manifest, settings)
    return StreamingResponse(
        _sse_stream(pipeline.run, client, "provision"),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get(
    "/teardown/stream",
    summary="Tear down catalog",
    description="Delete every generated resource, streaming progress as SSE.",
)
async def teardown_stream(
    client: Annotated[StoreClient, Depends(get_store_client)],
    manifest: Annotated[OwnershipManifest, Depends(get_manifest)],
) -> StreamingResponse:
    """Stream a teardown run.

    Returns:
        ``text/event-stream`` response.
    """
    pipeline = TeardownPipeline.from_settings(client, manifest, settings)
    return StreamingResponse(
        _sse_stream(pipeline.run, client, "teardown"),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
