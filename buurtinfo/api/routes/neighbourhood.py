"""Neighbourhood lookup routes."""

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from buurtinfo.api.deps import get_pipeline
from buurtinfo.api.schemas import (
    LateUpdateResponse,
    NeighbourhoodLookupRequest,
    NeighbourhoodLookupResponse,
)
from buurtinfo.config import settings
from buurtinfo.data.pipeline import NeighbourhoodPipeline
from buurtinfo.models.lookup import LateUpdate, NeighbourhoodRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["neighbourhood"])


def _to_request(req: NeighbourhoodLookupRequest) -> NeighbourhoodRequest:
    return NeighbourhoodRequest(
        zip_code=req.zip_code,
        address_query=req.address_query or None,
        debug=req.debug,
        selected_properties=req.selected_properties,
    )


@router.post("/neighbourhood", response_model=NeighbourhoodLookupResponse)
async def lookup_neighbourhood(
    req: NeighbourhoodLookupRequest,
    pipeline: NeighbourhoodPipeline = Depends(get_pipeline),
):
    """Zip code (+ optional address) → neighbourhood properties and crime charts.

    Slow sources that miss the soft timeout are left out; call the stream
    endpoint to receive them as a second message.
    """
    result = await pipeline.lookup(_to_request(req))
    return NeighbourhoodLookupResponse.model_validate(result)


@router.post("/neighbourhood/stream")
async def stream_neighbourhood(
    req: NeighbourhoodLookupRequest,
    pipeline: NeighbourhoodPipeline = Depends(get_pipeline),
):
    """NDJSON stream: the lookup response, then the late update if one is pending."""
    updates: asyncio.Queue[LateUpdate] = asyncio.Queue()

    async def lines():
        result = await pipeline.lookup(_to_request(req), on_late_update=updates.put)
        yield NeighbourhoodLookupResponse.model_validate(result).model_dump_json() + "\n"
        if not result.late_update_pending:
            return
        try:
            update = await asyncio.wait_for(updates.get(), timeout=settings.late_update_timeout)
        except asyncio.TimeoutError:
            logger.warning("No late update for %s within %ss", req.zip_code, settings.late_update_timeout)
            return
        yield LateUpdateResponse.model_validate(update).model_dump_json() + "\n"

    return StreamingResponse(lines(), media_type="application/x-ndjson")
