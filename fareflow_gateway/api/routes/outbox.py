"""POST /outbox/drain - retry pending settlement follow-ups"""

from fastapi import APIRouter, Depends, Query

from fareflow_gateway.api.schemas import DrainResponse
from fareflow_gateway.api.dependencies import get_outbox_processor
from fareflow_gateway.services.outbox import OutboxProcessor

router = APIRouter()


@router.post("/outbox/drain", response_model=DrainResponse)
async def drain_outbox(
    limit: int | None = Query(None, gt=0, le=500, description="Maximum tasks to run"),
    outbox: OutboxProcessor = Depends(get_outbox_processor),
):
    """Run pending outbox tasks (transaction log, earnings, notifications), oldest first"""
    result = await outbox.drain(limit)
    return DrainResponse(
        processed=result.processed,
        delivered=result.delivered,
        failed=result.failed,
        pending=result.pending,
    )
