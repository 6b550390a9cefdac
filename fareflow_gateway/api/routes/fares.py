"""POST /process-fare - card tap settlement endpoint"""

import time
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from fareflow_gateway.api.schemas import ProcessFareRequest, FareResponse
from fareflow_gateway.api.dependencies import get_request_id, get_settlement_service
from fareflow_gateway.config import settings
from fareflow_gateway.services.settlement import FareSettlementService
from fareflow_gateway.infrastructure.observability.metrics import record_settlement
from fareflow_gateway.infrastructure.observability.logging import log_settlement

router = APIRouter()


@router.post("/process-fare", response_model=FareResponse, response_model_exclude_none=True)
async def process_fare(
    request_body: ProcessFareRequest,
    request: Request,
    service: FareSettlementService = Depends(get_settlement_service),
):
    """
    Settle a card tap from a bus terminal.

    Flow:
    1. Load rider and reject unknown or blocked cards
    2. Load the bus live record and resolve the fare
    3. Check minimum balance, then fare sufficiency (rider notified on rejection)
    4. Debit, log the transaction, accrue bus earnings, notify the rider
    5. Return the terminal response with its hardware code
    """
    start_time = time.time()
    request_id = get_request_id(request)
    bus_plate_number = request_body.bus_plate_number or settings.default_bus_plate

    outcome = await service.process_tap(request_body.card_uid, bus_plate_number, request_id=request_id)

    # Record metrics and logs
    duration_ms = (time.time() - start_time) * 1000
    record_settlement(outcome.status.value, outcome.fare_amount if outcome.is_success else None)
    log_settlement(
        request_id,
        request_body.card_uid,
        bus_plate_number,
        outcome.status.value,
        outcome.hardware_code,
        outcome.new_balance if outcome.is_success else None,
        duration_ms,
    )

    return JSONResponse(status_code=outcome.http_status, content=outcome.to_response())
