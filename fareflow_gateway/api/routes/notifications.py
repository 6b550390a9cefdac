"""POST /notify-balance-load - top-up confirmation endpoint"""

import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from fareflow_gateway.api.schemas import BalanceLoadRequest, NotifyResponse
from fareflow_gateway.api.dependencies import get_outbox_processor, get_request_id
from fareflow_gateway.config import settings
from fareflow_gateway.domain.messages import build_topup_notification
from fareflow_gateway.infrastructure.database.repositories import OutboxRepository
from fareflow_gateway.infrastructure.database.session import get_db
from fareflow_gateway.services.outbox import OutboxProcessor, enqueue_notification
from fareflow_gateway.utils.date_utils import utc_now

router = APIRouter()


@router.post("/notify-balance-load", response_model=NotifyResponse)
async def notify_balance_load(
    request_body: BalanceLoadRequest,
    request: Request,
    db: Session = Depends(get_db),
    outbox: OutboxProcessor = Depends(get_outbox_processor),
):
    """
    Tell a rider their balance was topped up.

    The balance itself was already written upstream; this only notifies.
    Undelivered channels stay queued for the next outbox drain.
    """
    request_id = get_request_id(request)
    loaded_at = utc_now()
    notification = build_topup_notification(
        card_uid=request_body.card_uid,
        amount=request_body.amount,
        new_balance=request_body.new_balance,
        email=request_body.email,
        phone=request_body.phone,
        first_name=request_body.first_name,
        loaded_at=loaded_at,
        currency=settings.currency,
        tz_name=settings.timezone,
    )

    try:
        task_ids = enqueue_notification(
            OutboxRepository(db),
            notification,
            key_prefix=notification.template_params["transaction_id"],
        )
        db.commit()
        result = await outbox.process(task_ids)

    except Exception as e:
        db.rollback()
        logging.error(f"Notification error: {e}", extra={"request_id": request_id})
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Failed to send notifications"},
        )

    if result.pending or result.failed:
        logging.warning(
            "Top-up notification not delivered",
            extra={"request_id": request_id, "card_uid": request_body.card_uid},
        )
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Failed to send notifications"},
        )

    return NotifyResponse(status="success", message="Notifications sent")
