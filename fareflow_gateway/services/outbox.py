"""
Outbox for settlement follow-up work.

Follow-ups (global transaction log, earnings accrual, SMS, email) are stored
in the same commit as the rider debit, then executed right away. A task that
fails stays pending for the next drain until it runs out of attempts; a
failure never undoes the debit.

Database tasks are marked delivered in the same commit as their write, so
they apply exactly once. Notification tasks are at-least-once.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List
from sqlalchemy.orm import Session
from fareflow_gateway.config import settings
from fareflow_gateway.domain.models import Notification, RiderAccount
from fareflow_gateway.domain.outcomes import SettlementOutcome
from fareflow_gateway.infrastructure.clients.notifications import NotificationClient
from fareflow_gateway.infrastructure.database.models import OutboxTask
from fareflow_gateway.infrastructure.database.repositories import (
    OUTBOX_DELIVERED,
    OUTBOX_FAILED,
    OUTBOX_PENDING,
    OutboxRepository,
    TransactionLogRepository,
)
from fareflow_gateway.infrastructure.observability.metrics import outbox_task_counter
from fareflow_gateway.services.earnings import EarningsAggregator

TRANSACTION_LOG_APPEND = "transaction_log.append"
EARNINGS_ACCRUE = "earnings.accrue"
NOTIFICATION_SMS = "notification.sms"
NOTIFICATION_EMAIL = "notification.email"


@dataclass
class DrainResult:
    """Counts of outbox tasks by result after a processing run"""

    processed: int = 0
    delivered: int = 0
    failed: int = 0
    pending: int = 0


def enqueue_notification(outbox: OutboxRepository, notification: Notification, key_prefix: str) -> List[uuid.UUID]:
    """
    Queue one task per channel that has a destination.

    Notifications are at-least-once, so each call gets its own keys: two
    sends sharing a key_prefix (same card, same millisecond) both go out.
    """
    task_ids = []
    suffix = uuid.uuid4().hex
    if notification.phone:
        task = outbox.enqueue(
            NOTIFICATION_SMS,
            {"phone": notification.phone, "message": notification.sms_message},
            idempotency_key=f"{key_prefix}:{NOTIFICATION_SMS}:{suffix}",
        )
        task_ids.append(task.id)
    if notification.email:
        task = outbox.enqueue(
            NOTIFICATION_EMAIL,
            {"template_params": notification.template_params},
            idempotency_key=f"{key_prefix}:{NOTIFICATION_EMAIL}:{suffix}",
        )
        task_ids.append(task.id)
    return task_ids


def enqueue_settlement_followups(
    outbox: OutboxRepository,
    outcome: SettlementOutcome,
    rider: RiderAccount,
    bus_plate_number: str,
) -> List[uuid.UUID]:
    """Queue the transaction-log entry and earnings accrual for a successful debit"""
    settled_at = outcome.settled_at.isoformat()
    log_task = outbox.enqueue(
        TRANSACTION_LOG_APPEND,
        {
            "transaction_id": outcome.transaction_id,
            "amount": outcome.fare_amount,
            "bus_plate_number": bus_plate_number,
            "card_uid": rider.card_uid,
            "passenger_name": rider.display_name,
            "timestamp": settled_at,
        },
        idempotency_key=f"{outcome.transaction_id}:{TRANSACTION_LOG_APPEND}",
    )
    earnings_task = outbox.enqueue(
        EARNINGS_ACCRUE,
        {
            "bus_plate_number": bus_plate_number,
            "amount": outcome.fare_amount,
            "settled_at": settled_at,
        },
        idempotency_key=f"{outcome.transaction_id}:{EARNINGS_ACCRUE}",
    )
    return [log_task.id, earnings_task.id]


class OutboxProcessor:
    """Executes outbox tasks and records their delivery state"""

    def __init__(
        self,
        db: Session,
        notifier: NotificationClient,
        max_attempts: int | None = None,
        tz_name: str | None = None,
    ):
        self.db = db
        self.notifier = notifier
        self.outbox = OutboxRepository(db)
        self.max_attempts = max_attempts or settings.outbox_max_attempts
        self.tz_name = tz_name or settings.timezone

    async def process(self, task_ids: List[uuid.UUID]) -> DrainResult:
        """Run the given tasks; tasks that are missing or no longer pending are skipped"""
        result = DrainResult()
        for task_id in task_ids:
            status = await self._run_one(task_id)
            if status is None:
                continue
            result.processed += 1
            if status == OUTBOX_DELIVERED:
                result.delivered += 1
            elif status == OUTBOX_FAILED:
                result.failed += 1
            else:
                result.pending += 1
        return result

    async def drain(self, limit: int | None = None) -> DrainResult:
        """Run up to limit pending tasks, oldest first"""
        pending = self.outbox.list_pending(limit or settings.outbox_drain_batch_size)
        task_ids = [task.id for task in pending]
        self.db.commit()
        return await self.process(task_ids)

    async def _run_one(self, task_id: uuid.UUID) -> str | None:
        task = self.outbox.get(task_id)
        if task is None or task.status != OUTBOX_PENDING:
            return None

        event_type = task.event_type
        try:
            await self._execute(task)
            self.outbox.mark_delivered(task)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            task = self.outbox.get(task_id)
            self.outbox.mark_attempt_failed(task, str(e), self.max_attempts)
            self.db.commit()
            logging.error(
                f"Outbox task {event_type} failed: {e}",
                extra={
                    "task_id": str(task_id),
                    "event_type": event_type,
                    "attempts": task.attempts,
                    "task_status": task.status,
                },
            )

        outbox_task_counter.labels(event_type=event_type, status=task.status).inc()
        return task.status

    async def _execute(self, task: OutboxTask) -> None:
        payload: Dict[str, Any] = task.payload

        if task.event_type == TRANSACTION_LOG_APPEND:
            TransactionLogRepository(self.db).append(
                transaction_id=payload["transaction_id"],
                amount=payload["amount"],
                bus_plate_number=payload["bus_plate_number"],
                card_uid=payload["card_uid"],
                passenger_name=payload["passenger_name"],
                timestamp=datetime.fromisoformat(payload["timestamp"]),
            )
        elif task.event_type == EARNINGS_ACCRUE:
            EarningsAggregator(self.db, self.tz_name).accrue(
                bus_plate_number=payload["bus_plate_number"],
                fare_amount=payload["amount"],
                settled_at=datetime.fromisoformat(payload["settled_at"]),
            )
        elif task.event_type == NOTIFICATION_SMS:
            await self.notifier.send_sms(payload["phone"], payload["message"])
        elif task.event_type == NOTIFICATION_EMAIL:
            await self.notifier.send_email(payload["template_params"])
        else:
            raise ValueError(f"Unknown outbox event type: {task.event_type}")
