"""Data access layer for riders, bus ledgers, the transaction log and the outbox"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from fareflow_gateway.infrastructure.database.models import (
    BusLedger,
    OutboxTask,
    Rider,
    RiderTransaction,
    TransactionLogEntry,
)
from fareflow_gateway.domain.models import EarningsSnapshot, RiderAccount, TransactionRecord
from fareflow_gateway.domain.exceptions import BalanceConflictError, EarningsConflictError

OUTBOX_PENDING = "pending"
OUTBOX_DELIVERED = "delivered"
OUTBOX_FAILED = "failed"


def to_rider_account(rider: Rider) -> RiderAccount:
    """Detach the fields the settlement guards need from an ORM row"""
    return RiderAccount(
        card_uid=rider.card_uid,
        first_name=rider.first_name,
        last_name=rider.last_name or "",
        email=rider.email or "",
        phone=rider.phone or "",
        balance=rider.balance,
        blocked=bool(rider.blocked),
        version=rider.version,
    )


class RiderRepository:
    """Repository for rider accounts and their transaction history"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_card(self, card_uid: str) -> Optional[Rider]:
        return self.db.query(Rider).filter(Rider.card_uid == card_uid).first()

    def debit(self, card_uid: str, observed_balance: int, observed_version: int, amount: int) -> int:
        """
        Conditionally debit a rider.

        The write only applies if balance and version still match what the
        caller observed; otherwise another settlement got there first.

        Raises:
            BalanceConflictError: Balance or version changed since the read
        """
        new_balance = observed_balance - amount
        updated = (
            self.db.query(Rider)
            .filter(
                Rider.card_uid == card_uid,
                Rider.balance == observed_balance,
                Rider.version == observed_version,
            )
            .update(
                {
                    Rider.balance: new_balance,
                    Rider.version: observed_version + 1,
                    Rider.updated_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            raise BalanceConflictError(f"Balance for card {card_uid} changed during settlement")
        return new_balance

    def append_transaction(self, record: TransactionRecord) -> RiderTransaction:
        db_txn = RiderTransaction(
            transaction_id=record.transaction_id,
            card_uid=record.card_uid,
            amount=record.amount,
            type=record.type,
            bus_plate_number=record.bus_plate_number,
            created_at=record.created_at,
        )
        self.db.add(db_txn)
        self.db.flush()
        return db_txn


class BusLedgerRepository:
    """Repository for per-bus earnings"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, plate_number: str) -> Optional[BusLedger]:
        """Load the ledger row, always re-reading it from the database"""
        return (
            self.db.query(BusLedger)
            .filter(BusLedger.plate_number == plate_number)
            .populate_existing()
            .first()
        )

    def save_earnings(self, ledger: BusLedger, snapshot: EarningsSnapshot) -> None:
        """
        Write weekly, monthly and lifetime totals as one conditional update.

        The write only applies if the row still has the version it was read
        at; otherwise another accrual for the same bus got there first.

        Raises:
            EarningsConflictError: Ledger changed since the read
        """
        updated = (
            self.db.query(BusLedger)
            .filter(
                BusLedger.plate_number == ledger.plate_number,
                BusLedger.version == ledger.version,
            )
            .update(
                {
                    BusLedger.weekly_earnings: snapshot.weekly_earnings,
                    BusLedger.monthly_earnings: snapshot.monthly_earnings,
                    BusLedger.total_earnings: snapshot.total_earnings,
                    BusLedger.version: ledger.version + 1,
                    BusLedger.updated_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            raise EarningsConflictError(f"Earnings for bus {ledger.plate_number} changed during accrual")


def to_earnings_snapshot(ledger: BusLedger) -> EarningsSnapshot:
    return EarningsSnapshot(
        weekly_earnings=list(ledger.weekly_earnings or []),
        monthly_earnings=list(ledger.monthly_earnings or []),
        total_earnings=ledger.total_earnings or 0,
    )


class TransactionLogRepository:
    """Repository for the global fare log"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, transaction_id: str) -> Optional[TransactionLogEntry]:
        return self.db.get(TransactionLogEntry, transaction_id)

    def append(
        self,
        transaction_id: str,
        amount: int,
        bus_plate_number: str,
        card_uid: str,
        passenger_name: str,
        timestamp: datetime,
    ) -> bool:
        """Insert a log entry; returns False if the transaction is already logged"""
        if self.get(transaction_id) is not None:
            return False

        self.db.add(
            TransactionLogEntry(
                transaction_id=transaction_id,
                amount=amount,
                bus_plate_number=bus_plate_number,
                card_uid=card_uid,
                passenger_name=passenger_name,
                timestamp=timestamp,
            )
        )
        self.db.flush()
        return True


class OutboxRepository:
    """Repository for outbox tasks"""

    def __init__(self, db: Session):
        self.db = db

    def enqueue(self, event_type: str, payload: Dict[str, Any], idempotency_key: str) -> OutboxTask:
        task = OutboxTask(
            event_type=event_type,
            payload=payload,
            idempotency_key=idempotency_key,
            status=OUTBOX_PENDING,
            attempts=0,
        )
        self.db.add(task)
        self.db.flush()  # Get ID without committing
        return task

    def get(self, task_id: uuid.UUID) -> Optional[OutboxTask]:
        return self.db.get(OutboxTask, task_id)

    def list_pending(self, limit: int) -> List[OutboxTask]:
        return (
            self.db.query(OutboxTask)
            .filter(OutboxTask.status == OUTBOX_PENDING)
            .order_by(OutboxTask.created_at)
            .limit(limit)
            .all()
        )

    def mark_delivered(self, task: OutboxTask) -> None:
        task.status = OUTBOX_DELIVERED
        task.attempts = (task.attempts or 0) + 1
        task.last_error = None
        task.last_attempt_at = datetime.now(timezone.utc)
        self.db.flush()

    def mark_attempt_failed(self, task: OutboxTask, error: str, max_attempts: int) -> None:
        """Record a failed attempt; the task gives up once max_attempts is reached"""
        task.attempts = (task.attempts or 0) + 1
        task.last_error = error[:1000]
        task.last_attempt_at = datetime.now(timezone.utc)
        if task.attempts >= max_attempts:
            task.status = OUTBOX_FAILED
        self.db.flush()
