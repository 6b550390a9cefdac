"""Fare transaction orchestrator - one run per card tap"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable, List, Tuple
from sqlalchemy.orm import Session
from fareflow_gateway.config import settings
from fareflow_gateway.domain import outcomes
from fareflow_gateway.domain.exceptions import (
    BalanceConflictError,
    BusInactiveError,
    BusNotFoundError,
    LiveStateAPIError,
)
from fareflow_gateway.domain.fare_policy import resolve_fare_policy
from fareflow_gateway.domain.messages import build_settlement_notification
from fareflow_gateway.domain.models import DynamicFare, FareConfig, RiderAccount
from fareflow_gateway.domain.outcomes import SettlementOutcome
from fareflow_gateway.infrastructure.clients.live_state import LiveStateClient
from fareflow_gateway.infrastructure.database.repositories import (
    OutboxRepository,
    RiderRepository,
    to_rider_account,
)
from fareflow_gateway.infrastructure.observability.metrics import (
    live_state_fetch_failures_counter,
    settlement_conflicts_counter,
)
from fareflow_gateway.services.ledger import LedgerMutator
from fareflow_gateway.services.outbox import (
    OutboxProcessor,
    enqueue_notification,
    enqueue_settlement_followups,
)
from fareflow_gateway.utils.date_utils import make_transaction_id, utc_now


class FareSettlementService:
    """
    Runs the tap pipeline:

    1. Load rider (USER_NOT_FOUND)
    2. Block check (USER_BLOCKED)
    3. Load bus live state and resolve fare (BUS_NOT_FOUND, BUS_INACTIVE, dynamic welcome)
    4. Minimum-balance guard (LOW_BALANCE, rider notified)
    5. Sufficiency guard (INSUFFICIENT_FARE, rider notified)
    6. Debit + queue follow-ups in one commit, then run the follow-ups

    Steps 1-5 never write to the ledger. Any infrastructure failure before the
    commit maps to SERVER_ERROR.
    """

    def __init__(
        self,
        db: Session,
        live_state: LiveStateClient,
        outbox: OutboxProcessor,
        config: FareConfig,
        tz_name: str | None = None,
        max_attempts: int | None = None,
        timeout_seconds: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.live_state = live_state
        self.outbox = outbox
        self.config = config
        self.tz_name = tz_name or settings.timezone
        self.max_attempts = max_attempts or settings.settlement_max_attempts
        self.timeout_seconds = timeout_seconds or settings.settlement_timeout_seconds
        self.clock = clock
        self.riders = RiderRepository(db)
        self.ledger = LedgerMutator(db)
        self.outbox_repo = OutboxRepository(db)

    async def process_tap(self, card_uid: str, bus_plate_number: str, request_id: str = "unknown") -> SettlementOutcome:
        """Settle one tap and return its outcome; never raises"""
        try:
            outcome, task_ids = await asyncio.wait_for(
                self._settle_with_retry(card_uid, bus_plate_number, request_id),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            self.db.rollback()
            logging.error(
                f"Settlement timed out after {self.timeout_seconds}s",
                extra={"request_id": request_id, "card_uid": card_uid, "bus_plate_number": bus_plate_number},
            )
            return outcomes.server_error(card_uid)
        except Exception as e:
            self.db.rollback()
            logging.exception(
                f"Payment processing error: {e}",
                extra={"request_id": request_id, "card_uid": card_uid, "bus_plate_number": bus_plate_number},
            )
            return outcomes.server_error(card_uid)

        if task_ids:
            await self._run_followups(task_ids, request_id)

        return outcome

    async def _settle_with_retry(
        self, card_uid: str, bus_plate_number: str, request_id: str
    ) -> Tuple[SettlementOutcome, List[uuid.UUID]]:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._settle(card_uid, bus_plate_number)
            except BalanceConflictError:
                self.db.rollback()
                settlement_conflicts_counter.inc()
                if attempt >= self.max_attempts:
                    raise
                logging.warning(
                    f"Balance changed during settlement, retrying (attempt {attempt})",
                    extra={"request_id": request_id, "card_uid": card_uid},
                )

    async def _settle(self, card_uid: str, bus_plate_number: str) -> Tuple[SettlementOutcome, List[uuid.UUID]]:
        # 1. Load rider
        rider_row = self.riders.get_by_card(card_uid)
        if rider_row is None:
            return outcomes.user_not_found(card_uid), []
        rider = to_rider_account(rider_row)

        # 2. Block check
        if rider.blocked:
            return outcomes.user_blocked(card_uid), []

        # 3. Bus live state and fare policy
        try:
            bus = await self.live_state.get_bus(bus_plate_number)
        except LiveStateAPIError:
            live_state_fetch_failures_counter.inc()
            raise

        try:
            policy = resolve_fare_policy(bus, self.config)
        except BusNotFoundError:
            return outcomes.bus_not_found(card_uid), []
        except BusInactiveError:
            return outcomes.bus_inactive(card_uid), []

        if isinstance(policy, DynamicFare):
            return outcomes.dynamic_welcome(card_uid, rider.balance), []

        fare_amount = policy.fare_amount
        settled_at = self.clock()
        transaction_id = make_transaction_id(card_uid, settled_at)

        # 4. Minimum-balance guard (a reserve independent of the fare)
        if rider.balance < self.config.minimum_balance:
            outcome = outcomes.low_balance(
                card_uid,
                rider.balance,
                fare_amount,
                self.config.minimum_balance,
                self.config.currency,
                transaction_id,
                settled_at,
                bus.route,
            )
            return outcome, self._queue_notification(outcome, rider)

        # 5. Sufficiency guard
        if rider.balance < fare_amount:
            outcome = outcomes.insufficient_fare(
                card_uid,
                rider.balance,
                fare_amount,
                self.config.currency,
                transaction_id,
                settled_at,
                bus.route,
            )
            return outcome, self._queue_notification(outcome, rider)

        # 6. Settle
        new_balance = self.ledger.settle(rider, fare_amount, transaction_id, bus_plate_number, settled_at)
        outcome = outcomes.payment_success(
            card_uid,
            rider.balance,
            new_balance,
            fare_amount,
            self.config.currency,
            transaction_id,
            settled_at,
            bus.route,
        )
        task_ids = enqueue_settlement_followups(self.outbox_repo, outcome, rider, bus_plate_number)
        task_ids += self._queue_notification(outcome, rider, commit=False)
        self.db.commit()
        return outcome, task_ids

    def _queue_notification(self, outcome: SettlementOutcome, rider: RiderAccount, commit: bool = True) -> List[uuid.UUID]:
        notification = build_settlement_notification(outcome, rider, self.tz_name)
        task_ids = enqueue_notification(self.outbox_repo, notification, key_prefix=outcome.transaction_id)
        if commit:
            self.db.commit()
        return task_ids

    async def _run_followups(self, task_ids: List[uuid.UUID], request_id: str) -> None:
        """Run follow-ups after the commit; failures are logged and left for the next drain"""
        try:
            result = await self.outbox.process(task_ids)
        except Exception as e:
            self.db.rollback()
            logging.exception(
                f"Settlement follow-ups could not run: {e}",
                extra={"request_id": request_id, "task_count": len(task_ids)},
            )
            return

        if result.pending or result.failed:
            logging.warning(
                "Settlement follow-ups incomplete",
                extra={
                    "request_id": request_id,
                    "delivered": result.delivered,
                    "pending": result.pending,
                    "failed": result.failed,
                },
            )
