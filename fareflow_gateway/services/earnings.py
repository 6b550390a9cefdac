"""Earnings aggregator - rolls settled fares into per-bus totals"""

import logging
from datetime import datetime
from sqlalchemy.orm import Session
from fareflow_gateway.config import settings
from fareflow_gateway.domain.earnings import accrue_earnings
from fareflow_gateway.domain.exceptions import EarningsConflictError
from fareflow_gateway.infrastructure.database.repositories import BusLedgerRepository, to_earnings_snapshot

DEFAULT_MAX_ATTEMPTS = 3


class EarningsAggregator:
    """Applies one fare to a bus ledger, in the caller's transaction"""

    def __init__(self, db: Session, tz_name: str | None = None, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.buses = BusLedgerRepository(db)
        self.tz_name = tz_name or settings.timezone
        self.max_attempts = max_attempts

    def accrue(self, bus_plate_number: str, fare_amount: int, settled_at: datetime) -> bool:
        """
        Add fare_amount to the bus's weekly, monthly and lifetime earnings.

        A bus without a ledger record is skipped: the rider has already been
        charged, so missing earnings tracking is not an error.

        A concurrent accrual on the same bus makes the write miss; the ledger
        is re-read and the fare applied again on the fresh totals.

        Returns:
            True if the ledger was updated

        Raises:
            EarningsConflictError: Every attempt lost to a concurrent accrual
        """
        attempt = 0
        while True:
            attempt += 1
            ledger = self.buses.get(bus_plate_number)
            if ledger is None:
                logging.info(
                    f"No earnings ledger for bus {bus_plate_number}, accrual skipped",
                    extra={"bus_plate_number": bus_plate_number, "fare_amount": fare_amount},
                )
                return False

            snapshot = accrue_earnings(to_earnings_snapshot(ledger), fare_amount, settled_at, self.tz_name)
            try:
                self.buses.save_earnings(ledger, snapshot)
                return True
            except EarningsConflictError:
                if attempt >= self.max_attempts:
                    raise
                logging.warning(
                    f"Earnings for bus {bus_plate_number} changed during accrual, retrying (attempt {attempt})",
                    extra={"bus_plate_number": bus_plate_number, "attempt": attempt},
                )
