"""Ledger mutator - the only writer of rider balances"""

from datetime import datetime
from sqlalchemy.orm import Session
from fareflow_gateway.domain.models import RiderAccount, TransactionRecord, TRANSACTION_PAYMENT
from fareflow_gateway.domain.exceptions import InsufficientBalanceError
from fareflow_gateway.infrastructure.database.repositories import RiderRepository


class LedgerMutator:
    """Debits a rider and appends the payment to their history, in the caller's transaction"""

    def __init__(self, db: Session):
        self.riders = RiderRepository(db)

    def settle(
        self,
        rider: RiderAccount,
        fare_amount: int,
        transaction_id: str,
        bus_plate_number: str,
        settled_at: datetime,
    ) -> int:
        """
        Debit fare_amount from the balance the guards observed.

        Returns:
            The new balance

        Raises:
            InsufficientBalanceError: The debit would go below zero
            BalanceConflictError: The balance changed after the guards read it
        """
        if fare_amount <= 0:
            raise ValueError(f"Fare amount must be positive, got {fare_amount}")
        if rider.balance - fare_amount < 0:
            raise InsufficientBalanceError(
                f"Card {rider.card_uid} balance {rider.balance} cannot cover {fare_amount}"
            )

        new_balance = self.riders.debit(
            card_uid=rider.card_uid,
            observed_balance=rider.balance,
            observed_version=rider.version,
            amount=fare_amount,
        )
        self.riders.append_transaction(
            TransactionRecord(
                transaction_id=transaction_id,
                card_uid=rider.card_uid,
                amount=fare_amount,
                type=TRANSACTION_PAYMENT,
                created_at=settled_at,
                bus_plate_number=bus_plate_number,
            )
        )
        return new_balance
