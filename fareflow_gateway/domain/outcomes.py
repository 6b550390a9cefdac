"""
Settlement outcomes - one tagged result per tap.

Both the terminal (hardware) response and the rider notification are derived
from a SettlementOutcome, so the two can never disagree on amounts or codes.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from fareflow_gateway.domain.models import Route


class SettlementStatus(str, Enum):
    SUCCESS = "success"
    LOW_BALANCE = "low_balance"
    INSUFFICIENT_FARE = "insufficient_fare"
    USER_BLOCKED = "user_blocked"
    BUS_INACTIVE = "bus_inactive"
    USER_NOT_FOUND = "user_not_found"
    BUS_NOT_FOUND = "bus_not_found"
    DYNAMIC_UNSUPPORTED = "dynamic_unsupported"
    SERVER_ERROR = "server_error"


@dataclass(frozen=True)
class OutcomeSpec:
    """HTTP status, response status word, hardware code and whether the rider is notified"""

    http_status: int
    response_status: str
    hardware_code: str
    notify_rider: bool


OUTCOME_SPECS: Dict[SettlementStatus, OutcomeSpec] = {
    SettlementStatus.USER_NOT_FOUND: OutcomeSpec(404, "error", "USER_NOT_FOUND", False),
    SettlementStatus.USER_BLOCKED: OutcomeSpec(400, "error", "USER_BLOCKED", False),
    SettlementStatus.BUS_NOT_FOUND: OutcomeSpec(404, "error", "BUS_NOT_FOUND", False),
    SettlementStatus.BUS_INACTIVE: OutcomeSpec(403, "error", "BUS_INACTIVE", False),
    SettlementStatus.DYNAMIC_UNSUPPORTED: OutcomeSpec(200, "info", "DYNAMIC_ROUTE_WELCOME", False),
    SettlementStatus.LOW_BALANCE: OutcomeSpec(400, "error", "LOW_BALANCE", True),
    SettlementStatus.INSUFFICIENT_FARE: OutcomeSpec(400, "error", "INSUFFICIENT_FARE", True),
    SettlementStatus.SUCCESS: OutcomeSpec(200, "success", "PAYMENT_SUCCESS", True),
    SettlementStatus.SERVER_ERROR: OutcomeSpec(500, "error", "SERVER_ERROR", False),
}


@dataclass
class SettlementOutcome:
    """Result of one tap, plus the context needed to tell the rider about it"""

    status: SettlementStatus
    message: str
    card_uid: str
    new_balance: Optional[int] = None
    previous_balance: Optional[int] = None
    fare_amount: Optional[int] = None
    minimum_balance: Optional[int] = None
    currency: str = "UGX"
    transaction_id: Optional[str] = None
    settled_at: Optional[datetime] = None
    route: Optional[Route] = None

    @property
    def spec(self) -> OutcomeSpec:
        return OUTCOME_SPECS[self.status]

    @property
    def http_status(self) -> int:
        return self.spec.http_status

    @property
    def hardware_code(self) -> str:
        return self.spec.hardware_code

    @property
    def notifies_rider(self) -> bool:
        return self.spec.notify_rider

    @property
    def is_success(self) -> bool:
        return self.status is SettlementStatus.SUCCESS

    def to_response(self) -> Dict[str, Any]:
        """Terminal response body: {status, message, newBalance?, hardwareCode}"""
        body: Dict[str, Any] = {
            "status": self.spec.response_status,
            "message": self.message,
            "hardwareCode": self.hardware_code,
        }
        if self.is_success:
            body["newBalance"] = self.new_balance
        return body


def user_not_found(card_uid: str) -> SettlementOutcome:
    return SettlementOutcome(SettlementStatus.USER_NOT_FOUND, "User not found", card_uid)


def user_blocked(card_uid: str) -> SettlementOutcome:
    return SettlementOutcome(SettlementStatus.USER_BLOCKED, "User Blocked", card_uid)


def bus_not_found(card_uid: str) -> SettlementOutcome:
    return SettlementOutcome(SettlementStatus.BUS_NOT_FOUND, "Bus not found", card_uid)


def bus_inactive(card_uid: str) -> SettlementOutcome:
    return SettlementOutcome(SettlementStatus.BUS_INACTIVE, "Bus is currently inactive", card_uid)


def dynamic_welcome(card_uid: str, balance: int) -> SettlementOutcome:
    return SettlementOutcome(
        SettlementStatus.DYNAMIC_UNSUPPORTED,
        "Welcome aboard. Dynamic pricing not implemented yet.",
        card_uid,
        previous_balance=balance,
    )


def server_error(card_uid: str) -> SettlementOutcome:
    return SettlementOutcome(SettlementStatus.SERVER_ERROR, "Server error", card_uid)


def low_balance(
    card_uid: str,
    balance: int,
    fare_amount: int,
    minimum_balance: int,
    currency: str,
    transaction_id: str,
    settled_at: datetime,
    route: Optional[Route] = None,
) -> SettlementOutcome:
    return SettlementOutcome(
        SettlementStatus.LOW_BALANCE,
        (
            "FareFlow Payment Unsuccessful\n"
            f"Low balance. Minimum required: {minimum_balance} {currency}\n"
            "Thank you for using FareFlow"
        ),
        card_uid,
        new_balance=balance,
        previous_balance=balance,
        fare_amount=fare_amount,
        minimum_balance=minimum_balance,
        currency=currency,
        transaction_id=transaction_id,
        settled_at=settled_at,
        route=route,
    )


def insufficient_fare(
    card_uid: str,
    balance: int,
    fare_amount: int,
    currency: str,
    transaction_id: str,
    settled_at: datetime,
    route: Optional[Route] = None,
) -> SettlementOutcome:
    return SettlementOutcome(
        SettlementStatus.INSUFFICIENT_FARE,
        (
            "FareFlow Payment Unsuccessful\n"
            f"Insufficient balance for the fare. Needed: {fare_amount} {currency}\n"
            "Thank you for using FareFlow"
        ),
        card_uid,
        new_balance=balance,
        previous_balance=balance,
        fare_amount=fare_amount,
        currency=currency,
        transaction_id=transaction_id,
        settled_at=settled_at,
        route=route,
    )


def payment_success(
    card_uid: str,
    previous_balance: int,
    new_balance: int,
    fare_amount: int,
    currency: str,
    transaction_id: str,
    settled_at: datetime,
    route: Optional[Route] = None,
) -> SettlementOutcome:
    return SettlementOutcome(
        SettlementStatus.SUCCESS,
        "Fare processed successfully",
        card_uid,
        new_balance=new_balance,
        previous_balance=previous_balance,
        fare_amount=fare_amount,
        currency=currency,
        transaction_id=transaction_id,
        settled_at=settled_at,
        route=route,
    )
