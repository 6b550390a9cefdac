"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

ROUTE_FIXED = "fixed"
ROUTE_DYNAMIC = "dynamic"

TRANSACTION_PAYMENT = "payment"


@dataclass
class RiderAccount:
    """Snapshot of a rider account as read by the settlement guards"""

    card_uid: str
    first_name: str
    last_name: str
    email: str
    phone: str
    balance: int
    blocked: bool
    version: int

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()


@dataclass
class Route:
    """Route descriptor published by the bus telemetry"""

    type: str  # "fixed" or "dynamic"
    fare_amount: Optional[int] = None
    departure: str = ""
    destination: str = ""


@dataclass
class BusLiveState:
    """Live bus record from the low-latency store"""

    plate_number: str
    status: bool
    route: Optional[Route] = None


@dataclass
class FareConfig:
    """Fare policy knobs handed to the settlement orchestrator"""

    default_fare_amount: int
    minimum_balance: int
    currency: str = "UGX"

    @classmethod
    def from_settings(cls, settings) -> "FareConfig":
        return cls(
            default_fare_amount=settings.default_fare_amount,
            minimum_balance=settings.minimum_balance,
            currency=settings.currency,
        )


@dataclass
class FixedFare:
    fare_amount: int


@dataclass
class DynamicFare:
    pass


FarePolicy = Union[FixedFare, DynamicFare]


@dataclass
class EarningsSnapshot:
    """Per-bus earnings rollups (weekly by day, monthly by label, lifetime)"""

    weekly_earnings: List[Dict[str, Any]] = field(default_factory=list)
    monthly_earnings: List[Dict[str, Any]] = field(default_factory=list)
    total_earnings: int = 0


@dataclass
class TransactionRecord:
    """Immutable fare or top-up record"""

    transaction_id: str
    card_uid: str
    amount: int
    type: str  # "payment" or "topup"
    created_at: datetime
    bus_plate_number: Optional[str] = None


@dataclass
class Notification:
    """Rendered rider notification for both channels"""

    phone: str
    email: str
    sms_message: str
    template_params: Dict[str, Any]
