"""Fare policy resolution from a bus's live record"""

from typing import Optional
from fareflow_gateway.domain.models import (
    BusLiveState,
    DynamicFare,
    FareConfig,
    FarePolicy,
    FixedFare,
    ROUTE_DYNAMIC,
)
from fareflow_gateway.domain.exceptions import BusInactiveError, BusNotFoundError


def resolve_fare_policy(bus: Optional[BusLiveState], config: FareConfig) -> FarePolicy:
    """
    Decide how a tap on this bus is priced.

    Rules:
    - No live record: BusNotFoundError
    - status false: BusInactiveError
    - route.type == "dynamic": DynamicFare (no debit is made)
    - otherwise fixed, using route.fare_amount when positive, else the
      configured default fare

    Raises:
        BusNotFoundError, BusInactiveError
    """
    if bus is None:
        raise BusNotFoundError("Bus not found in live state store")

    if not bus.status:
        raise BusInactiveError(f"Bus {bus.plate_number} is currently inactive")

    route = bus.route
    if route is not None and route.type == ROUTE_DYNAMIC:
        return DynamicFare()

    fare_amount = route.fare_amount if route is not None else None
    if fare_amount is None or fare_amount <= 0:
        fare_amount = config.default_fare_amount

    return FixedFare(fare_amount=fare_amount)
