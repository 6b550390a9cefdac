"""Bus live-state HTTP client (Realtime Database REST API)"""

import httpx
from typing import Any, Dict, Optional
from fareflow_gateway.domain.models import BusLiveState, Route, ROUTE_FIXED
from fareflow_gateway.domain.exceptions import LiveStateAPIError
from fareflow_gateway.config import settings


def _parse_fare_amount(value: Any) -> Optional[int]:
    """Whole-number fares only; anything else falls back to the default fare"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_bus_live_state(plate_number: str, data: Dict[str, Any]) -> BusLiveState:
    """Map a raw live record onto BusLiveState; unusable fare amounts become None"""
    route_data = data.get("route")
    route = None
    if isinstance(route_data, dict):
        route = Route(
            type=route_data.get("type") or ROUTE_FIXED,
            fare_amount=_parse_fare_amount(route_data.get("fareAmount")),
            departure=route_data.get("departure") or "",
            destination=route_data.get("destination") or "",
        )

    return BusLiveState(plate_number=plate_number, status=bool(data.get("status")), route=route)


class LiveStateClient:
    """Read-only client for live bus records"""

    def __init__(
        self,
        base_url: str | None = None,
        auth_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.live_state_api_base).rstrip("/")
        self.auth_token = auth_token if auth_token is not None else settings.live_state_auth_token
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def get_bus(self, plate_number: str) -> Optional[BusLiveState]:
        """
        Fetch the live record for a bus.

        Returns None when the store has no record (404 or a JSON null body).

        Raises:
            LiveStateAPIError: On timeout, HTTP errors, or an invalid response
        """
        params = {"auth": self.auth_token} if self.auth_token else None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(
                    f"{self.base_url}/buses/{plate_number}.json",
                    params=params,
                )
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                data = response.json()

                if data is None:
                    return None
                if not isinstance(data, dict):
                    raise ValueError(f"expected an object, got {type(data).__name__}")

                return parse_bus_live_state(plate_number, data)

            except httpx.TimeoutException as e:
                raise LiveStateAPIError(f"Live state API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise LiveStateAPIError(f"Live state API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise LiveStateAPIError(f"Live state API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise LiveStateAPIError(f"Invalid live record for bus {plate_number}: {e}") from e
