"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional


class ProcessFareRequest(BaseModel):
    """Request body for POST /process-fare"""

    model_config = ConfigDict(populate_by_name=True)

    card_uid: str = Field(..., alias="cardUID", min_length=1, description="Tapped card identifier")
    bus_plate_number: Optional[str] = Field(
        None, alias="busPlateNumber", min_length=1, description="Bus the terminal is mounted on"
    )


class FareResponse(BaseModel):
    """Response for POST /process-fare"""

    model_config = ConfigDict(populate_by_name=True)

    status: str  # success | info | error
    message: str
    new_balance: Optional[int] = Field(None, alias="newBalance")
    hardware_code: str = Field(..., alias="hardwareCode")


class BalanceLoadRequest(BaseModel):
    """Request body for POST /notify-balance-load"""

    model_config = ConfigDict(populate_by_name=True)

    card_uid: str = Field(..., alias="cardUID", min_length=1)
    amount: int = Field(..., gt=0, description="Amount loaded in minor currency units")
    new_balance: int = Field(..., alias="newBalance", ge=0)
    email: str = ""
    phone: str = ""
    first_name: str = Field("", alias="firstName")

    @model_validator(mode="after")
    def require_destination(self) -> "BalanceLoadRequest":
        if not self.email and not self.phone:
            raise ValueError("at least one of email or phone is required")
        return self


class NotifyResponse(BaseModel):
    """Response for POST /notify-balance-load"""

    status: str
    message: str


class DrainResponse(BaseModel):
    """Response for POST /outbox/drain"""

    processed: int
    delivered: int
    failed: int
    pending: int
