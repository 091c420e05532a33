from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

from app.models import VehicleClass


class VehicleEntryCreate(BaseModel):
    plate: str = Field(min_length=1, max_length=20)
    vehicle_class: VehicleClass
    is_electric_or_hybrid: bool = False
    assigned_spot: PositiveInt

    @field_validator("plate")
    @classmethod
    def plate_must_be_alphanumeric(cls, value: str) -> str:
        if not value.isascii() or not value.isalnum():
            raise ValueError("Plate must contain only alphanumeric characters")
        return value


class VehicleSessionPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    assigned_spot: Optional[PositiveInt] = None
    is_electric_or_hybrid: Optional[bool] = None
    exit_timestamp: Optional[datetime] = None
    is_false_positive: Optional[bool] = None

    @field_validator("exit_timestamp")
    @classmethod
    def exit_timestamp_as_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class VehicleSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    plate: str
    vehicle_class: VehicleClass
    is_electric_or_hybrid: bool
    assigned_spot: int
    entry_timestamp: datetime
    exit_timestamp: Optional[datetime] = None
    cost: float
    is_false_positive: bool


class VehicleRemovedResponse(BaseModel):
    message: str
    id: int


class CloseDayResponse(BaseModel):
    message: str
    total_revenue: float
    settled: int
    failed_ids: List[int]
