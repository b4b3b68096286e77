from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

VehicleStatusLiteral = Literal["Available", "In Transit", "Maintenance"]


class VehicleBase(BaseModel):
    plate_number: str = Field(min_length=1, max_length=32)
    model: str
    capacity_kg: float = Field(gt=0)
    driver: str
    driver_contact: Optional[str] = None
    status: VehicleStatusLiteral = "Available"


class VehicleCreate(VehicleBase):
    pass


class VehicleUpdate(BaseModel):
    plate_number: Optional[str] = None
    model: Optional[str] = None
    capacity_kg: Optional[float] = Field(default=None, gt=0)
    driver: Optional[str] = None
    driver_contact: Optional[str] = None
    status: Optional[VehicleStatusLiteral] = None

    model_config = ConfigDict(extra="forbid")


class VehicleRead(VehicleBase):
    vehicle_id: str
    capacity_tons: float

    model_config = ConfigDict(from_attributes=True)
