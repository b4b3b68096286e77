# Importa todos los modelos para que Base.metadata los conozca
from .base import Base
from .booking import Booking, BookingStatus, BookingStatusHistory, VehicleAssignment
from .rate_config import RateConfig
from .vehicle import Vehicle, VehicleStatus

__all__ = [
    "Base",
    "Booking",
    "BookingStatus",
    "BookingStatusHistory",
    "RateConfig",
    "Vehicle",
    "VehicleAssignment",
    "VehicleStatus",
]
