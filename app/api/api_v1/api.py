# app/api/api_v1/api.py
from fastapi import APIRouter

from app.api.api_v1.routers import (
    bookings,
    rate_configs,
    vehicles,
)

api_router = APIRouter()

api_router.include_router(rate_configs.router)
api_router.include_router(vehicles.router)
api_router.include_router(bookings.router)
