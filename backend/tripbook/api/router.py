"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from tripbook.api.routes import trips, bookings, payments

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(trips.router)
api_router.include_router(bookings.router)
api_router.include_router(payments.router)
