"""API routes."""

from fastapi import APIRouter

from cafe_pos.api.routes import compliance, orders, reservations, sync, waste_logs

api_router = APIRouter()

api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(reservations.router, prefix="/reservations", tags=["reservations"])
api_router.include_router(compliance.router, prefix="/compliance", tags=["compliance"])
api_router.include_router(waste_logs.router, prefix="/waste-logs", tags=["waste-logs"])
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
