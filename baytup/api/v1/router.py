"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from baytup.api.v1 import bookings, disputes, escrow, payouts, webhooks

api_router = APIRouter()

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Escrow (admin)
api_router.include_router(escrow.router, prefix="/escrow", tags=["Escrow"])

# Disputes
api_router.include_router(disputes.router, prefix="/disputes", tags=["Disputes"])

# Payouts
api_router.include_router(payouts.router, prefix="/payouts", tags=["Payouts"])

# Webhooks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
