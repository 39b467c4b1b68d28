"""Database models."""

from baytup.models.admin import AuditLog, Dispute
from baytup.models.booking import Booking, BookingStatusHistory
from baytup.models.escrow import Escrow, EscrowHistory
from baytup.models.listing import Listing
from baytup.models.payout import Payout
from baytup.models.user import User

__all__ = [
    # User
    "User",
    # Listing
    "Listing",
    # Booking
    "Booking",
    "BookingStatusHistory",
    # Escrow
    "Escrow",
    "EscrowHistory",
    # Payout
    "Payout",
    # Admin
    "AuditLog",
    "Dispute",
]
