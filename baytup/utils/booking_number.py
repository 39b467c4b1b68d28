"""Booking number and payout reference generation utilities."""

import random
import string
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

REFERENCE_CHARS = string.ascii_uppercase + string.digits


def _random_part(length: int) -> str:
    return "".join(random.choices(REFERENCE_CHARS, k=length))


async def generate_booking_number(db: AsyncSession) -> str:
    """Generate a unique booking number in format BTP-XXXXXX.

    Args:
        db: Database session for uniqueness check

    Returns:
        str: Unique booking number like 'BTP-A3B7K9'
    """
    from baytup.models.booking import Booking

    while True:
        booking_number = f"BTP-{_random_part(6)}"

        result = await db.execute(
            select(Booking.id).where(Booking.booking_number == booking_number)
        )
        if result.first() is None:
            return booking_number


def generate_payout_reference() -> str:
    """Generate a payout reference number.

    Returns:
        str: Payout reference like 'PAY-20260115-K9M2'
    """
    date_part = datetime.now(UTC).strftime("%Y%m%d")
    return f"PAY-{date_part}-{_random_part(4)}"
