"""Celery background tasks.

Periodic sweeps over the booking and escrow lifecycle:
- Expire booking requests the host never answered
- Remind hosts whose response deadline is close
- Auto-release escrows of completed stays left held
"""

import asyncio
import logging

from celery import shared_task

from baytup.database import engine, get_db_context
from baytup.services.booking_service import booking_service
from baytup.services.escrow_service import escrow_service

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async function in sync context."""

    async def _run():
        try:
            return await coro
        finally:
            # Pooled connections are bound to this event loop
            await engine.dispose()

    return asyncio.run(_run())


# ==================== BOOKING TASKS ====================


@shared_task(bind=True, max_retries=3)
def expire_pending_bookings(self):
    """Expire pending requests past their host response deadline."""
    try:
        expired = run_async(_expire_pending_bookings())
        return {"status": "success", "expired": expired}
    except Exception as exc:
        logger.exception("Expiring pending bookings failed")
        raise self.retry(exc=exc, countdown=300)


async def _expire_pending_bookings() -> int:
    async with get_db_context() as db:
        expired = await booking_service.expire_overdue(db)
    if expired:
        logger.info(f"Expired {expired} unanswered booking requests")
    return expired


@shared_task(bind=True, max_retries=3)
def send_host_response_reminders(self):
    """Remind hosts about requests close to their response deadline."""
    try:
        sent = run_async(_send_host_response_reminders())
        return {"status": "success", "reminded": sent}
    except Exception as exc:
        logger.exception("Sending host reminders failed")
        raise self.retry(exc=exc, countdown=300)


async def _send_host_response_reminders() -> int:
    async with get_db_context() as db:
        bookings = await booking_service.due_for_reminder(db)
        for booking in bookings:
            await booking_service.mark_reminder_sent(db, booking)
    return len(bookings)


# ==================== ESCROW TASKS ====================


@shared_task(bind=True, max_retries=3)
def auto_release_escrows(self):
    """Release held escrows whose release date has passed.

    Escrows with an open dispute are frozen instead.
    """
    try:
        counts = run_async(_auto_release_escrows())
        return {"status": "success", **counts}
    except Exception as exc:
        logger.exception("Escrow auto-release failed")
        raise self.retry(exc=exc, countdown=300)


async def _auto_release_escrows() -> dict[str, int]:
    async with get_db_context() as db:
        counts = await escrow_service.auto_release_due(db)
    logger.info(f"Escrow auto-release: {counts['released']} released, {counts['frozen']} frozen")
    return counts
