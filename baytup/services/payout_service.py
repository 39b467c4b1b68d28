"""Host payout service.

BUSINESS RULES:
- Earned = host share credited by released escrows of settled bookings
  (completed or cancelled with a kept host share) and of dispute splits
- Available = earned - payouts pending, processing or completed
- Requests are checked against the available balance at request time
- pending → processing → completed, pending → rejected | cancelled
- Account number and RIB are stored encrypted (AES-256-GCM)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from baytup.config import settings
from baytup.core.encryption import encrypt_sensitive
from baytup.core.exceptions import (
    AuthorizationError,
    InsufficientBalance,
    NotFoundError,
    ValidationError,
)
from baytup.core.permissions import Actor, require_role
from baytup.database import utcnow
from baytup.domain.booking_state import TERMINAL_STATUSES, ActorRole
from baytup.domain.escrow_state import HOST_CREDITED_STATUSES, ReleaseTrigger
from baytup.domain.payout_state import (
    BALANCE_RESERVING_STATUSES,
    PayoutStatus,
    assert_payout_transition,
)
from baytup.models.booking import Booking
from baytup.models.escrow import Escrow
from baytup.models.payout import Payout
from baytup.models.user import User
from baytup.schemas.payment import PayoutRequest
from baytup.services.audit_service import audit_service
from baytup.services.notification_service import DomainEvent, notification_service
from baytup.utils.booking_number import generate_payout_reference
from baytup.utils.validators import (
    normalize_account_number,
    validate_iban,
    validate_rib,
    validate_swift,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostBalance:
    """A host's earnings position in one currency."""

    host_id: UUID
    currency: str
    total_earned: int
    reserved: int

    @property
    def available(self) -> int:
        return self.total_earned - self.reserved


class PayoutService:
    """Service for host balances and withdrawal requests."""

    def __init__(self) -> None:
        # Serializes "read balance, check, insert" per host within this process
        self._host_locks: dict[UUID, asyncio.Lock] = {}
        self._lock_holders: dict[UUID, int] = {}

    @asynccontextmanager
    async def _host_lock(self, host_id: UUID):
        """Hold the host's lock; it is dropped once nobody holds or awaits it."""
        lock = self._host_locks.setdefault(host_id, asyncio.Lock())
        self._lock_holders[host_id] = self._lock_holders.get(host_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[host_id] -= 1
            if not self._lock_holders[host_id]:
                del self._lock_holders[host_id]
                del self._host_locks[host_id]

    # ==================== BALANCE ====================

    async def available_balance(
        self, db: AsyncSession, host_id: UUID, currency: str = "DZD"
    ) -> HostBalance:
        """Compute the host's withdrawable balance from the ledger."""
        # An escrow released early by admin override stays out of the balance
        # until its booking reaches a terminal status. A dispute split is final.
        earned_result = await db.execute(
            select(func.coalesce(func.sum(Escrow.released_amount), 0))
            .join(Booking, Booking.id == Escrow.booking_id)
            .where(
                Escrow.payee_id == host_id,
                Escrow.currency == currency,
                Escrow.status.in_([s.value for s in HOST_CREDITED_STATUSES]),
                or_(
                    Booking.status.in_([s.value for s in TERMINAL_STATUSES]),
                    Escrow.release_trigger == ReleaseTrigger.DISPUTE_RESOLUTION.value,
                ),
            )
        )
        reserved_result = await db.execute(
            select(func.coalesce(func.sum(Payout.amount), 0)).where(
                Payout.host_id == host_id,
                Payout.currency == currency,
                Payout.status.in_([s.value for s in BALANCE_RESERVING_STATUSES]),
            )
        )
        return HostBalance(
            host_id=host_id,
            currency=currency,
            total_earned=int(earned_result.scalar() or 0),
            reserved=int(reserved_result.scalar() or 0),
        )

    def minimum_for(self, currency: str) -> int:
        minimum = settings.payout_minimum_amounts.get(currency)
        if minimum is None:
            raise ValidationError(f"Payouts are not available in {currency}")
        return minimum

    # ==================== QUERIES ====================

    async def get_payout(self, db: AsyncSession, payout_id: UUID, actor: Actor | None = None) -> Payout:
        payout = await db.get(Payout, payout_id)
        if payout is None:
            raise NotFoundError("Payout", str(payout_id))
        if actor is not None and not actor.is_admin and payout.host_id != actor.user_id:
            raise NotFoundError("Payout", str(payout_id))
        return payout

    async def list_payouts(
        self,
        db: AsyncSession,
        actor: Actor,
        status: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Payout], int]:
        query = select(Payout)
        if not actor.is_admin:
            query = query.where(Payout.host_id == actor.user_id)
        if status:
            query = query.where(Payout.status == status)

        count_result = await db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        result = await db.execute(
            query.order_by(Payout.requested_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    # ==================== REQUEST ====================

    def _validate_bank_fields(self, data: PayoutRequest) -> tuple[str, str]:
        account_number = normalize_account_number(data.account_number)
        rib = normalize_account_number(data.rib)
        if not account_number.isalnum():
            raise ValidationError("Account number must be alphanumeric")
        if not validate_rib(rib):
            raise ValidationError("RIB must be exactly 20 digits")
        if data.iban and not validate_iban(data.iban):
            raise ValidationError("Invalid IBAN format")
        if data.swift_code and not validate_swift(data.swift_code):
            raise ValidationError("Invalid SWIFT/BIC code")
        return account_number, rib

    async def request_payout(self, db: AsyncSession, actor: Actor, data: PayoutRequest) -> Payout:
        """Reserve part of the host's balance for a bank withdrawal.

        The balance read, the check and the insert run as one critical
        section per host and are committed before the section is left.

        Raises:
            ValidationError: Below minimum or malformed bank fields
            InsufficientBalance: Amount exceeds the available balance
        """
        require_role(actor, ActorRole.HOST)
        minimum = self.minimum_for(data.currency)
        if data.amount < minimum:
            raise ValidationError(f"Minimum payout is {minimum} {data.currency}")
        account_number, rib = self._validate_bank_fields(data)

        async with self._host_lock(actor.user_id):
            # Row lock serializes concurrent requests across processes
            await db.execute(select(User.id).where(User.id == actor.user_id).with_for_update())

            balance = await self.available_balance(db, actor.user_id, data.currency)
            if data.amount > balance.available:
                raise InsufficientBalance(
                    f"Requested {data.amount} {data.currency} exceeds available balance "
                    f"of {balance.available} {data.currency}"
                )

            now = utcnow()
            payout = Payout(
                reference=generate_payout_reference(),
                host_id=actor.user_id,
                amount=data.amount,
                fees=0,
                final_amount=data.amount,
                currency=data.currency,
                payout_method=data.payout_method.value,
                bank_name=data.bank_name,
                account_holder_name=data.account_holder_name,
                account_number_encrypted=encrypt_sensitive(account_number),
                rib_encrypted=encrypt_sensitive(rib),
                rib_last4=rib[-4:],
                iban=data.iban.replace(" ", "").upper() if data.iban else None,
                swift_code=data.swift_code.upper() if data.swift_code else None,
                status=PayoutStatus.PENDING.value,
                requested_at=now,
                estimated_arrival=now + timedelta(days=settings.payout_estimated_arrival_days),
                host_notes=data.host_notes,
            )
            db.add(payout)
            await db.flush()

            await audit_service.log_status_change(
                db,
                user_id=actor.user_id,
                action="payout_request",
                resource_type="payout",
                resource_id=payout.id,
                old_status="none",
                new_status=payout.status,
                amount=payout.amount,
            )
            await db.commit()

        logger.info(
            f"Payout {payout.reference} requested by host {actor.user_id}: "
            f"{payout.amount} {payout.currency} (available was {balance.available})"
        )
        await self._emit(payout, actor.user_id)
        return payout

    # ==================== STATUS CHANGES ====================

    async def _change_status(
        self,
        db: AsyncSession,
        payout: Payout,
        target: PayoutStatus,
        actor: Actor,
        action: str,
        reason: str | None = None,
    ) -> Payout:
        old_status = payout.status
        assert_payout_transition(old_status, target)
        payout.status = target.value

        await audit_service.log_status_change(
            db,
            user_id=actor.user_id,
            action=action,
            resource_type="payout",
            resource_id=payout.id,
            old_status=old_status,
            new_status=target.value,
            amount=payout.amount,
            reason=reason,
        )
        await db.flush()

        logger.info(f"Payout {payout.reference}: {old_status} → {target.value} by {actor.user_id}")
        await self._emit(payout, actor.user_id)
        return payout

    async def cancel_payout(self, db: AsyncSession, actor: Actor, payout_id: UUID) -> Payout:
        """Host withdraws a request that is still pending."""
        payout = await self.get_payout(db, payout_id)
        if payout.host_id != actor.user_id:
            raise AuthorizationError("Only the requesting host can cancel this payout")
        return await self._change_status(db, payout, PayoutStatus.CANCELLED, actor, "payout_cancel")

    async def start_processing(
        self,
        db: AsyncSession,
        actor: Actor,
        payout_id: UUID,
        admin_notes: str | None = None,
    ) -> Payout:
        require_role(actor, ActorRole.ADMIN)
        payout = await self.get_payout(db, payout_id)
        assert_payout_transition(payout.status, PayoutStatus.PROCESSING)
        payout.processed_at = utcnow()
        payout.processed_by = actor.user_id
        if admin_notes:
            payout.admin_notes = admin_notes
        return await self._change_status(
            db, payout, PayoutStatus.PROCESSING, actor, "payout_start_processing", admin_notes
        )

    async def complete_payout(
        self,
        db: AsyncSession,
        actor: Actor,
        payout_id: UUID,
        transaction_id: str,
        admin_notes: str | None = None,
    ) -> Payout:
        """Admin records the bank transfer as done."""
        require_role(actor, ActorRole.ADMIN)
        if not transaction_id or not transaction_id.strip():
            raise ValidationError("A bank transaction id is required to complete a payout")
        payout = await self.get_payout(db, payout_id)
        assert_payout_transition(payout.status, PayoutStatus.COMPLETED)
        payout.transaction_id = transaction_id.strip()
        payout.completed_at = utcnow()
        if admin_notes:
            payout.admin_notes = admin_notes
        return await self._change_status(
            db, payout, PayoutStatus.COMPLETED, actor, "payout_complete", admin_notes
        )

    async def reject_payout(
        self,
        db: AsyncSession,
        actor: Actor,
        payout_id: UUID,
        reason: str,
    ) -> Payout:
        """Admin refuses a pending request; the amount returns to the balance."""
        require_role(actor, ActorRole.ADMIN)
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reject a payout")
        payout = await self.get_payout(db, payout_id)
        assert_payout_transition(payout.status, PayoutStatus.REJECTED)
        payout.rejection_reason = reason
        payout.processed_at = utcnow()
        payout.processed_by = actor.user_id
        return await self._change_status(
            db, payout, PayoutStatus.REJECTED, actor, "payout_reject", reason
        )

    async def _emit(self, payout: Payout, actor_id: UUID) -> None:
        await notification_service.emit(
            DomainEvent(
                name=notification_service.PAYOUT_STATUS_CHANGED,
                payout_id=payout.id,
                actor_id=actor_id,
                amounts={"amount": payout.amount},
                data={"reference": payout.reference, "status": payout.status},
            )
        )


# Singleton instance
payout_service = PayoutService()
