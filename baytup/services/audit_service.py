"""Financial audit trail service."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from baytup.models.admin import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Service for immutable audit logging of privileged actions."""

    FINANCIAL_ACTIONS = {
        "booking_cancel_admin",
        "booking_mark_disputed",
        "booking_confirm_manual_payment",
        "escrow_release_manual",
        "escrow_freeze",
        "escrow_unfreeze",
        "escrow_resolve_dispute",
        "payout_request",
        "payout_cancel",
        "payout_start_processing",
        "payout_complete",
        "payout_reject",
    }

    async def log_action(
        self,
        db: AsyncSession,
        user_id: UUID | None,
        action: str,
        resource_type: str,
        resource_id: UUID,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> AuditLog:
        """Append an audit entry to the current transaction.

        Args:
            db: Database session
            user_id: User performing the action (None for system)
            action: Action name (e.g., "payout_complete")
            resource_type: Resource type (e.g., "payout", "escrow")
            resource_id: Resource ID
            old_values: Previous state
            new_values: New state
            reason: Free-text justification

        Returns:
            Created audit log entry
        """
        if action not in self.FINANCIAL_ACTIONS:
            logger.warning(f"Audit action '{action}' is not a registered financial action")

        audit = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
            reason=reason,
        )
        db.add(audit)
        return audit

    async def log_status_change(
        self,
        db: AsyncSession,
        user_id: UUID | None,
        action: str,
        resource_type: str,
        resource_id: UUID,
        old_status: str,
        new_status: str,
        amount: int | None = None,
        reason: str | None = None,
    ) -> AuditLog:
        """Log a status change with an optional amount."""
        new_values: dict[str, Any] = {"status": new_status}
        if amount is not None:
            new_values["amount"] = amount
        return await self.log_action(
            db,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_values={"status": old_status},
            new_values=new_values,
            reason=reason,
        )


# Singleton instance
audit_service = AuditService()
