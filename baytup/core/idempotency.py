"""Replay protection for payment-provider webhook deliveries.

Webhook state changes are idempotent at the database level (a paid
booking is never confirmed twice); this store short-circuits exact
redeliveries before any database work.
"""

import hashlib
import json
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID


class IdempotencyStore:
    """In-memory idempotency key store with a TTL.

    Per-process only; database checks remain the source of truth.
    """

    def __init__(self, ttl: timedelta = timedelta(hours=24)):
        self._keys: dict[str, dict] = {}
        self._ttl = ttl

    def _cleanup_expired(self) -> None:
        now = datetime.now(UTC)
        expired = [k for k, v in self._keys.items() if v["expires_at"] < now]
        for k in expired:
            del self._keys[k]

    def get(self, key: str) -> dict | None:
        """Get stored result for idempotency key."""
        self._cleanup_expired()
        entry = self._keys.get(key)
        if entry and entry["expires_at"] > datetime.now(UTC):
            return entry["result"]
        return None

    def set(self, key: str, result: dict) -> None:
        """Store result for idempotency key."""
        self._keys[key] = {
            "result": result,
            "expires_at": datetime.now(UTC) + self._ttl,
        }

    def clear(self) -> None:
        self._keys.clear()


# Global store instance
webhook_deliveries = IdempotencyStore()


def generate_idempotency_key(
    operation: str,
    entity_id: UUID | str,
    params: dict[str, Any] | None = None,
) -> str:
    """Generate a deterministic idempotency key.

    Args:
        operation: Operation name (e.g., "webhook_slickpay")
        entity_id: Primary entity ID
        params: Additional parameters to include in key

    Returns:
        SHA256 hash of operation + entity + params
    """
    key_data = {
        "operation": operation,
        "entity_id": str(entity_id),
        "params": params or {},
    }
    key_str = json.dumps(key_data, sort_keys=True)
    return hashlib.sha256(key_str.encode()).hexdigest()


def webhook_delivery_key(provider: str, raw_body: bytes) -> str:
    """Key identifying one exact webhook delivery."""
    body_hash = hashlib.sha256(raw_body).hexdigest()
    return generate_idempotency_key(f"webhook_{provider}", body_hash)
