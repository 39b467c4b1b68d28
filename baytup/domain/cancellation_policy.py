"""Cancellation policy domain logic.

Policies (guest cancellation, outside the grace period):
- flexible: Full refund up to 24h before check-in, nothing after
- moderate: Full refund up to 5 days before, 50% after
- strict: Full refund up to 14 days before, 50% up to 7 days, nothing after
- super_strict: Full refund up to 30 days before, 50% up to 14 days, nothing after
"""

from decimal import Decimal
from enum import Enum


class CancellationPolicy(str, Enum):
    """Cancellation policy types."""

    FLEXIBLE = "flexible"
    MODERATE = "moderate"
    STRICT = "strict"
    SUPER_STRICT = "super_strict"


DEFAULT_POLICY = CancellationPolicy.MODERATE

PolicyRules = dict[CancellationPolicy, list[tuple[int, Decimal]]]

# Refund rules: list of (hours_before_checkin, refund_percentage)
# Evaluated in order - first match wins, no match means the floor.
POLICY_RULES: PolicyRules = {
    CancellationPolicy.FLEXIBLE: [
        (24, Decimal("100")),
        (0, Decimal("0")),
    ],
    CancellationPolicy.MODERATE: [
        (5 * 24, Decimal("100")),
        (0, Decimal("50")),
    ],
    CancellationPolicy.STRICT: [
        (14 * 24, Decimal("100")),
        (7 * 24, Decimal("50")),
        (0, Decimal("0")),
    ],
    CancellationPolicy.SUPER_STRICT: [
        (30 * 24, Decimal("100")),
        (14 * 24, Decimal("50")),
        (0, Decimal("0")),
    ],
}


def normalize_policy(policy: str | CancellationPolicy | None) -> CancellationPolicy:
    """Coerce a stored policy name, defaulting unknown values to moderate."""
    if isinstance(policy, CancellationPolicy):
        return policy
    try:
        return CancellationPolicy(policy)
    except ValueError:
        return DEFAULT_POLICY


def policy_refund_percent(
    policy: str | CancellationPolicy | None,
    hours_before_check_in: float,
    rules: PolicyRules | None = None,
) -> Decimal:
    """Refund percentage (0-100) of the nightly subtotal for a guest cancellation.

    Args:
        policy: The listing's cancellation policy
        hours_before_check_in: Hours between cancellation and check-in
        rules: Alternative policy table, defaults to POLICY_RULES
    """
    table = rules or POLICY_RULES
    policy = normalize_policy(policy)
    tiers = table.get(policy, table.get(DEFAULT_POLICY, []))

    for min_hours, refund_pct in tiers:
        if hours_before_check_in >= min_hours:
            return refund_pct

    return Decimal("0")


def get_policy_description(policy: str | CancellationPolicy) -> str:
    """Get human-readable policy description."""
    descriptions = {
        CancellationPolicy.FLEXIBLE: (
            "Full refund up to 24 hours before check-in. "
            "No refund after that."
        ),
        CancellationPolicy.MODERATE: (
            "Full refund up to 5 days before check-in. "
            "50% refund after that."
        ),
        CancellationPolicy.STRICT: (
            "Full refund up to 14 days before check-in. "
            "50% refund up to 7 days before. "
            "No refund after that."
        ),
        CancellationPolicy.SUPER_STRICT: (
            "Full refund up to 30 days before check-in. "
            "50% refund up to 14 days before. "
            "No refund after that."
        ),
    }
    return descriptions[normalize_policy(policy)]
