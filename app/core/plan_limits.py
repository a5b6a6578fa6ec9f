"""
Plan inference from subscription status and amount.

Single source of truth for the plan identifier and generation quota granted
by a subscription. No other module derives plan or quota.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

# Statuses that grant a paid entitlement
ENTITLED_STATUSES = ("active", "trialing")

# Amount (minor currency units) -> (plan_id, generation_limit)
PLAN_BY_AMOUNT: Dict[int, Tuple[str, int]] = {
    1500: ("basic", 100),
    3500: ("pro", 500),
}

FREE_PLAN_ID = "free"
FREE_GENERATION_LIMIT = 1


@dataclass(frozen=True)
class Entitlement:
    plan_id: Optional[str]
    generation_limit: int


FREE_ENTITLEMENT = Entitlement(FREE_PLAN_ID, FREE_GENERATION_LIMIT)

# Applied on cancellation: plan reference cleared, free quota
CANCELED_ENTITLEMENT = Entitlement(None, FREE_GENERATION_LIMIT)


def resolve_entitlement(status: Optional[str], amount: Optional[int]) -> Entitlement:
    """
    Get the entitlement granted by a subscription.

    Args:
        status: Authoritative provider subscription status
        amount: Line-item amount in minor currency units

    Returns:
        Entitlement for the plan matching the amount, or the free
        entitlement when the status is not active/trialing or the amount
        matches no known plan
    """
    if status not in ENTITLED_STATUSES:
        return FREE_ENTITLEMENT
    plan = PLAN_BY_AMOUNT.get(amount)
    if plan is None:
        return FREE_ENTITLEMENT
    return Entitlement(*plan)
