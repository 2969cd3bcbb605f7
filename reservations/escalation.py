"""Escalation policy — which booking path a party size takes."""

from __future__ import annotations

from typing import Optional

from reservations.models.dialogue import EscalationTier
from reservations.models.restaurant import EscalationThresholds


def classify(
    party_size: Optional[int],
    thresholds: EscalationThresholds = EscalationThresholds(),
) -> EscalationTier:
    """Tier for ``party_size`` under ``thresholds``.

    ``>= event`` is a private event, strictly between ``large_group`` and
    ``event`` is a large group, anything else (unknown included) is normal.
    """
    if party_size is None:
        return EscalationTier.NORMAL
    if party_size >= thresholds.event:
        return EscalationTier.PRIVATE_EVENT
    if party_size > thresholds.large_group:
        return EscalationTier.LARGE_GROUP
    return EscalationTier.NORMAL


def calls_backend(tier: EscalationTier) -> bool:
    """Private events go to the owner, never to the booking backend."""
    return tier is not EscalationTier.PRIVATE_EVENT
