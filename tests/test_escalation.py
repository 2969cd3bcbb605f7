"""Tests for the escalation policy."""

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from reservations.escalation import calls_backend, classify
from reservations.models.dialogue import EscalationTier
from reservations.models.restaurant import EscalationThresholds

DEFAULT = EscalationThresholds(large_group=10, event=45)


class TestClassify:
    @pytest.mark.parametrize("party_size, tier", [
        (None, EscalationTier.NORMAL),
        (1, EscalationTier.NORMAL),
        (10, EscalationTier.NORMAL),
        (11, EscalationTier.LARGE_GROUP),
        (44, EscalationTier.LARGE_GROUP),
        (45, EscalationTier.PRIVATE_EVENT),
        (120, EscalationTier.PRIVATE_EVENT),
    ])
    def test_default_thresholds(self, party_size, tier):
        assert classify(party_size, DEFAULT) is tier

    def test_custom_thresholds(self):
        thresholds = EscalationThresholds(large_group=6, event=20)
        assert classify(7, thresholds) is EscalationTier.LARGE_GROUP
        assert classify(20, thresholds) is EscalationTier.PRIVATE_EVENT

    def test_private_event_skips_backend(self):
        assert not calls_backend(EscalationTier.PRIVATE_EVENT)
        assert calls_backend(EscalationTier.LARGE_GROUP)
        assert calls_backend(EscalationTier.NORMAL)
