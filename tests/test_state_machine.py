"""Tests for payroll period state machine."""

import pytest

from payroll_reconciler.errors import InvalidTransitionError, PeriodFinalizedError
from payroll_reconciler.services.state_machine import PeriodStateMachine, PeriodStatus


class TestPeriodStateMachine:
    """Test state machine transitions."""

    def test_draft_can_be_finalized(self):
        assert PeriodStateMachine.can_transition("draft", "finalized") is True

    def test_no_unfinalize(self):
        """Finalized is terminal; corrections happen out of band."""
        assert PeriodStateMachine.can_transition("finalized", "draft") is False
        assert PeriodStateMachine.is_terminal(PeriodStatus.FINALIZED) is True
        assert PeriodStateMachine.get_next_statuses("finalized") == []

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PeriodStateMachine.validate_transition("finalized", "finalized")

        assert exc_info.value.from_status == "finalized"
        assert exc_info.value.to_status == "finalized"

    def test_unknown_status_has_no_transitions(self):
        assert PeriodStateMachine.can_transition("paid", "finalized") is False

    def test_entries_mutable_only_in_draft(self):
        assert PeriodStateMachine.can_modify_entries("draft") is True
        assert PeriodStateMachine.can_modify_entries("finalized") is False

    def test_ensure_mutable(self):
        PeriodStateMachine.ensure_mutable("2024-01-15", "draft")

        with pytest.raises(PeriodFinalizedError) as exc_info:
            PeriodStateMachine.ensure_mutable("2024-01-15", "finalized")

        assert exc_info.value.period_id == "2024-01-15"
