"""Payroll period state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from payroll_reconciler.errors import InvalidTransitionError, PeriodFinalizedError


class PeriodStatus(str, Enum):
    """Payroll period status values."""

    DRAFT = "draft"
    FINALIZED = "finalized"


class PeriodStateMachine:
    """State machine for payroll period status transitions.

    Allowed transitions:
    - draft → finalized

    Finalized is terminal. There is no unfinalize; corrections after
    finalization are out-of-band adjustments, not ledger mutations.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodStatus.DRAFT: [PeriodStatus.FINALIZED],
        PeriodStatus.FINALIZED: [],  # Terminal state
    }

    # Statuses where entries and totals may change
    ENTRIES_MUTABLE = {PeriodStatus.DRAFT}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_modify_entries(cls, status: str) -> bool:
        """Check if entries (and therefore totals) can be modified."""
        return status in cls.ENTRIES_MUTABLE

    @classmethod
    def ensure_mutable(cls, period_id: str, status: str) -> None:
        """Raise PeriodFinalizedError unless the period accepts ledger writes."""
        if not cls.can_modify_entries(status):
            raise PeriodFinalizedError(period_id)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if no further transitions exist."""
        return not cls.VALID_TRANSITIONS.get(status, [])

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
