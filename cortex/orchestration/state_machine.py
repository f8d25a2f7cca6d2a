"""Canonical lead lifecycle transitions."""

from __future__ import annotations

from cortex.models.enums import LeadStatus


class InvalidTransitionError(ValueError):
    """Raised when a disallowed state transition is attempted."""


class StateMachine:
    """Simple in-memory state machine over enum values."""

    def __init__(self, transitions: dict[LeadStatus, set[LeadStatus]]) -> None:
        self._transitions = transitions

    def can_transition(self, current: LeadStatus, target: LeadStatus) -> bool:
        return target in self._transitions.get(current, set())

    def assert_transition(self, current: LeadStatus, target: LeadStatus) -> None:
        if not self.can_transition(current=current, target=target):
            raise InvalidTransitionError(f"Transition not allowed: {current.value} -> {target.value}")


LEAD_TRANSITIONS: dict[LeadStatus, set[LeadStatus]] = {
    LeadStatus.NEW: {
        LeadStatus.DIAGNOSING,
        LeadStatus.QUALIFIED,
        LeadStatus.BOOKED,
        LeadStatus.NURTURE,
        LeadStatus.CLOSED_LOST,
    },
    LeadStatus.DIAGNOSING: {LeadStatus.QUALIFIED, LeadStatus.BOOKED, LeadStatus.NURTURE, LeadStatus.CLOSED_LOST},
    LeadStatus.QUALIFIED: {LeadStatus.DIAGNOSING, LeadStatus.BOOKED, LeadStatus.NURTURE, LeadStatus.CLOSED_LOST},
    LeadStatus.BOOKED: {LeadStatus.QUALIFIED, LeadStatus.NURTURE, LeadStatus.CLOSED_LOST},
    LeadStatus.NURTURE: {LeadStatus.DIAGNOSING, LeadStatus.QUALIFIED, LeadStatus.BOOKED, LeadStatus.CLOSED_LOST},
    LeadStatus.CLOSED_LOST: {LeadStatus.DIAGNOSING, LeadStatus.NURTURE},
}

LEAD_STATE_MACHINE = StateMachine(LEAD_TRANSITIONS)
