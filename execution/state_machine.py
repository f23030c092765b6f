# PATH: execution/state_machine.py
"""
Dispatch lifecycle state machine.

DISPATCH STATE CONTRACT:
========================

States (DispatchState):
  PENDING     → approved, call not yet built
  SIGNED      → transaction built, gas estimated, signed
  SIMULATING  → private channel: bundle simulation against block N+1
  SIM_FAILED  → simulation reverted; nothing submitted (zero loss)
  SUBMITTED   → broadcast (standard) or bundle sent (private)
  CONFIRMED   → receipt status 1, or bundle accepted by the relay
  FAILED      → any failure before or after submission

Transitions:
  PENDING     → SIGNED | FAILED
  SIGNED      → SUBMITTED (standard) | SIMULATING (private) | FAILED
  SIMULATING  → SUBMITTED | SIM_FAILED | FAILED
  SUBMITTED   → CONFIRMED | FAILED

Whether anything was broadcast is derivable from the history: a FAILED
dispatch that never reached SUBMITTED spent no gas.
========================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from core.exceptions import ErrorCode, ExecutionError
from core.time import now_iso


class DispatchState(str, Enum):
    """Dispatch lifecycle states."""
    PENDING = "PENDING"
    SIGNED = "SIGNED"
    SIMULATING = "SIMULATING"
    SIM_FAILED = "SIM_FAILED"
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


VALID_TRANSITIONS: Dict[DispatchState, List[DispatchState]] = {
    DispatchState.PENDING: [DispatchState.SIGNED, DispatchState.FAILED],
    DispatchState.SIGNED: [DispatchState.SUBMITTED, DispatchState.SIMULATING, DispatchState.FAILED],
    DispatchState.SIMULATING: [DispatchState.SUBMITTED, DispatchState.SIM_FAILED, DispatchState.FAILED],
    DispatchState.SUBMITTED: [DispatchState.CONFIRMED, DispatchState.FAILED],
    DispatchState.SIM_FAILED: [],  # Terminal state
    DispatchState.CONFIRMED: [],  # Terminal state
    DispatchState.FAILED: [],  # Terminal state
}


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: DispatchState
    to_state: DispatchState
    timestamp: str = ""
    reason: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = now_iso()


class InvalidTransitionError(ExecutionError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, message: str):
        super().__init__(message=message, code=ErrorCode.EXEC_INVALID_TRANSITION)


@dataclass
class DispatchStateMachine:
    """Tracks one dispatch and its transition history."""
    trade_id: str
    state: DispatchState = DispatchState.PENDING
    history: List[StateTransition] = field(default_factory=list)

    def can_transition_to(self, new_state: DispatchState) -> bool:
        return new_state in VALID_TRANSITIONS.get(self.state, [])

    def transition_to(self, new_state: DispatchState, reason: str = "") -> StateTransition:
        """
        Move to new_state.

        Raises InvalidTransitionError if the transition is not allowed.
        """
        if not self.can_transition_to(new_state):
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.value} to {new_state.value}. "
                f"Valid transitions: {[s.value for s in VALID_TRANSITIONS.get(self.state, [])]}"
            )
        transition = StateTransition(from_state=self.state, to_state=new_state, reason=reason)
        self.history.append(transition)
        self.state = new_state
        return transition

    def fail(self, reason: str) -> Optional[StateTransition]:
        """Move to FAILED unless already terminal."""
        if self.is_terminal:
            return None
        return self.transition_to(DispatchState.FAILED, reason=reason)

    @property
    def is_terminal(self) -> bool:
        return len(VALID_TRANSITIONS.get(self.state, [])) == 0

    @property
    def was_submitted(self) -> bool:
        return any(t.to_state is DispatchState.SUBMITTED for t in self.history)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "state": self.state.value,
            "is_terminal": self.is_terminal,
            "was_submitted": self.was_submitted,
            "history": [
                {
                    "from_state": t.from_state.value,
                    "to_state": t.to_state.value,
                    "timestamp": t.timestamp,
                    "reason": t.reason,
                }
                for t in self.history
            ],
        }
