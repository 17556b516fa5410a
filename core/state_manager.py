"""
Core Module - State Manager.

============================================================
RESPONSIBILITY
============================================================
Tracks the lifecycle state of the worker runtime.

- Tracks runtime state (init, starting, running, stopping, stopped)
- Manages state transitions with validation
- Keeps a bounded in-memory transition history
- Notifies listeners on state change

State is never persisted; a restarted process starts in INIT.

============================================================
STATE MACHINE
============================================================
    INIT -> STARTING -> RUNNING -> STOPPING -> STOPPED
                |                       ^
                +-----------------------+

A termination trigger may arrive while the start is still
pending, so STARTING may move straight to STOPPING.

============================================================
"""

from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
import logging

from .exceptions import StateTransitionError


# ============================================================
# LIFECYCLE STATE
# ============================================================

class LifecycleState(Enum):
    """Runtime lifecycle state enumeration."""

    INIT = "init"
    """Nothing started yet."""

    STARTING = "starting"
    """Application factory is running."""

    RUNNING = "running"
    """Workers started."""

    STOPPING = "stopping"
    """Teardown in progress."""

    STOPPED = "stopped"
    """Teardown finished."""

    @property
    def is_terminal(self) -> bool:
        """Check if state is terminal."""
        return self == LifecycleState.STOPPED

    @property
    def is_shutting_down(self) -> bool:
        """Check if teardown was triggered."""
        return self in (LifecycleState.STOPPING, LifecycleState.STOPPED)


# ============================================================
# STATE TRANSITIONS
# ============================================================

VALID_TRANSITIONS: Dict[LifecycleState, Set[LifecycleState]] = {
    LifecycleState.INIT: {
        LifecycleState.STARTING,
        LifecycleState.STOPPING,
    },
    LifecycleState.STARTING: {
        LifecycleState.RUNNING,
        LifecycleState.STOPPING,
    },
    LifecycleState.RUNNING: {
        LifecycleState.STOPPING,
    },
    LifecycleState.STOPPING: {
        LifecycleState.STOPPED,
    },
    LifecycleState.STOPPED: set(),
}


@dataclass
class StateTransition:
    """Record of a state transition."""

    transition_id: str
    from_state: LifecycleState
    to_state: LifecycleState
    reason: str
    triggered_by: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "transition_id": self.transition_id,
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "reason": self.reason,
            "triggered_by": self.triggered_by,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
        }


StateListener = Callable[[StateTransition], Awaitable[None]]


# ============================================================
# STATE MANAGER
# ============================================================

class StateManager:
    """
    Manages the runtime lifecycle state.

    Transitions are applied synchronously so that a signal
    callback and the task it schedules observe the same state.
    Listeners are awaited by ``notify`` callers.
    """

    def __init__(
        self,
        initial_state: LifecycleState = LifecycleState.INIT,
        max_history: int = 100,
    ):
        self._state = initial_state
        self._reason = "Process start"
        self._transition_count = 0
        self._history: List[StateTransition] = []
        self._max_history = max_history
        self._listeners: List[StateListener] = []
        self._logger = logging.getLogger(__name__)

    @property
    def state(self) -> LifecycleState:
        """Get current lifecycle state."""
        return self._state

    @property
    def reason(self) -> str:
        """Get reason for current state."""
        return self._reason

    @property
    def last_transition(self) -> Optional[StateTransition]:
        return self._history[-1] if self._history else None

    def get_history(self, limit: int = 10) -> List[StateTransition]:
        """Get transition history."""
        return self._history[-limit:]

    def can_transition_to(self, target_state: LifecycleState) -> bool:
        """Check if transition to target state is valid."""
        return target_state in VALID_TRANSITIONS.get(self._state, set())

    def transition_to(
        self,
        target_state: LifecycleState,
        reason: str,
        triggered_by: str = "runtime",
        context: Optional[Dict[str, Any]] = None,
    ) -> StateTransition:
        """
        Transition to a new state.

        Args:
            target_state: Target state
            reason: Reason for transition
            triggered_by: Who/what triggered the transition
            context: Additional context

        Returns:
            StateTransition record

        Raises:
            StateTransitionError: If transition is invalid
        """
        if not self.can_transition_to(target_state):
            raise StateTransitionError(
                message=f"Invalid state transition: {self._state.value} -> {target_state.value}",
                from_state=self._state.value,
                to_state=target_state.value,
                reason=reason,
            )

        self._transition_count += 1
        transition = StateTransition(
            transition_id=f"transition_{self._transition_count}",
            from_state=self._state,
            to_state=target_state,
            reason=reason,
            triggered_by=triggered_by,
            context=context or {},
        )

        old_state = self._state
        self._state = target_state
        self._reason = reason

        self._history.append(transition)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        self._logger.debug(
            f"State transition: {old_state.value} -> {target_state.value} "
            f"| reason={reason} | triggered_by={triggered_by}"
        )

        return transition

    def register_listener(self, listener: StateListener) -> None:
        """Register a state change listener."""
        self._listeners.append(listener)

    def unregister_listener(self, listener: StateListener) -> None:
        """Unregister a state change listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def notify(self, transition: StateTransition) -> None:
        """Notify all listeners of a state change."""
        for listener in self._listeners:
            try:
                await listener(transition)
            except Exception as e:
                self._logger.error(
                    f"State listener error: {e}",
                    exc_info=True,
                )


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "LifecycleState",
    "StateTransition",
    "StateListener",
    "StateManager",
    "VALID_TRANSITIONS",
]
