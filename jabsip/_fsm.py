"""
Finite State Machine for the signaling session connection.

FSM Overview:
=============

  DISCONNECTED → CONNECTING → CONNECTED → DISCONNECTING → DISCONNECTED
                     ↓             ↓
                DISCONNECTED   DISCONNECTED   (connect failed / link dropped)

Exactly one machine exists per session. Transitions are only made by the
session's connection lifecycle; every effective change is reported to the
registered handlers so the session can fan it out as a notification.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, FrozenSet, List

from ._types import ConnectionState, InvalidStateTransition

TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.CONNECTED: frozenset(
        {ConnectionState.DISCONNECTING, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.DISCONNECTING: frozenset({ConnectionState.DISCONNECTED}),
}


@dataclass(frozen=True)
class Transition:
    """One recorded state change."""

    old_state: ConnectionState
    new_state: ConnectionState
    at: float = field(default_factory=time.time)


class ConnectionStateMachine:
    """
    Tracks the ConnectionState of a session.

    Example:
        >>> fsm = ConnectionStateMachine()
        >>> fsm.transition_to(ConnectionState.CONNECTING)
        True
        >>> fsm.transition_to(ConnectionState.CONNECTING)
        False
    """

    def __init__(self, history_size: int = 32) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._history: Deque[Transition] = deque(maxlen=history_size)
        self._handlers: List[Callable[[ConnectionState, ConnectionState], None]] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def history(self) -> List[Transition]:
        return list(self._history)

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def can_transition(self, new_state: ConnectionState) -> bool:
        return new_state in TRANSITIONS[self._state]

    def transition_to(self, new_state: ConnectionState) -> bool:
        """
        Transition to a new state.

        Args:
            new_state: The new state

        Returns:
            True if the state changed, False if already in ``new_state``

        Raises:
            InvalidStateTransition: If the change is not allowed
        """
        if new_state is self._state:
            return False

        if not self.can_transition(new_state):
            raise InvalidStateTransition(self._state, new_state)

        old_state = self._state
        self._state = new_state
        self._history.append(Transition(old_state, new_state))

        self._on_state_change(old_state, new_state)
        return True

    def on_state_change(
        self, handler: Callable[[ConnectionState, ConnectionState], None]
    ) -> None:
        """Register a handler called with ``(old_state, new_state)``."""
        self._handlers.append(handler)

    def _on_state_change(
        self, old_state: ConnectionState, new_state: ConnectionState
    ) -> None:
        for handler in self._handlers:
            handler(old_state, new_state)

    def __repr__(self) -> str:
        return f"<ConnectionStateMachine({self._state.name})>"
