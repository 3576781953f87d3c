"""
Capture session state machine.

The live session state is held by :class:`SessionModel`, a ``transitions``
model whose machine only knows the transitions listed in ``TRANSITIONS``.
Snapshots of it are immutable :class:`SessionState` values, and
:func:`transition` maps ``(state, event)`` to the next state or raises
:class:`~photobooth.errors.InvalidTransition`.

    UNAUTHORIZED --granted--> IDLE --configure--> CONFIGURING --committed--> IDLE
    IDLE --started--> RUNNING --stopped--> IDLE
    any authorized state --failed(reason)--> ERROR(reason)
    ERROR --configure--> CONFIGURING   (recovery through discovery/selection)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Optional

from transitions import Machine, MachineError

from ..errors import InvalidTransition


class SessionStatus(enum.Enum):
    UNAUTHORIZED = 'unauthorized'
    IDLE = 'idle'
    CONFIGURING = 'configuring'
    RUNNING = 'running'
    ERROR = 'error'


class SessionEventKind(enum.Enum):
    PERMISSION_GRANTED = 'permission_granted'
    PERMISSION_DENIED = 'permission_denied'
    CONFIGURE = 'configure'
    COMMITTED = 'committed'
    STARTED = 'started'
    STOPPED = 'stopped'
    FAILED = 'failed'


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus
    reason: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status is SessionStatus.ERROR

    def __str__(self) -> str:
        if self.reason:
            return f'{self.status.value}({self.reason})'
        return self.status.value


@dataclass(frozen=True)
class SessionEvent:
    kind: SessionEventKind
    reason: Optional[str] = None


UNAUTHORIZED = SessionState(SessionStatus.UNAUTHORIZED)
IDLE = SessionState(SessionStatus.IDLE)
CONFIGURING = SessionState(SessionStatus.CONFIGURING)
RUNNING = SessionState(SessionStatus.RUNNING)


def error(reason: str) -> SessionState:
    return SessionState(SessionStatus.ERROR, reason)


STATES = [
    SessionStatus.UNAUTHORIZED.value,
    SessionStatus.IDLE.value,
    SessionStatus.CONFIGURING.value,
    SessionStatus.RUNNING.value,
    {'name': SessionStatus.ERROR.value, 'on_exit': '_clear_reason'},
]

TRANSITIONS = [
    {'trigger': 'permission_granted', 'source': 'unauthorized', 'dest': 'idle'},
    {'trigger': 'permission_denied', 'source': 'unauthorized', 'dest': 'unauthorized'},
    {'trigger': 'configure', 'source': ['idle', 'running', 'error'], 'dest': 'configuring'},
    {'trigger': 'committed', 'source': 'configuring', 'dest': 'idle'},
    {'trigger': 'started', 'source': ['idle', 'running'], 'dest': 'running'},
    {'trigger': 'stopped', 'source': ['idle', 'running'], 'dest': 'idle'},
    # internal: stays in ERROR and keeps its reason
    {'trigger': 'stopped', 'source': 'error', 'dest': None},
    {'trigger': 'failed', 'source': ['idle', 'configuring', 'running', 'error'], 'dest': 'error',
     'after': '_set_reason'},
]

StateListener = Callable[[SessionState, SessionState], None]


class SessionModel:
    """Mutable session state driven by a ``transitions.Machine``.

    ``on_change(old, new)`` runs after every transition that changes the
    snapshot.
    """

    def __init__(self, initial: SessionState = UNAUTHORIZED, on_change: Optional[StateListener] = None) -> None:
        self.reason = initial.reason
        self._on_change = on_change
        self._previous = initial
        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial.status.value,
            auto_transitions=False,
            after_state_change='_state_changed',
        )

    @property
    def snapshot(self) -> SessionState:
        return SessionState(SessionStatus(self.state), self.reason)

    def fire(self, event: SessionEvent) -> SessionState:
        """Apply ``event`` and return the new snapshot."""
        kwargs = {}
        if event.kind is SessionEventKind.FAILED:
            kwargs['reason'] = event.reason or 'unknown error'
        try:
            self.trigger(event.kind.value, **kwargs)
        except MachineError as exc:
            raise InvalidTransition(f'No transition from {self.snapshot} on {event.kind.value}') from exc
        return self.snapshot

    # Machine callbacks; they receive the trigger's keyword arguments

    def _set_reason(self, reason: Optional[str] = None) -> None:
        self.reason = reason

    def _clear_reason(self, **kwargs) -> None:
        self.reason = None

    def _state_changed(self, **kwargs) -> None:
        old, new = self._previous, self.snapshot
        self._previous = new
        if new != old and self._on_change is not None:
            self._on_change(old, new)


def transition(state: SessionState, event: SessionEvent) -> SessionState:
    """Return the state that follows ``state`` when ``event`` occurs."""
    return SessionModel(state).fire(event)
