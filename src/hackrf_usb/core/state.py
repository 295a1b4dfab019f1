"""
Shared device state machine.

One DeviceState value per physical device, held by a StateHandle that the
facade owns and hands to every component. Components move the state through
transition operations only.
"""

import logging
from enum import Enum, auto
from threading import RLock
from typing import Dict, FrozenSet

from .errors import InvalidStateTransitionError

logger = logging.getLogger(__name__)


class DeviceState(Enum):
    """Operating state of a HackRF session."""

    IDLE = auto()
    CONFIGURING = auto()  # initial setup sequence only
    STREAMING = auto()
    RECOVERING = auto()  # fast recovery from inside the stream loop
    CLOSING = auto()


LEGAL_TRANSITIONS: Dict[DeviceState, FrozenSet[DeviceState]] = {
    DeviceState.IDLE: frozenset(
        {DeviceState.CONFIGURING, DeviceState.STREAMING, DeviceState.CLOSING}
    ),
    DeviceState.CONFIGURING: frozenset({DeviceState.IDLE, DeviceState.CLOSING}),
    DeviceState.STREAMING: frozenset(
        {DeviceState.IDLE, DeviceState.RECOVERING, DeviceState.CLOSING}
    ),
    # RECOVERING -> IDLE covers a stream that dies or is stopped mid-recovery
    DeviceState.RECOVERING: frozenset(
        {DeviceState.STREAMING, DeviceState.IDLE, DeviceState.CLOSING}
    ),
    DeviceState.CLOSING: frozenset({DeviceState.IDLE}),
}


class StateHandle:
    """Thread-safe holder for the single DeviceState of a device."""

    def __init__(self, initial: DeviceState = DeviceState.IDLE):
        self._state = initial
        self._lock = RLock()

    @property
    def current(self) -> DeviceState:
        with self._lock:
            return self._state

    @property
    def is_streaming(self) -> bool:
        return self.current is DeviceState.STREAMING

    @property
    def is_recovering(self) -> bool:
        return self.current is DeviceState.RECOVERING

    @property
    def is_closing(self) -> bool:
        return self.current is DeviceState.CLOSING

    def can_transition(self, target: DeviceState) -> bool:
        """Check whether moving to target is legal from the current state."""
        with self._lock:
            return target is self._state or target in LEGAL_TRANSITIONS[self._state]

    def transition(self, target: DeviceState) -> DeviceState:
        """
        Move to target state.

        Args:
            target: State to enter

        Returns:
            The state that was left

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        with self._lock:
            previous = self._state
            if target is previous:
                return previous
            if target not in LEGAL_TRANSITIONS[previous]:
                raise InvalidStateTransitionError(
                    f"Illegal device state transition {previous.name} -> {target.name}"
                )
            self._state = target
            logger.debug(f"Device state {previous.name} -> {target.name}")
            return previous

    def leave(self, state: DeviceState) -> bool:
        """
        Return to IDLE if currently in the given state.

        Returns:
            True if the state was left, False if it was not current
        """
        with self._lock:
            if self._state is not state:
                return False
            self.transition(DeviceState.IDLE)
            return True

    def __repr__(self) -> str:
        return f"<StateHandle {self.current.name}>"
