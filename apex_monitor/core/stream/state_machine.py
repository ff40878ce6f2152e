"""Stream session lifecycle state machine."""

from enum import Enum
from apex_monitor.core.logging import get_logger

_log = get_logger("stream.state")


class StreamState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


VALID_TRANSITIONS = {
    StreamState.IDLE: {StreamState.STARTING},
    # STARTING -> IDLE when the tail process cannot be launched
    StreamState.STARTING: {StreamState.RUNNING, StreamState.IDLE},
    # RUNNING -> IDLE when the tail process exits on its own
    StreamState.RUNNING: {StreamState.STOPPING, StreamState.IDLE},
    StreamState.STOPPING: {StreamState.IDLE},
}


class StreamTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


class StreamStateMachine:
    """Tracks idle/running for the single tail session."""

    def __init__(self, name: str = "tail"):
        self.name = name
        self._state = StreamState.IDLE

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return self._state is StreamState.IDLE

    def transition(self, new_state: StreamState) -> None:
        """Transition to a new state.

        Args:
            new_state: Target state

        Raises:
            StreamTransitionError: If transition is not valid
        """
        if new_state not in VALID_TRANSITIONS.get(self._state, set()):
            raise StreamTransitionError(
                f"Invalid: {self._state.value} -> {new_state.value}"
            )
        old = self._state
        self._state = new_state
        _log.debug(
            "Stream transition",
            stream=self.name,
            old=old.value,
            new=new_state.value,
        )
