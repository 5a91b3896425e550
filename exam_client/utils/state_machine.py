import logging
from enum import Enum
from typing import Dict, Set

logger = logging.getLogger(__name__)


class RuntimeState(Enum):
    LOADING = "loading"
    READY = "ready"
    OBSERVING = "observing"  # sender watching the receiver answer
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    REDIRECTED = "redirected"
    ERROR = "error"


class PairingState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    WAITING_PAIR = "waiting_pair"
    JOINING = "joining"
    PAIRED = "paired"
    STARTED = "started"
    ERROR = "error"


RUNTIME_TRANSITIONS: Dict[Enum, Set[Enum]] = {
    RuntimeState.LOADING: {
        RuntimeState.READY,
        RuntimeState.OBSERVING,
        RuntimeState.REDIRECTED,
        RuntimeState.ERROR,
    },
    RuntimeState.READY: {RuntimeState.SUBMITTING},
    RuntimeState.OBSERVING: {RuntimeState.REDIRECTED},
    # A failed submit goes back to READY with the error kept on the runtime
    RuntimeState.SUBMITTING: {RuntimeState.SUBMITTED, RuntimeState.READY},
    RuntimeState.SUBMITTED: {RuntimeState.REDIRECTED},
    RuntimeState.ERROR: {RuntimeState.LOADING},
}

INITIATOR_TRANSITIONS: Dict[Enum, Set[Enum]] = {
    PairingState.IDLE: {PairingState.STARTING},
    PairingState.STARTING: {
        PairingState.WAITING_PAIR,
        PairingState.STARTED,
        PairingState.ERROR,
    },
    PairingState.WAITING_PAIR: {PairingState.PAIRED, PairingState.ERROR},
    PairingState.PAIRED: {PairingState.ERROR},
    PairingState.ERROR: {PairingState.STARTING, PairingState.PAIRED},
}

JOINER_TRANSITIONS: Dict[Enum, Set[Enum]] = {
    PairingState.IDLE: {PairingState.JOINING, PairingState.ERROR},
    PairingState.JOINING: {
        PairingState.PAIRED,
        PairingState.STARTED,
        PairingState.ERROR,
    },
    PairingState.PAIRED: {PairingState.STARTED, PairingState.ERROR},
    PairingState.ERROR: {PairingState.JOINING, PairingState.ERROR},
}


class StateMachine:
    """Forward-only state machine over an explicit transition table"""

    def __init__(self, initial: Enum, transitions: Dict[Enum, Set[Enum]]):
        self.current_state = initial
        self._transitions = transitions

    def can_transition(self, target_state: Enum) -> bool:
        """Check if transition to target state is allowed"""
        allowed = self._transitions.get(self.current_state, set())
        return target_state in allowed

    def transition(self, target_state: Enum) -> bool:
        """Attempt to transition to target state"""
        if self.can_transition(target_state):
            logger.debug("%s -> %s", self.current_state.value, target_state.value)
            self.current_state = target_state
            return True
        logger.debug(
            "Ignored transition %s -> %s",
            self.current_state.value,
            target_state.value,
        )
        return False

    def get_state(self) -> Enum:
        """Get current state"""
        return self.current_state

    def is_in(self, *states: Enum) -> bool:
        return self.current_state in states


def runtime_machine() -> StateMachine:
    return StateMachine(RuntimeState.LOADING, RUNTIME_TRANSITIONS)


def initiator_machine() -> StateMachine:
    return StateMachine(PairingState.IDLE, INITIATOR_TRANSITIONS)


def joiner_machine() -> StateMachine:
    return StateMachine(PairingState.IDLE, JOINER_TRANSITIONS)
