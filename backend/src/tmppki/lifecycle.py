"""Lifecycle state machine for temporary PKI bundles.

States:
    UNBUILT: Nothing generated yet
    KEYS_GENERATED: Keys exist, certificates deferred, no files on disk
    MATERIALIZED: Every configured artifact written, bundle ready
    CLEANED: Every written artifact removed (terminal)

Transition Table:
    (UNBUILT, KEYS_GENERATED) -> KEYS_GENERATED
    (KEYS_GENERATED, MATERIALIZED) -> MATERIALIZED
    (MATERIALIZED, CLEANED) -> CLEANED
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum, StrEnum
from typing import Generic, TypeVar

from tmppki.errors import TmpPKIError
from tmppki.metrics import pki_metrics

logger = logging.getLogger(__name__)


class PKIState(StrEnum):
    """All possible states of a TemporaryPKI bundle."""

    UNBUILT = "unbuilt"
    KEYS_GENERATED = "keys_generated"
    MATERIALIZED = "materialized"
    CLEANED = "cleaned"  # Terminal state


class PKIEvent(StrEnum):
    """All events that move a bundle through its lifecycle."""

    KEYS_GENERATED = "keys_generated"
    FILES_WRITTEN = "files_written"
    FILES_REMOVED = "files_removed"


class InvalidTransitionError(TmpPKIError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, entity_id: str, current_state: str, event: str):
        self.entity_id = entity_id
        self.current_state = current_state
        self.event = event
        super().__init__(
            f"Invalid transition: {entity_id} in state {current_state} cannot handle event {event}"
        )


S = TypeVar("S", bound=Enum)
E = TypeVar("E", bound=Enum)


class StateMachine(ABC, Generic[S, E]):
    """Base class for state machines with explicit transition tables.

    Subclasses must define:
    - TRANSITIONS: dict mapping (State, Event) -> NewState
    - _get_state() / _set_state(): access to the entity's state
    - _get_entity_id(): identity for logging/metrics
    """

    TRANSITIONS: dict[tuple[S, E], S]

    @abstractmethod
    def _get_state(self) -> S:
        """Get current state."""
        ...

    @abstractmethod
    def _set_state(self, state: S) -> None:
        """Set state (internal use only)."""
        ...

    @abstractmethod
    def _get_entity_id(self) -> str:
        """Get entity ID for logging."""
        ...

    def transition(self, event: E) -> S:
        """Execute a state transition.

        Raises:
            InvalidTransitionError: If no transition defined for (state, event)
        """
        current_state = self._get_state()
        entity_id = self._get_entity_id()

        key = (current_state, event)
        if key not in self.TRANSITIONS:
            logger.warning(
                "invalid_transition_attempted",
                extra={
                    "entity_id": entity_id,
                    "current_state": current_state.value,
                    "event": event.value,
                },
            )
            raise InvalidTransitionError(entity_id, current_state.value, event.value)

        new_state = self.TRANSITIONS[key]
        self._set_state(new_state)

        logger.debug(
            "state_transition",
            extra={
                "entity_id": entity_id,
                "from_state": current_state.value,
                "to_state": new_state.value,
                "event": event.value,
            },
        )
        pki_metrics.record_state_transition(current_state.value, new_state.value, event.value)

        return new_state

    def can_transition(self, event: E) -> bool:
        """Check if a transition is valid without executing it."""
        return (self._get_state(), event) in self.TRANSITIONS


PKITransitions = dict[tuple[PKIState, PKIEvent], PKIState]


class PKILifecycle(StateMachine[PKIState, PKIEvent]):
    """Tracks one bundle's progress from key generation to cleanup."""

    TRANSITIONS: PKITransitions = {
        (PKIState.UNBUILT, PKIEvent.KEYS_GENERATED): PKIState.KEYS_GENERATED,
        (PKIState.KEYS_GENERATED, PKIEvent.FILES_WRITTEN): PKIState.MATERIALIZED,
        (PKIState.MATERIALIZED, PKIEvent.FILES_REMOVED): PKIState.CLEANED,
        # CLEANED is terminal - no transitions defined
    }

    def __init__(self, entity_id: str):
        self._entity_id = entity_id
        self._state = PKIState.UNBUILT

    @property
    def state(self) -> PKIState:
        return self._state

    def _get_state(self) -> PKIState:
        return self._state

    def _set_state(self, state: PKIState) -> None:
        self._state = state

    def _get_entity_id(self) -> str:
        return self._entity_id
