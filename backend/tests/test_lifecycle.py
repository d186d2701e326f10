"""Structural and transition tests for the bundle lifecycle state machine."""

import pytest

from tmppki.lifecycle import InvalidTransitionError, PKIEvent, PKILifecycle, PKIState


class TestPKILifecycleStructure:
    """Structural tests for PKILifecycle."""

    def test_all_non_terminal_states_have_transitions(self):
        """Every non-terminal state must have at least one transition out."""
        non_terminal_states = set(PKIState) - {PKIState.CLEANED}

        covered_states = {state for state, _ in PKILifecycle.TRANSITIONS.keys()}

        for state in non_terminal_states:
            assert state in covered_states, f"Non-terminal state {state} has no transitions"

    def test_terminal_state_has_no_transitions(self):
        transitions_from_terminal = [
            (s, e) for s, e in PKILifecycle.TRANSITIONS.keys() if s == PKIState.CLEANED
        ]

        assert transitions_from_terminal == []

    def test_all_events_are_used(self):
        used_events = {event for _, event in PKILifecycle.TRANSITIONS.keys()}

        for event in PKIEvent:
            assert event in used_events, f"Event {event} is never used in transitions"


class TestPKILifecycleTransitions:
    """One test per transition table entry, plus rejected transitions."""

    def test_starts_unbuilt(self):
        assert PKILifecycle("b1").state is PKIState.UNBUILT

    def test_unbuilt_to_keys_generated(self):
        machine = PKILifecycle("b1")

        assert machine.transition(PKIEvent.KEYS_GENERATED) is PKIState.KEYS_GENERATED

    def test_keys_generated_to_materialized(self):
        machine = PKILifecycle("b1")
        machine.transition(PKIEvent.KEYS_GENERATED)

        assert machine.transition(PKIEvent.FILES_WRITTEN) is PKIState.MATERIALIZED

    def test_materialized_to_cleaned(self):
        machine = PKILifecycle("b1")
        machine.transition(PKIEvent.KEYS_GENERATED)
        machine.transition(PKIEvent.FILES_WRITTEN)

        assert machine.transition(PKIEvent.FILES_REMOVED) is PKIState.CLEANED

    def test_cannot_skip_materialization(self):
        machine = PKILifecycle("b1")
        machine.transition(PKIEvent.KEYS_GENERATED)

        assert machine.can_transition(PKIEvent.FILES_REMOVED) is False
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(PKIEvent.FILES_REMOVED)

        assert exc_info.value.current_state == "keys_generated"
        assert machine.state is PKIState.KEYS_GENERATED

    def test_cleaned_is_terminal(self):
        machine = PKILifecycle("b1")
        for event in (PKIEvent.KEYS_GENERATED, PKIEvent.FILES_WRITTEN, PKIEvent.FILES_REMOVED):
            machine.transition(event)

        for event in PKIEvent:
            with pytest.raises(InvalidTransitionError):
                machine.transition(event)
