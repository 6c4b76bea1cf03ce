"""Tests for the attempt-state union and its pure transitions."""

from __future__ import annotations

import pytest

from puzzle_rocket import attempt_state as states
from puzzle_rocket.errors import InvalidTransition
from puzzle_rocket.models import SetupState, TransitionState


class TestDerivedViews:

    @pytest.mark.parametrize("state, transition, setup, accepts", [
        (states.Idle(), TransitionState.STABLE, SetupState.PRE_SETUP, False),
        (states.Setup(), TransitionState.LOADING, SetupState.SETUP_IN_PROGRESS, False),
        (states.AwaitingUser(), TransitionState.STABLE, SetupState.SETUP_COMPLETE, True),
        (states.OpponentReplying(1), TransitionState.STABLE, SetupState.SETUP_COMPLETE, False),
        (states.Succeeded(), TransitionState.TRANSITIONING, SetupState.SETUP_COMPLETE, False),
        (states.Failed(0), TransitionState.RESETTING, SetupState.SETUP_COMPLETE, False),
        (states.Replaying(2), TransitionState.AUTO_SOLVING, SetupState.SETUP_COMPLETE, False),
        (states.Handoff(True), TransitionState.LOADING, SetupState.SETUP_COMPLETE, False),
    ])
    def test_table(self, state, transition, setup, accepts):
        assert states.transition_state(state) is transition
        assert states.setup_state(state) is setup
        assert states.accepts_input(state) is accepts

    def test_only_awaiting_user_accepts_input(self):
        accepting = [
            cls for cls in (
                states.Idle(), states.Setup(), states.AwaitingUser(),
                states.OpponentReplying(1), states.Succeeded(), states.Failed(),
                states.Replaying(), states.Handoff(False),
            ) if states.accepts_input(cls)
        ]
        assert accepting == [states.AwaitingUser()]

    def test_state_name(self):
        assert states.state_name(states.Replaying(3)) == "Replaying"


class TestTransitions:

    def test_happy_path(self):
        s = states.begin_setup(states.Idle())
        s = states.finish_setup(s)
        assert isinstance(s, states.AwaitingUser)
        s = states.accept_user_move(s, move_index=0, complete=False)
        assert s == states.OpponentReplying(reply_index=1)
        s = states.opponent_replied(s, complete=False)
        assert isinstance(s, states.AwaitingUser)
        s = states.accept_user_move(s, move_index=2, complete=True)
        assert isinstance(s, states.Succeeded)
        assert states.hand_off(s, solved=True) == states.Handoff(solved=True)

    def test_failure_path(self):
        s = states.reject_user_move(states.AwaitingUser())
        assert s == states.Failed(replay_index=0)
        s = states.start_replay(s)
        assert s == states.Replaying(replay_index=0)
        s = states.replay_step(states.replay_step(s))
        assert s == states.Replaying(replay_index=2)
        assert states.hand_off(s, solved=False) == states.Handoff(solved=False)

    def test_opponent_reply_can_finish(self):
        s = states.opponent_replied(states.OpponentReplying(1), complete=True)
        assert isinstance(s, states.Succeeded)

    def test_setup_allowed_from_any_state(self):
        for s in (states.Idle(), states.Replaying(1), states.Succeeded(), states.Handoff(True)):
            assert isinstance(states.begin_setup(s), states.Setup)

    def test_unload(self):
        assert states.unload(states.OpponentReplying(1)) == states.Idle()

    @pytest.mark.parametrize("transition, state", [
        (states.finish_setup, states.AwaitingUser()),
        (states.reject_user_move, states.OpponentReplying(1)),
        (states.start_replay, states.AwaitingUser()),
        (states.replay_step, states.Failed()),
    ])
    def test_wrong_source_state(self, transition, state):
        with pytest.raises(InvalidTransition):
            transition(state)

    def test_accept_requires_awaiting_user(self):
        with pytest.raises(InvalidTransition, match="Replaying"):
            states.accept_user_move(states.Replaying(0), move_index=0, complete=False)

    def test_hand_off_requires_finished_attempt(self):
        with pytest.raises(InvalidTransition):
            states.hand_off(states.AwaitingUser(), solved=True)

    def test_states_are_immutable(self):
        s = states.Replaying(1)
        with pytest.raises(AttributeError):
            s.replay_index = 5
