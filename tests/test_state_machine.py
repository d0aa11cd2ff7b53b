import pytest

from busybot.services.state_machine import (
    InvalidTransitionError,
    ReplyState,
    can_transition,
    transition,
)


class TestValidTransitions:
    def test_received_to_stored(self):
        assert transition(ReplyState.RECEIVED, ReplyState.STORED) == ReplyState.STORED

    def test_stored_to_skipped(self):
        assert transition(ReplyState.STORED, ReplyState.SKIPPED) == ReplyState.SKIPPED

    def test_stored_to_replying(self):
        assert transition(ReplyState.STORED, ReplyState.REPLYING) == ReplyState.REPLYING

    def test_replying_to_sent(self):
        assert transition(ReplyState.REPLYING, ReplyState.SENT) == ReplyState.SENT

    def test_replying_to_send_failed(self):
        assert transition(ReplyState.REPLYING, ReplyState.SEND_FAILED) == ReplyState.SEND_FAILED


class TestInvalidTransitions:
    def test_cannot_skip_storing(self):
        with pytest.raises(InvalidTransitionError):
            transition(ReplyState.RECEIVED, ReplyState.REPLYING)

    def test_cannot_send_from_stored(self):
        with pytest.raises(InvalidTransitionError):
            transition(ReplyState.STORED, ReplyState.SENT)

    @pytest.mark.parametrize("terminal", [ReplyState.SKIPPED, ReplyState.SENT, ReplyState.SEND_FAILED])
    def test_terminal_states_are_final(self, terminal):
        for state in ReplyState:
            assert not can_transition(terminal, state)

    def test_error_message(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(ReplyState.SENT, ReplyState.REPLYING)
        assert "sent -> replying" in str(exc_info.value)
