from enum import Enum


class ReplyState(str, Enum):
    """Lifecycle of one inbound message for one tenant."""

    RECEIVED = "received"
    STORED = "stored"
    SKIPPED = "skipped"
    REPLYING = "replying"
    SENT = "sent"
    SEND_FAILED = "send_failed"


class SkipReason(str, Enum):
    MEDIA = "media"
    DISABLED = "disabled"
    NO_REPLY_NEEDED = "no_reply_needed"
    EMERGENCY = "emergency"
    COOLDOWN = "cooldown"


VALID_TRANSITIONS = {
    ReplyState.RECEIVED: [ReplyState.STORED],
    ReplyState.STORED: [ReplyState.SKIPPED, ReplyState.REPLYING],
    ReplyState.REPLYING: [ReplyState.SENT, ReplyState.SEND_FAILED],
    ReplyState.SKIPPED: [],
    ReplyState.SENT: [],
    ReplyState.SEND_FAILED: [],
}



class InvalidTransitionError(Exception):
    def __init__(self, from_state: ReplyState, to_state: ReplyState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: ReplyState, to_state: ReplyState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: ReplyState, to_state: ReplyState) -> ReplyState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state
