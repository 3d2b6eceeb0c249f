"""portal-poller — adaptive refresh for property-portal dashboards."""
from .poll.controller import PAUSED, PollController, create
from .poll.policy import PolicyError, PollPolicy
from .visibility import VisibilitySignal, get_signal

__all__ = [
    "PAUSED",
    "PolicyError",
    "PollController",
    "PollPolicy",
    "VisibilitySignal",
    "create",
    "get_signal",
]
