"""Adaptive polling — backs off while data is static, pauses while hidden.

Two consecutive unchanged observations are required before the interval
starts widening; any change snaps it straight back to the initial value.
Visibility only gates the recommendation, so backoff bookkeeping keeps
running while paused and resumes exactly where it left off.
"""
import logging
import math
from typing import Any

from .. import config, debug
from ..visibility import VisibilitySignal, get_signal
from .policy import PollPolicy

log = logging.getLogger(__name__)

# Recommendation while polling is paused (hidden surface or disposed controller)
PAUSED = None


class PollController:
    """Computes the refetch interval for one periodic fetch."""

    def __init__(self, policy: PollPolicy = None, visibility: VisibilitySignal = None, name: str = None):
        self.policy = (policy or PollPolicy()).validate()
        self.name = name or "poll"
        self._signal = visibility or get_signal()
        self.current_interval_ms: int = self.policy.initial_interval_ms
        self.unchanged_streak = 0
        self.last_observed: Any = None
        self.disposed = False
        self._listening = False

        if self.policy.pause_on_hidden and not self._signal.available:
            log.info(f"{self.name}: visibility signal unavailable, pause_on_hidden disabled")
            self.policy = self.policy.with_overrides(pause_on_hidden=False)

        self.is_visible = self._signal.visible if self.policy.pause_on_hidden else True
        if self.policy.pause_on_hidden:
            self._signal.add_listener(self._on_visibility_change)
            self._listening = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()

    def _on_visibility_change(self, visible: bool):
        self.is_visible = visible
        debug.log_poll_event(self.name, "RESUMED" if visible else "PAUSED", f"interval={self.current_interval_ms}ms")

    @property
    def is_polling_active(self) -> bool:
        return not self.disposed and self.is_visible

    def recommended_interval(self) -> int | None:
        """Interval in ms for the next fetch, or ``PAUSED``."""
        if self.disposed:
            return PAUSED
        if self.policy.pause_on_hidden and not self.is_visible:
            return PAUSED
        return self.current_interval_ms

    def on_data_observed(self, payload: Any):
        """Feed a freshly fetched payload into the backoff state."""
        if self.disposed or not self.policy.use_backoff:
            return

        try:
            changed = bool(self.policy.has_changed(self.last_observed, payload))
        except Exception as e:
            # Broken comparator must never pin the interval at max
            log.debug(f"{self.name}: change detector failed, treating as changed: {e}")
            changed = True

        if changed:
            self.unchanged_streak = 0
            self.current_interval_ms = self.policy.initial_interval_ms
        else:
            self.unchanged_streak += 1
            if self.unchanged_streak >= config.BACKOFF_STREAK_THRESHOLD:
                # Round up so a multiplier near 1 still widens an integer interval
                widened = math.ceil(self.current_interval_ms * self.policy.backoff_multiplier)
                widened = max(widened, self.current_interval_ms + 1)
                self.current_interval_ms = min(widened, self.policy.max_interval_ms)

        self.last_observed = payload
        debug.log_interval(self.name, changed, self.current_interval_ms, self.unchanged_streak)

    def reset_interval(self):
        """Drop backoff state, e.g. after a manual refresh or filter change."""
        if self.disposed:
            return
        self.unchanged_streak = 0
        self.current_interval_ms = self.policy.initial_interval_ms

    def dispose(self):
        """Release the visibility listener. Safe to call repeatedly."""
        if self.disposed:
            return
        self.disposed = True
        if self._listening:
            self._listening = False
            try:
                self._signal.remove_listener(self._on_visibility_change)
            except Exception as e:
                log.warning(f"{self.name}: failed to remove visibility listener: {e}")

    def snapshot(self) -> dict:
        return {
            "interval_ms": self.recommended_interval(),
            "current_interval_ms": self.current_interval_ms,
            "unchanged_streak": self.unchanged_streak,
            "visible": self.is_visible,
            "polling_active": self.is_polling_active,
            "disposed": self.disposed,
        }


def create(policy: PollPolicy = None, visibility: VisibilitySignal = None, name: str = None) -> PollController:
    return PollController(policy, visibility=visibility, name=name)


class PollingConfig:
    """Query-layer view of a controller: ``refetch_interval`` + ``on_data_received``."""

    def __init__(self, controller: PollController):
        self.controller = controller

    @property
    def refetch_interval(self) -> int | None:
        return self.controller.recommended_interval()

    def on_data_received(self, payload: Any):
        self.controller.on_data_observed(payload)

    def dispose(self):
        self.controller.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()


def polling_config(policy: PollPolicy = None, visibility: VisibilitySignal = None) -> PollingConfig:
    return PollingConfig(create(policy, visibility=visibility))


class VisibilityAwareInterval:
    """Fixed interval that only pauses while hidden, no backoff."""

    def __init__(self, interval_ms: int = config.INITIAL_INTERVAL_MS, visibility: VisibilitySignal = None):
        self._controller = create(
            PollPolicy(
                initial_interval_ms=interval_ms,
                max_interval_ms=interval_ms,
                pause_on_hidden=True,
                use_backoff=False,
            ),
            visibility=visibility,
        )

    @property
    def interval(self) -> int | None:
        return self._controller.recommended_interval()

    def dispose(self):
        self._controller.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
