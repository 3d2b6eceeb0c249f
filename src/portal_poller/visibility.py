"""Visibility signal — is the consuming surface currently in front of the user.

One process-wide signal is shared by every poll controller. Each controller
registers and removes only its own listener.
"""
import logging
from typing import Callable

from . import config, debug

log = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class VisibilitySignal:
    """Boolean visibility state plus change notification."""

    def __init__(self, visible: bool = True, available: bool = True):
        self.available = available
        self._visible = visible
        self._listeners: list[Listener] = []

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> bool:
        """Remove one registration of ``listener``. Returns False if it was not registered."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def set_visible(self, visible: bool):
        visible = bool(visible)
        if visible == self._visible:
            return
        self._visible = visible
        # Snapshot: listeners may unregister themselves while being notified
        listeners = list(self._listeners)
        debug.log_visibility(visible, len(listeners))
        log.info(f"Visibility changed: {'visible' if visible else 'hidden'} ({len(listeners)} listeners)")
        for listener in listeners:
            try:
                listener(visible)
            except Exception as e:
                log.warning(f"Visibility listener {listener!r} failed: {e}")
                debug.log("ERROR", f"Visibility listener failed: {e}")


_signal: VisibilitySignal | None = None


def get_signal() -> VisibilitySignal:
    """Process-wide visibility signal, created on first use."""
    global _signal
    if _signal is None:
        _signal = VisibilitySignal(visible=True, available=config.VISIBILITY_AVAILABLE)
    return _signal


def reset_signal(signal: VisibilitySignal | None = None) -> VisibilitySignal:
    """Replace the process-wide signal, e.g. to isolate tests."""
    global _signal
    _signal = signal or VisibilitySignal(visible=True, available=config.VISIBILITY_AVAILABLE)
    return _signal
