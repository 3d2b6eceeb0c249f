"""Change detectors — decide whether a freshly fetched payload differs from the last one.

All detectors share the signature ``(previous, current) -> bool`` and may raise;
the controller treats a raising detector as "changed".
"""
import json
from typing import Any, Callable

ChangeDetector = Callable[[Any, Any], bool]


def _serialize(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def json_changed(previous: Any, current: Any) -> bool:
    """Structural comparison through JSON serialization (the default)."""
    return _serialize(previous) != _serialize(current)


def identity_changed(previous: Any, current: Any) -> bool:
    """Cheap check for callers that hand over a new object only when data changes."""
    return previous is not current


def version_changed(key: str = "updated_at") -> ChangeDetector:
    """Compare a single version stamp field instead of the whole payload.

    Payloads without the field (or non-mapping payloads) fall back to
    ``json_changed``.
    """

    def _changed(previous: Any, current: Any) -> bool:
        if isinstance(previous, dict) and isinstance(current, dict) and key in previous and key in current:
            return previous[key] != current[key]
        return json_changed(previous, current)

    return _changed
