"""Poll policy — validated settings for one adaptive poll controller."""
from dataclasses import dataclass, field, replace

from .. import config
from .compare import ChangeDetector, json_changed


class PolicyError(ValueError):
    """Raised when a poll policy violates its constraints."""


@dataclass(frozen=True)
class PollPolicy:
    initial_interval_ms: int = config.INITIAL_INTERVAL_MS
    max_interval_ms: int = config.MAX_INTERVAL_MS
    backoff_multiplier: float = config.BACKOFF_MULTIPLIER
    pause_on_hidden: bool = config.PAUSE_ON_HIDDEN
    use_backoff: bool = config.USE_BACKOFF
    has_changed: ChangeDetector = field(default=json_changed, compare=False)

    def validate(self) -> "PollPolicy":
        if isinstance(self.initial_interval_ms, bool) or not isinstance(self.initial_interval_ms, int):
            raise PolicyError(f"initial_interval_ms must be an integer, got {self.initial_interval_ms!r}")
        if isinstance(self.max_interval_ms, bool) or not isinstance(self.max_interval_ms, int):
            raise PolicyError(f"max_interval_ms must be an integer, got {self.max_interval_ms!r}")
        if self.initial_interval_ms <= 0:
            raise PolicyError(f"initial_interval_ms must be positive, got {self.initial_interval_ms}")
        if self.max_interval_ms < self.initial_interval_ms:
            raise PolicyError(
                f"max_interval_ms ({self.max_interval_ms}) must be >= initial_interval_ms ({self.initial_interval_ms})"
            )
        if self.use_backoff and not self.backoff_multiplier > 1:
            raise PolicyError(f"backoff_multiplier must be > 1 when backoff is enabled, got {self.backoff_multiplier}")
        if not callable(self.has_changed):
            raise PolicyError("has_changed must be callable")
        return self

    def with_overrides(self, **overrides) -> "PollPolicy":
        """Copy with the given fields replaced; ``None`` values keep the current setting."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


_TRUE = ("1", "true", "yes")
_FALSE = ("0", "false", "no")


def _parse_flag(key: str, value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise PolicyError(f"{key} must be true or false, got {value!r}")


def policy_from_args(args: dict, base: PollPolicy | None = None) -> PollPolicy:
    """Build a policy from loosely typed request/config values."""
    base = base or PollPolicy()
    overrides = {}
    try:
        for key in ("initial_interval_ms", "max_interval_ms"):
            if args.get(key) is not None:
                overrides[key] = int(args[key])
        if args.get("backoff_multiplier") is not None:
            overrides["backoff_multiplier"] = float(args["backoff_multiplier"])
    except (TypeError, ValueError) as e:
        raise PolicyError(f"Invalid policy value: {e}") from e
    for key in ("pause_on_hidden", "use_backoff"):
        if args.get(key) is not None:
            overrides[key] = _parse_flag(key, args[key])
    return base.with_overrides(**overrides).validate()
