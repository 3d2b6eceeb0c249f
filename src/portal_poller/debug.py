"""Rich debug logging with color-coded categories.

Enable: set PORTAL_POLLER_DEBUG=1 or pass --debug to the daemon.
Logs to both stderr (colored) and a rolling log file.

Categories & colors:
  🟦 BLUE    — daemon lifecycle, config, startup
  🟨 YELLOW  — poll decisions (intervals, backoff, resets)
  🟩 GREEN   — portal API fetches (requests + results)
  🟪 PURPLE  — visibility signal changes
  🟥 RED     — errors and warnings
  🟧 ORANGE  — HTTP requests to the daemon
"""
import json
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from . import config

# ANSI color codes
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"

COLORS = {
    "DAEMON":     "\033[34m",       # Blue
    "POLL":       "\033[33m",       # Yellow
    "FETCH":      "\033[32m",       # Green
    "VISIBILITY": "\033[35m",       # Purple/Magenta
    "ERROR":      "\033[31m",       # Red
    "HTTP":       "\033[38;5;208m", # Orange (256-color)
}

# Emoji prefixes for file logs (no ANSI)
EMOJI = {
    "DAEMON":     "🟦",
    "POLL":       "🟨",
    "FETCH":      "🟩",
    "VISIBILITY": "🟪",
    "ERROR":      "🟥",
    "HTTP":       "🟧",
}

MAX_LOG_BYTES = 10 * 1024 * 1024

_debug_enabled = False
_log_file = None
_log_path = None


def is_enabled() -> bool:
    return _debug_enabled


def init(enabled: bool = None, log_dir: Path = None):
    """Initialize debug logging. Call once at daemon startup."""
    global _debug_enabled, _log_file, _log_path

    if enabled is None:
        enabled = os.environ.get("PORTAL_POLLER_DEBUG", "0") in ("1", "true", "yes")

    _debug_enabled = enabled

    if not enabled:
        return

    log_dir = log_dir or config.LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    _log_path = log_dir / "debug.log"

    if _log_path.exists() and _log_path.stat().st_size > MAX_LOG_BYTES:
        rotated = log_dir / f"debug.{int(time.time())}.log"
        _log_path.rename(rotated)

    _log_file = open(_log_path, "a", buffering=1, encoding="utf-8")  # line-buffered

    log("DAEMON", f"Debug logging enabled. Log file: {_log_path}")
    log("DAEMON", f"Tail with: tail -f {_log_path}")


def log(category: str, message: str, data: dict = None):
    """Log a debug message with category color coding."""
    if not _debug_enabled:
        return

    ts = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
    cat = category.upper()

    # Terminal (colored)
    color = COLORS.get(cat, RESET)
    prefix = f"{DIM}{ts}{RESET} {color}{BOLD}[{cat:10s}]{RESET} {color}"
    line = f"{prefix}{message}{RESET}"
    if data:
        data_str = json.dumps(data, indent=2, default=str)
        indented = "\n".join(f"  {color}{l}{RESET}" for l in data_str.split("\n"))
        line += f"\n{indented}"
    print(line, file=sys.stderr, flush=True)

    # File (emoji, no ANSI)
    emoji = EMOJI.get(cat, "  ")
    file_line = f"{ts} {emoji} [{cat:10s}] {message}"
    if data:
        file_line += f"\n{json.dumps(data, indent=2, default=str)}"
    if _log_file:
        _log_file.write(file_line + "\n")


def log_poll_event(poll_id: str, event: str, detail: str = ""):
    """Log a poll engine / controller event."""
    log("POLL", f"[{poll_id}] {event}" + (f" — {detail}" if detail else ""))


def log_interval(poll_id: str, changed: bool, interval_ms: int, streak: int):
    """Log the interval decision after an observation."""
    if changed:
        log("POLL", f"[{poll_id}] Data CHANGED → interval reset to {interval_ms}ms")
    else:
        log("POLL", f"[{poll_id}] Data unchanged (streak={streak}) → interval {interval_ms}ms")


def log_fetch(path: str, status: int, duration_ms: float, poll_id: str = None):
    """Log a portal API fetch."""
    tag = f"[{poll_id}] " if poll_id else ""
    log("FETCH", f"{tag}GET {path} → {status} ({duration_ms:.0f}ms)")


def log_visibility(visible: bool, listeners: int):
    """Log a visibility signal transition."""
    state = "VISIBLE" if visible else "HIDDEN"
    log("VISIBILITY", f"Signal → {state} (notifying {listeners} listener{'s' if listeners != 1 else ''})")


def log_http(method: str, path: str, status: int, duration_ms: float):
    """Log HTTP request to daemon."""
    log("HTTP", f"{method} {path} → {status} ({duration_ms:.0f}ms)")


def close():
    """Flush and close log file."""
    global _log_file
    if _log_file:
        _log_file.close()
        _log_file = None
