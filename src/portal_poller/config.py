"""Configuration for portal-poller."""
from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv()  # loads .env from project root (or cwd) if present


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes")


# Paths
DATA_DIR = Path(os.environ.get("PORTAL_POLLER_DATA_DIR", Path.home() / ".portal-poller"))
LOG_DIR = DATA_DIR / "logs"

# Portal REST backend
API_BASE_URL = os.environ.get("PORTAL_POLLER_API_BASE_URL", "http://localhost:8000/api/")
API_TOKEN = os.environ.get("PORTAL_POLLER_API_TOKEN", "")
API_TIMEOUT = float(os.environ.get("PORTAL_POLLER_API_TIMEOUT", "30"))  # seconds

# Smart polling defaults (milliseconds)
INITIAL_INTERVAL_MS = int(os.environ.get("PORTAL_POLLER_INITIAL_INTERVAL_MS", "30000"))  # 30 seconds
MAX_INTERVAL_MS = int(os.environ.get("PORTAL_POLLER_MAX_INTERVAL_MS", "300000"))  # 5 minutes
BACKOFF_MULTIPLIER = float(os.environ.get("PORTAL_POLLER_BACKOFF_MULTIPLIER", "2"))
PAUSE_ON_HIDDEN = _flag("PORTAL_POLLER_PAUSE_ON_HIDDEN", "1")
USE_BACKOFF = _flag("PORTAL_POLLER_USE_BACKOFF", "1")
# Consecutive unchanged observations before the interval starts widening
BACKOFF_STREAK_THRESHOLD = 2

# Visibility signal; when unavailable, pause_on_hidden is forced off
VISIBILITY_AVAILABLE = _flag("PORTAL_POLLER_VISIBILITY_AVAILABLE", "1")

# Daemon
DAEMON_HOST = os.environ.get("PORTAL_POLLER_DAEMON_HOST", "127.0.0.1")
DAEMON_PORT = int(os.environ.get("PORTAL_POLLER_DAEMON_PORT", "18791"))

DEBUG = _flag("PORTAL_POLLER_DEBUG", "0")


def ensure_data_dir():
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
