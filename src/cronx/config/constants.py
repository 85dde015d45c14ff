"""Paths and default values used across the project."""

from pathlib import Path

# Base directory for all cronx data
CRONX_HOME = Path.home() / ".cronx"

CONFIG_FILE = CRONX_HOME / "config.json"
DATA_DIR = CRONX_HOME / "data"

# Store file names (relative to the data directory)
JOBS_FILENAME = "jobs.json"
TEMPLATES_FILENAME = "templates.json"
EXECUTION_LOG_FILENAME = "execution_log.jsonl"

# Server defaults
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# Scheduler defaults
DEFAULT_TIMEZONE = "UTC"
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 5.0
DEFAULT_HANDLE_GRACE_SECONDS = 0.2
DEFAULT_UNSCHEDULE_GRACE_SECONDS = 0.1
DEFAULT_MAX_BODY_CHARS = 10_000

# Job / template limits
MAX_RETRY_ATTEMPTS = 10
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 300

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD")
BODYLESS_METHODS = frozenset({"GET", "HEAD"})
