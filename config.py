"""
Agency Engine v1.0: Settings
Paths, ports and timeouts. Every value can be overridden from the
environment so the same tree runs under tests, the launcher and the
MCP bridge.
"""

import os

ENGINE_DIR = os.path.dirname(os.path.abspath(__file__))

DATA_DIR = os.environ.get("AGENCY_DATA_DIR", os.path.join(ENGINE_DIR, "data"))
SCENARIOS_DIR = os.environ.get("AGENCY_SCENARIOS_DIR",
                               os.path.join(DATA_DIR, "scenarios"))
DB_PATH = os.environ.get("AGENCY_DB_PATH", os.path.join(DATA_DIR, "agency.db"))

HOST = os.environ.get("AGENCY_HOST", "0.0.0.0")
PORT = int(os.environ.get("AGENCY_PORT", "8000"))
LOG_LEVEL = os.environ.get("AGENCY_LOG_LEVEL", "info").lower()

# Seconds a request waits for its session lock before giving up
LOCK_TIMEOUT = float(os.environ.get("AGENCY_LOCK_TIMEOUT", "30"))
REDIS_URL = os.environ.get("AGENCY_REDIS_URL", "redis://localhost:6379/0")
# Cache calls slower than this are reported as misses
CACHE_TIMEOUT = float(os.environ.get("AGENCY_CACHE_TIMEOUT", "5"))

# Reject scenarios with scenes unreachable from the starting scene
STRICT_SCENARIOS = os.environ.get("AGENCY_STRICT_SCENARIOS", "").lower() in ("1", "true", "yes")

# ─────────────────────────────────────────────────────
# RULE CONSTANTS
# ─────────────────────────────────────────────────────

AGENT_CACHE_TTL = 60 * 60
SESSION_CACHE_TTL = 24 * 60 * 60
SAVE_VERSION = "1.0.0"
DEFAULT_DICE = 6
DEATH_PENALTY = 5
OUTCOME_BONUS = 3
