# config.py
"""
Runtime settings for the map board viewer.

Every value can be overridden with a MAPBOARD_* environment variable.
Invalid overrides fall back to the default instead of failing startup.
"""
import os
from typing import Optional


# -----------------------------
# Env parsing
# -----------------------------

def _env_str(key: str, default: Optional[str]) -> Optional[str]:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip()
    return v if v else default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return float(default)


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return int(default)


def _env_opt_positive_float(key: str) -> Optional[float]:
    v = os.getenv(key)
    if v is None or not v.strip():
        return None
    try:
        f = float(v)
    except ValueError:
        return None
    return f if f > 0.0 else None


# -----------------------------
# Data feeds
# -----------------------------
_SHEET_BASE = (
    "https://docs.google.com/spreadsheets/d/e/"
    "2PACX-1vQYg0r2RVnmUF1c3i5T4PxvKghTZ_s7oqJdNm69lWJAVzC6hfqmK8xpGwcOaMSTWbgMoC-_UavmdMK3/pub"
)

RECT_CSV_URL: str = _env_str("MAPBOARD_RECT_CSV_URL", _SHEET_BASE + "?gid=0&single=true&output=csv")
IMAGE_CSV_URL: str = _env_str("MAPBOARD_IMAGE_CSV_URL", _SHEET_BASE + "?gid=1925889595&single=true&output=csv")

HTTP_TIMEOUT_S: float = _env_float("MAPBOARD_HTTP_TIMEOUT", 15.0)
LOADER_WORKERS: int = max(1, _env_int("MAPBOARD_WORKERS", 4))
POLL_INTERVAL_MS: int = max(5, _env_int("MAPBOARD_POLL_MS", 30))

# -----------------------------
# View
# -----------------------------
ZOOM_FACTOR: float = _env_float("MAPBOARD_ZOOM_FACTOR", 1.1)
if ZOOM_FACTOR <= 1.0:
    ZOOM_FACTOR = 1.1

# None = unbounded zoom
MIN_SCALE: Optional[float] = _env_opt_positive_float("MAPBOARD_MIN_SCALE")
MAX_SCALE: Optional[float] = _env_opt_positive_float("MAPBOARD_MAX_SCALE")

WINDOW_GEOMETRY: str = _env_str("MAPBOARD_WINDOW_GEOMETRY", "1200x800")

# Largest on-screen side an image marker is resampled to
MAX_IMAGE_SIDE_PX: int = max(16, _env_int("MAPBOARD_MAX_IMAGE_PX", 4096))

# -----------------------------
# Logging
# -----------------------------
LOG_LEVEL: str = (_env_str("MAPBOARD_LOG_LEVEL", "INFO") or "INFO").upper()
LOG_FILE: Optional[str] = _env_str("MAPBOARD_LOG_FILE", None)
