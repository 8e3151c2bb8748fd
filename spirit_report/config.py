"""Environment-driven settings.

Priority: existing process env > spirit_report/.env > repo/.env
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

MODULE_DIR = Path(__file__).resolve().parent
REPO_ROOT = MODULE_DIR.parent
load_dotenv(dotenv_path=MODULE_DIR / ".env", override=False)
load_dotenv(dotenv_path=REPO_ROOT / ".env", override=False)


def _first_nonempty_env(*keys: str) -> Optional[str]:
    for key in keys:
        value = os.getenv(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


# ------------------------------------------------------------------------------
# Astrology placement / geocoding service
# ------------------------------------------------------------------------------
ASTROLOGY_API_KEY = _first_nonempty_env("ASTROLOGY_API_KEY", "FREE_ASTROLOGY_API_KEY", "FREE_ASTROLOGY_API_KEY2") or ""
ASTROLOGY_API_BASE = (os.getenv("ASTROLOGY_API_BASE", "") or "https://json.freeastrologyapi.com").rstrip("/")
ASTROLOGY_TIMEOUT_SEC = max(1.0, _env_float("ASTROLOGY_TIMEOUT_SEC", 30.0))
PLACEMENT_MAX_CONCURRENCY = _env_int("PLACEMENT_MAX_CONCURRENCY", 4)

# ------------------------------------------------------------------------------
# Narrative generation
# ------------------------------------------------------------------------------
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = _first_nonempty_env("OPENAI_BASE_URL", "OPENAI_API_BASE")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
NARRATIVE_TEMPERATURE = _env_float("NARRATIVE_TEMPERATURE", 0.7)
NARRATIVE_TOP_P = _env_float("NARRATIVE_TOP_P", 0.95)
NARRATIVE_MAX_TOKENS = _env_int("NARRATIVE_MAX_TOKENS", 1024)
NARRATIVE_MAX_CONCURRENCY = _env_int("NARRATIVE_MAX_CONCURRENCY", 2)

# ------------------------------------------------------------------------------
# Result cache
# ------------------------------------------------------------------------------
CACHE_MODE = (os.getenv("CACHE_MODE", "keyed").strip().lower() or "keyed")
CACHE_MAX_ITEMS = _env_int("CACHE_MAX_ITEMS", 512)
CACHE_TTL_SEC = _env_optional_int("CACHE_TTL_SEC")

# ------------------------------------------------------------------------------
# PDF output
# ------------------------------------------------------------------------------
PDF_LAYOUT_CONFIG = os.getenv("PDF_LAYOUT_CONFIG", "")
REPORT_FONT_PATH = os.getenv("REPORT_FONT_PATH", "")
REPORT_FONT_BOLD_PATH = os.getenv("REPORT_FONT_BOLD_PATH", "")

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
