# CUI // SP-PROPIN
# Controlled by: OppDesk Portal
# CUI Category: PROPIN
# Distribution: D
# POC: OppDesk System Administrator
"""Configuration loader for OppDesk.

Reads args/oppdesk_config.yaml (or the file named by OPPDESK_CONFIG_PATH)
and merges it over the in-code defaults below. Missing or unreadable
config files fall back to the defaults so every module can run without
a config on disk.

Environment:
    OPPDESK_DB_PATH       SQLite database path
    OPPDESK_CONFIG_PATH   YAML config override
    SAM_GOV_API_KEY       SAM.gov public API key (feed client)
    OPPDESK_API_KEY       optional X-Api-Key gate for /api/* routes
    LOG_LEVEL             logging level for the dashboard entry point
"""

import copy
import logging
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

logger = logging.getLogger("oppdesk.config")

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Load .env if present (development convenience; production uses real env vars)
_env_path = BASE_DIR / ".env"
if _env_path.exists():
    load_dotenv(_env_path, override=False)

DEFAULT_CONFIG_PATH = BASE_DIR / "args" / "oppdesk_config.yaml"
DEFAULT_DB_PATH = BASE_DIR / "data" / "oppdesk.db"

DEFAULT_SCORING = {
    "nsn_match_points": 50,
    "fsc_match_points": 20,
    "keyword_max_points": 20,
    "deadline_points": 10,
    "set_aside_points": 3,
    "near_term_days": 7,
    "high_relevance_threshold": 50,
}

DEFAULT_PRICING = {
    "default_lookback_days": 730,
    "max_records": 100,
}

DEFAULT_STATS = {
    "due_soon_days": 7,
    "recent_wins_days": 30,
    "query_timeout_seconds": 10,
}

DEFAULT_SAM_GOV = {
    "api_base": "https://api.sam.gov",
    "timeout_seconds": 30,
    "sync_days_back": 30,
    "ptype": "o",
    "page_limit": 50,
    "naics_codes": ["424690", "325998", "324191", "325199", "325180"],
    "product_keywords": [
        {"keyword": "chemical", "fsc": "6810"},
        {"keyword": "solvent", "fsc": "6810"},
        {"keyword": "acid", "fsc": "6810"},
        {"keyword": "reagent", "fsc": "6810"},
        {"keyword": "alcohol", "fsc": "6810"},
        {"keyword": "grease", "fsc": "9150"},
        {"keyword": "lubricant", "fsc": "9150"},
        {"keyword": "oil lubricating", "fsc": "9150"},
    ],
}

DEFAULT_DATABASE = {
    "timeout_seconds": 5.0,
}

DEFAULTS = {
    "scoring": DEFAULT_SCORING,
    "pricing": DEFAULT_PRICING,
    "stats": DEFAULT_STATS,
    "sam_gov": DEFAULT_SAM_GOV,
    "database": DEFAULT_DATABASE,
}


def _merge(default, override):
    if isinstance(default, dict) and isinstance(override, dict):
        merged = dict(default)
        for key, value in override.items():
            merged[key] = _merge(default.get(key), value)
        return merged
    return override if override is not None else default


def config_path():
    """Return the active YAML config path."""
    env_path = os.environ.get("OPPDESK_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def db_path():
    """Return the active SQLite database path."""
    return Path(os.environ.get("OPPDESK_DB_PATH", str(DEFAULT_DB_PATH)))


def _read_yaml(path):
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Config at %s unreadable, using defaults: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config at %s is not a mapping, using defaults", path)
        return {}
    return data


def load_config(path=None, overrides=None):
    """Load the merged configuration dict.

    Args:
        path: Optional YAML path; defaults to config_path().
        overrides: Optional dict merged last (used by tests and the app factory).

    Returns:
        dict with sections scoring, pricing, stats, sam_gov, database.
    """
    data = _read_yaml(Path(path) if path else config_path())
    merged = _merge(copy.deepcopy(DEFAULTS), data)
    if overrides:
        merged = _merge(merged, overrides)
    return merged


def sam_api_key():
    return os.environ.get("SAM_GOV_API_KEY", "").strip()
