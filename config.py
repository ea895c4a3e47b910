"""Environment-driven defaults for the wagering engine.

Values come from the process environment, optionally seeded from a .env
file.  Only the orchestration layer uses these; the calculators take their
configuration as explicit arguments.

Usage:
    from config import configure_logging, load_bet_settings
    configure_logging()
    settings = load_bet_settings()
"""
from __future__ import annotations

import logging
import os
from typing import Optional

import dotenv

from bet_builder import BetSettings

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a number, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def configure_logging(level: Optional[str] = None) -> None:
    """basicConfig at WAGER_LOG_LEVEL (default INFO)."""
    dotenv.load_dotenv()
    name = (level or os.environ.get("WAGER_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO))


def load_bet_settings(env_file: Optional[str] = None) -> BetSettings:
    """BetSettings from WAGER_* environment variables (.env honoured)."""
    dotenv.load_dotenv(env_file)
    return BetSettings(
        bankroll=_env_float("WAGER_BANKROLL", 1000.0),
        risk_tolerance=os.environ.get("WAGER_RISK_TOLERANCE", "moderate"),
        max_total_exposure=_env_float("WAGER_MAX_TOTAL_EXPOSURE", 0.10),
        min_overlay_pct=_env_float("WAGER_MIN_OVERLAY_PCT", 10.0),
        score_model=os.environ.get("WAGER_SCORE_MODEL", "v1"),
        paper_mode=_env_bool("WAGER_PAPER_MODE", True),
    )
