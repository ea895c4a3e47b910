"""Kelly criterion staking.

Full Kelly is capped at FULL_KELLY_SAFETY_CAP (a bankroll-growth ceiling);
the *strategy* fraction (full / half / quarter / eighth) is applied on top
of that and is a separate knob.

Usage:
    from kelly_calculator import calculate_kelly
    result = calculate_kelly(0.25, 6.0, 500)   # 25% win prob at 5-1, $500 bankroll
    result.suggested_bet_size                  # 13
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FULL_KELLY_SAFETY_CAP = 0.25        # never stake more than 25% of bankroll on full Kelly

KELLY_FRACTION_MULTIPLIERS: Dict[str, float] = {
    "full": 1.0,
    "half": 0.5,
    "quarter": 0.25,
    "eighth": 0.125,
}
QUARTER_KELLY_MULTIPLIER = KELLY_FRACTION_MULTIPLIERS["quarter"]
DEFAULT_KELLY_FRACTION = "quarter"

MIN_BANKROLL = 10.0

# Probability/odds bounds used for the arithmetic only
_MIN_PROBABILITY = 0.001
_MAX_PROBABILITY = 0.999
_MIN_ODDS = 1.01


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class KellyInput:
    probability: float              # 0-1
    decimal_odds: float             # e.g. 6.0 for 5-1
    bankroll: float
    kelly_fraction: str = DEFAULT_KELLY_FRACTION


@dataclass(frozen=True)
class KellyOutput:
    full_kelly_fraction: float      # capped at FULL_KELLY_SAFETY_CAP
    quarter_kelly_fraction: float   # always full x 0.25
    fractional_kelly_fraction: float
    kelly_fraction_used: str
    suggested_bet_size: int
    expected_value: float           # per $1 staked
    expected_growth: float
    risk_of_ruin: float
    implied_probability: float
    edge_percent: float
    is_positive_ev: bool
    should_bet: bool
    reason: str


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive stakes (round() is banker's)."""
    return int(math.floor(value + 0.5))


def fraction_multiplier(kelly_fraction: str) -> float:
    if kelly_fraction not in KELLY_FRACTION_MULTIPLIERS:
        logger.warning(f"Unknown Kelly fraction {kelly_fraction!r}, using {DEFAULT_KELLY_FRACTION}")
        return KELLY_FRACTION_MULTIPLIERS[DEFAULT_KELLY_FRACTION]
    return KELLY_FRACTION_MULTIPLIERS[kelly_fraction]


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def expected_growth(probability: float, net_odds: float, fraction: float) -> float:
    """Expected log-growth per bet: p·ln(1+b·f) + q·ln(1−f)."""
    if fraction <= 0:
        return 0.0
    if fraction >= 1:
        return float("-inf")
    q = 1.0 - probability
    return probability * math.log(1.0 + net_odds * fraction) + q * math.log(1.0 - fraction)


def risk_of_ruin(probability: float, fraction: float) -> float:
    """Rough ruin estimate ((1−e)/(1+e))^(1/f) with e = 2p − 1."""
    edge = 2.0 * probability - 1.0
    if edge <= 0:
        return 1.0
    if fraction <= 0:
        return 0.0
    return min(1.0, ((1.0 - edge) / (1.0 + edge)) ** (1.0 / fraction))


# ---------------------------------------------------------------------------
# Core
# ---------------------------------------------------------------------------

def _kelly(
    probability: float, decimal_odds: float, bankroll: float,
    kelly_fraction: str, min_bankroll: float,
) -> KellyOutput:
    p = _clamp(probability, _MIN_PROBABILITY, _MAX_PROBABILITY) if math.isfinite(probability) else _MIN_PROBABILITY
    o = max(decimal_odds, _MIN_ODDS) if math.isfinite(decimal_odds) else _MIN_ODDS
    bankroll = bankroll if math.isfinite(bankroll) else 0.0

    b = o - 1.0
    q = 1.0 - p
    raw_full = (b * p - q) / b
    full = min(max(0.0, raw_full), FULL_KELLY_SAFETY_CAP)
    quarter = full * QUARTER_KELLY_MULTIPLIER
    multiplier = fraction_multiplier(kelly_fraction)
    if kelly_fraction not in KELLY_FRACTION_MULTIPLIERS:
        kelly_fraction = DEFAULT_KELLY_FRACTION     # fraction_multiplier already warned
    fractional = full * multiplier

    ev = p * o - 1.0
    implied = 1.0 / o
    edge_pct = (p - implied) / implied * 100.0
    positive = ev > 0

    if full <= 0:
        reason = f"No edge: EV {ev * 100:.1f}% at {o:.2f}"
        logger.debug(f"kelly: {reason}")
        return KellyOutput(
            full_kelly_fraction=0.0, quarter_kelly_fraction=0.0,
            fractional_kelly_fraction=0.0, kelly_fraction_used=kelly_fraction,
            suggested_bet_size=0, expected_value=ev, expected_growth=0.0,
            risk_of_ruin=risk_of_ruin(p, 0.0), implied_probability=implied,
            edge_percent=edge_pct, is_positive_ev=positive, should_bet=False,
            reason=reason,
        )

    growth = expected_growth(p, b, fractional)
    ruin = risk_of_ruin(p, fractional)

    if bankroll < min_bankroll:
        reason = f"Bankroll ${bankroll:.2f} below minimum ${min_bankroll:.0f}"
        logger.debug(f"kelly: {reason}")
        return KellyOutput(
            full_kelly_fraction=full, quarter_kelly_fraction=quarter,
            fractional_kelly_fraction=fractional, kelly_fraction_used=kelly_fraction,
            suggested_bet_size=0, expected_value=ev, expected_growth=growth,
            risk_of_ruin=ruin, implied_probability=implied, edge_percent=edge_pct,
            is_positive_ev=positive, should_bet=False, reason=reason,
        )

    size = round_half_up(bankroll * fractional)
    capped = raw_full > FULL_KELLY_SAFETY_CAP
    reason = f"{edge_pct:.1f}% edge, {kelly_fraction} Kelly {fractional * 100:.2f}% of bankroll"
    if capped:
        reason += f" (full Kelly capped at {FULL_KELLY_SAFETY_CAP:.0%})"

    return KellyOutput(
        full_kelly_fraction=full,
        quarter_kelly_fraction=quarter,
        fractional_kelly_fraction=fractional,
        kelly_fraction_used=kelly_fraction,
        suggested_bet_size=size,
        expected_value=ev,
        expected_growth=growth,
        risk_of_ruin=ruin,
        implied_probability=implied,
        edge_percent=edge_pct,
        is_positive_ev=positive,
        should_bet=size > 0,
        reason=reason if size > 0 else f"Stake rounds to $0 ({reason})",
    )


def calculate_kelly(
    probability: float, decimal_odds: float, bankroll: float,
    min_bankroll: float = MIN_BANKROLL,
) -> KellyOutput:
    """Quarter-Kelly stake for a win probability (0-1) at *decimal_odds*."""
    return _kelly(probability, decimal_odds, bankroll, DEFAULT_KELLY_FRACTION, min_bankroll)


def calculate_fractional_kelly(
    kelly_input: KellyInput, min_bankroll: float = MIN_BANKROLL,
) -> KellyOutput:
    """Like calculate_kelly, but stakes with *kelly_input.kelly_fraction*."""
    return _kelly(
        kelly_input.probability, kelly_input.decimal_odds, kelly_input.bankroll,
        kelly_input.kelly_fraction, min_bankroll,
    )


def validate_kelly_input(kelly_input: KellyInput) -> ValidationResult:
    errors: List[str] = []
    p, o, bankroll = kelly_input.probability, kelly_input.decimal_odds, kelly_input.bankroll

    if not isinstance(p, (int, float)) or not math.isfinite(p) or p <= 0 or p > 1:
        errors.append(f"probability must be in (0, 1], got {p}")
    if not isinstance(o, (int, float)) or not math.isfinite(o) or o <= 1:
        errors.append(f"decimal odds must be greater than 1, got {o}")
    if not isinstance(bankroll, (int, float)) or not math.isfinite(bankroll) or bankroll < 0:
        errors.append(f"bankroll must be non-negative, got {bankroll}")
    if kelly_input.kelly_fraction not in KELLY_FRACTION_MULTIPLIERS:
        errors.append(f"unknown Kelly fraction {kelly_input.kelly_fraction!r}")

    return ValidationResult(is_valid=not errors, errors=errors)


def format_kelly_result(output: KellyOutput) -> Dict[str, str]:
    """Display strings for a Kelly result."""
    return {
        "full_kelly": f"{output.full_kelly_fraction * 100:.2f}%",
        "quarter_kelly": f"{output.quarter_kelly_fraction * 100:.2f}%",
        "fraction_used": f"{output.kelly_fraction_used} ({output.fractional_kelly_fraction * 100:.2f}%)",
        "bet_size": f"${output.suggested_bet_size}",
        "expected_value": f"{'+' if output.expected_value >= 0 else ''}{output.expected_value * 100:.1f}%",
        "edge": f"{'+' if output.edge_percent >= 0 else ''}{output.edge_percent:.1f}%",
        "risk_of_ruin": f"{output.risk_of_ruin * 100:.1f}%",
        "status": "BET" if output.should_bet else "PASS",
    }
