"""Bet sizer — turns a Kelly result into a practical, capped, rounded stake.

Order of evaluation in size_bet():
    1. negative EV        → $0 (negative_ev)
    2. edge below minimum → $0 (below_edge)
    3. bankroll <= 0      → $0 (no_bankroll)
    4. raw = bankroll × full Kelly × fraction multiplier
    5. cap at max_bet_percent of bankroll   (max_percent)
    6. cap at max_bet_amount                (max_amount)
    7. floor at min_bet_amount              (min_amount)
    8. round to round_to_nearest

Usage:
    from bet_sizer import size_bet, DEFAULT_BET_SIZING
    sized = size_bet(kelly_output, bankroll=1000, config=DEFAULT_BET_SIZING)
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

from kelly_calculator import (
    KELLY_FRACTION_MULTIPLIERS,
    KellyOutput,
    ValidationResult,
    fraction_multiplier,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_MAX_TOTAL_EXPOSURE = 0.10   # fraction of bankroll across simultaneous bets

CAP_REASONS = ("max_percent", "max_amount", "min_amount", "negative_ev", "below_edge", "no_bankroll")


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BetSizingConfig:
    """Staking knobs applied on top of a Kelly result."""
    kelly_fraction: str = "quarter"     # full / half / quarter / eighth
    max_bet_percent: float = 2.0        # % of bankroll
    min_bet_amount: float = 2.0         # $
    max_bet_amount: float = 100.0       # $
    round_to_nearest: float = 1.0       # $ increment
    min_edge_percent: float = 2.0


DEFAULT_BET_SIZING = BetSizingConfig()
AGGRESSIVE_BET_SIZING = BetSizingConfig(
    kelly_fraction="half", max_bet_percent=5.0, min_bet_amount=5.0,
    max_bet_amount=250.0, round_to_nearest=5.0, min_edge_percent=5.0,
)
CONSERVATIVE_BET_SIZING = BetSizingConfig(
    kelly_fraction="eighth", max_bet_percent=1.0, min_bet_amount=2.0,
    max_bet_amount=50.0, round_to_nearest=1.0, min_edge_percent=3.0,
)

RISK_TOLERANCE_CONFIGS: Dict[str, BetSizingConfig] = {
    "conservative": CONSERVATIVE_BET_SIZING,
    "moderate": DEFAULT_BET_SIZING,
    "aggressive": AGGRESSIVE_BET_SIZING,
}


@dataclass(frozen=True)
class SizedBet:
    raw_kelly_bet: float
    capped_bet: float
    final_bet: float
    was_cap_applied: bool
    cap_reason: Optional[str]           # one of CAP_REASONS, or None
    kelly_fraction_used: str
    effective_bet_percent: float        # final bet as % of bankroll


@dataclass(frozen=True)
class AdjustedBet(SizedBet):
    """A SizedBet after the simultaneous-bet exposure pass."""
    original_bet: float
    reduction_percent: float
    bet_index: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def round_to_nearest(amount: float, increment: float) -> float:
    """Half-up rounding to *increment* ($1, $5 ...)."""
    if increment <= 0:
        return amount
    return math.floor(amount / increment + 0.5) * increment


def _percent_of(amount: float, bankroll: float) -> float:
    return amount / bankroll * 100.0 if bankroll > 0 else 0.0


def _no_bet(reason: str, fraction: str, raw: float = 0.0) -> SizedBet:
    return SizedBet(
        raw_kelly_bet=raw, capped_bet=0.0, final_bet=0.0, was_cap_applied=False,
        cap_reason=reason, kelly_fraction_used=fraction, effective_bet_percent=0.0,
    )


# ---------------------------------------------------------------------------
# Single bet
# ---------------------------------------------------------------------------

def size_bet(
    kelly: KellyOutput, bankroll: float, config: Optional[BetSizingConfig] = None,
) -> SizedBet:
    """Apply caps, floor and rounding to a Kelly result."""
    config = config or DEFAULT_BET_SIZING
    fraction = config.kelly_fraction if config.kelly_fraction in KELLY_FRACTION_MULTIPLIERS else "quarter"

    if not kelly.is_positive_ev:
        return _no_bet("negative_ev", fraction)
    if kelly.edge_percent < config.min_edge_percent:
        logger.debug(f"size_bet: edge {kelly.edge_percent:.1f}% below {config.min_edge_percent:.1f}%")
        return _no_bet("below_edge", fraction)

    if not bankroll > 0:
        return _no_bet("no_bankroll", fraction)

    raw = bankroll * kelly.full_kelly_fraction * fraction_multiplier(fraction)
    bet = raw
    cap_reason: Optional[str] = None

    max_by_percent = bankroll * config.max_bet_percent / 100.0
    if bet > max_by_percent:
        bet = max_by_percent
        cap_reason = "max_percent"

    if bet > config.max_bet_amount:
        bet = config.max_bet_amount
        cap_reason = "max_amount"

    if 0 < bet < config.min_bet_amount:
        if bankroll >= config.min_bet_amount:
            bet = config.min_bet_amount
        else:
            bet = 0.0
        cap_reason = "min_amount"

    capped = bet
    final = round_to_nearest(bet, config.round_to_nearest)

    return SizedBet(
        raw_kelly_bet=raw,
        capped_bet=capped,
        final_bet=final,
        was_cap_applied=cap_reason is not None,
        cap_reason=cap_reason,
        kelly_fraction_used=fraction,
        effective_bet_percent=_percent_of(final, bankroll),
    )


# ---------------------------------------------------------------------------
# Multiple simultaneous bets
# ---------------------------------------------------------------------------

def calculate_total_exposure(bets: Sequence[SizedBet]) -> float:
    return sum(b.final_bet for b in bets if b.final_bet > 0)


def calculate_exposure_percent(bets: Sequence[SizedBet], bankroll: float) -> float:
    return _percent_of(calculate_total_exposure(bets), bankroll)


def adjust_for_simultaneous_bets(
    bets: Sequence[SizedBet], bankroll: float,
    max_total_exposure: float = DEFAULT_MAX_TOTAL_EXPOSURE,
    config: Optional[BetSizingConfig] = None,
) -> List[AdjustedBet]:
    """Scale every active bet by one factor so the total fits the exposure cap.

    The whole list is rebalanced in one pass and new records are returned;
    the input is never modified.  Scaled stakes are floored to the config's
    rounding increment (whole dollars without a config) so the total cannot
    exceed bankroll × *max_total_exposure*; a stake that lands under the
    config's minimum bet is dropped to $0.
    """
    increment = config.round_to_nearest if config is not None and config.round_to_nearest > 0 else 1.0
    min_bet = config.min_bet_amount if config is not None else 0.0
    total = calculate_total_exposure(bets)
    allowed = max(0.0, bankroll) * max_total_exposure

    if total <= allowed:
        return [
            AdjustedBet(**_fields(b), original_bet=b.final_bet, reduction_percent=0.0, bet_index=i)
            for i, b in enumerate(bets)
        ]

    factor = allowed / total
    logger.debug(f"adjust_for_simultaneous_bets: total ${total:.2f} > ${allowed:.2f}, factor {factor:.3f}")

    adjusted: List[AdjustedBet] = []
    for i, b in enumerate(bets):
        if b.final_bet <= 0:
            adjusted.append(AdjustedBet(**_fields(b), original_bet=b.final_bet, reduction_percent=0.0, bet_index=i))
            continue
        new_final = float(math.floor(b.final_bet * allowed / total / increment) * increment)
        if new_final < min_bet:
            new_final = 0.0
        base = replace(b, final_bet=new_final, effective_bet_percent=_percent_of(new_final, bankroll))
        adjusted.append(AdjustedBet(
            **_fields(base),
            original_bet=b.final_bet,
            reduction_percent=(1.0 - new_final / b.final_bet) * 100.0,
            bet_index=i,
        ))
    return adjusted


def _fields(bet: SizedBet) -> dict:
    return {
        "raw_kelly_bet": bet.raw_kelly_bet,
        "capped_bet": bet.capped_bet,
        "final_bet": bet.final_bet,
        "was_cap_applied": bet.was_cap_applied,
        "cap_reason": bet.cap_reason,
        "kelly_fraction_used": bet.kelly_fraction_used,
        "effective_bet_percent": bet.effective_bet_percent,
    }


# ---------------------------------------------------------------------------
# Config helpers
# ---------------------------------------------------------------------------

def validate_bet_sizing_config(config: BetSizingConfig) -> ValidationResult:
    errors: List[str] = []
    if config.kelly_fraction not in KELLY_FRACTION_MULTIPLIERS:
        errors.append(f"unknown Kelly fraction {config.kelly_fraction!r}")
    if not 0 < config.max_bet_percent <= 100:
        errors.append("max_bet_percent must be in (0, 100]")
    if config.min_bet_amount < 0:
        errors.append("min_bet_amount must be non-negative")
    if config.max_bet_amount <= 0:
        errors.append("max_bet_amount must be positive")
    if config.min_bet_amount > config.max_bet_amount:
        errors.append("min_bet_amount cannot exceed max_bet_amount")
    if config.round_to_nearest <= 0:
        errors.append("round_to_nearest must be positive")
    if config.min_edge_percent < 0:
        errors.append("min_edge_percent must be non-negative")
    return ValidationResult(is_valid=not errors, errors=errors)


def get_recommended_config(bankroll: float) -> BetSizingConfig:
    """Bankroll-tiered defaults: small rolls bet smaller and tighter."""
    if bankroll < 100:
        return replace(CONSERVATIVE_BET_SIZING, max_bet_amount=max(2.0, math.floor(bankroll * 0.05)))
    if bankroll < 500:
        return replace(CONSERVATIVE_BET_SIZING, max_bet_amount=min(50.0, math.floor(bankroll * 0.10)))
    if bankroll < 2000:
        return DEFAULT_BET_SIZING
    return replace(DEFAULT_BET_SIZING, max_bet_amount=200.0, round_to_nearest=5.0)


def create_config_from_risk_tolerance(risk_tolerance: str) -> BetSizingConfig:
    if risk_tolerance not in RISK_TOLERANCE_CONFIGS:
        logger.warning(f"Unknown risk tolerance {risk_tolerance!r}, using moderate")
    return RISK_TOLERANCE_CONFIGS.get(risk_tolerance, DEFAULT_BET_SIZING)


def format_cap_reason(reason: Optional[str]) -> str:
    return {
        "max_percent": "Capped at max % of bankroll",
        "max_amount": "Capped at max bet amount",
        "min_amount": "Raised to minimum bet",
        "negative_ev": "No bet: negative expected value",
        "below_edge": "No bet: edge below minimum",
        "no_bankroll": "No bet: bankroll must be positive",
    }.get(reason or "", "")


def format_sized_bet(sized: SizedBet) -> Dict[str, str]:
    return {
        "bet": f"${sized.final_bet:.0f}",
        "raw_kelly": f"${sized.raw_kelly_bet:.2f}",
        "percent": f"{sized.effective_bet_percent:.2f}%",
        "fraction": sized.kelly_fraction_used,
        "note": format_cap_reason(sized.cap_reason),
    }
