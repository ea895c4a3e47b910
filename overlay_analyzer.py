"""Overlay / value analysis.

Converts an algorithm score into an estimated win probability, derives fair
odds, and compares them with the market to classify value and EV.

Usage:
    from overlay_analyzer import analyze_overlay, detect_value_plays
    analysis = analyze_overlay(score=180, odds="8-1")
    plays = detect_value_plays(horses, min_overlay_percent=10)
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from market_normalizer import decimal_to_american, decimal_to_fractional, parse_odds

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreProbabilityModel:
    """Linear score → win% mapping: (score / max_score) × scale, clamped."""
    max_score: float
    scale: float
    floor_pct: float
    ceiling_pct: float


SCORE_MODELS: Dict[str, ScoreProbabilityModel] = {
    "v1": ScoreProbabilityModel(max_score=323.0, scale=50.0, floor_pct=2.0, ceiling_pct=50.0),
}
DEFAULT_SCORE_MODEL = "v1"

MIN_FAIR_ODDS = 1.01        # heavy favorite floor
MAX_FAIR_ODDS = 100.0       # ~99-1 longshot ceiling

# Inclusive lower bounds, checked top-down; anything below "fair" is an underlay
VALUE_THRESHOLDS = [
    ("massive_overlay", 100.0),
    ("strong_overlay", 40.0),
    ("moderate_overlay", 20.0),
    ("slight_overlay", 10.0),
    ("fair_price", -20.0),
]
VALUE_CLASSES = [name for name, _ in VALUE_THRESHOLDS] + ["underlay"]

# Tier adjustment
UNDERLAY_PENALTY_THRESHOLD = 160    # base score at/above which underlays are not penalised
_OVERLAY_BONUSES = [                # (min overlay %, points, tier shift)
    (150.0, 30, 2),
    (80.0, 20, 1),
    (40.0, 10, 1),
    (15.0, 5, 0),
]
_UNDERLAY_PENALTIES = [             # (max overlay %, points, tier shift)
    (-30.0, -25, -2),
    (-15.0, -15, -1),
]
_DIAMOND_BASE_RANGE = (140, 170)
_DIAMOND_MIN_OVERLAY = 150.0
_FOOLS_GOLD_BASE_RANGE = (130, UNDERLAY_PENALTY_THRESHOLD)
_FOOLS_GOLD_MAX_OVERLAY = -30.0


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BettingRecommendation:
    action: str                     # bet_heavily / bet_standard / bet_small / pass / avoid
    reasoning: str
    suggested_multiplier: float
    urgency: str                    # immediate / standard / low / none


@dataclass(frozen=True)
class OverlayAnalysis:
    win_probability: float          # %, clamped to the model band
    fair_odds_decimal: float
    fair_odds_display: str
    fair_odds_moneyline: str
    actual_odds_decimal: float
    actual_odds_display: str
    overlay_percent: float
    value_class: str
    ev_per_dollar: float
    ev_percent: float
    is_positive_ev: bool
    overlay_description: str
    recommendation: BettingRecommendation


@dataclass(frozen=True)
class TierAdjustment:
    adjusted_score: float
    tier_shift: int
    is_special_case: bool
    special_case_type: Optional[str]    # diamond_in_rough / fools_gold
    reasoning: str


@dataclass(frozen=True)
class ValuePlay:
    program_number: int
    horse_name: str
    score: float
    current_odds: str
    odds_decimal: float
    overlay_percent: float
    value_class: str
    ev_per_dollar: float
    win_probability: float
    fair_odds_display: str
    recommendation: str


@dataclass
class ValuePlaysSummary:
    total_count: int = 0
    class_counts: Dict[str, int] = field(default_factory=dict)
    best_play: Optional[ValuePlay] = None
    total_positive_ev: float = 0.0


# ---------------------------------------------------------------------------
# Probability / odds
# ---------------------------------------------------------------------------

def _finite(x) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)


def get_score_model(version: str = DEFAULT_SCORE_MODEL) -> ScoreProbabilityModel:
    if version not in SCORE_MODELS:
        logger.warning(f"Unknown score model {version!r}, using {DEFAULT_SCORE_MODEL}")
        return SCORE_MODELS[DEFAULT_SCORE_MODEL]
    return SCORE_MODELS[version]


def score_to_win_probability(score: float, version: str = DEFAULT_SCORE_MODEL) -> float:
    """Estimated win probability in percent for an algorithm score."""
    model = get_score_model(version)
    if not _finite(score):
        return model.floor_pct
    pct = (score / model.max_score) * model.scale
    return max(model.floor_pct, min(model.ceiling_pct, pct))


def probability_to_decimal_odds(probability_pct: float) -> float:
    """Fair decimal odds for a win% (100/p), clamped to [1.01, 100]."""
    if not _finite(probability_pct) or probability_pct <= 0:
        return MAX_FAIR_ODDS
    if probability_pct >= 100:
        return MIN_FAIR_ODDS
    odds = round(100.0 / probability_pct, 2)
    return max(MIN_FAIR_ODDS, min(MAX_FAIR_ODDS, odds))


def calculate_overlay_percent(fair_odds: float, actual_odds: float) -> float:
    """How much more the market pays than fair, in % of fair odds."""
    if not _finite(fair_odds) or not _finite(actual_odds) or fair_odds <= 0:
        return 0.0
    return round((actual_odds - fair_odds) / fair_odds * 100.0, 1)


def classify_value(overlay_percent: float) -> str:
    if not _finite(overlay_percent):
        return "fair_price"
    for name, lower in VALUE_THRESHOLDS:
        if overlay_percent >= lower:
            return name
    return "underlay"


def calculate_ev(probability_pct: float, decimal_odds: float) -> float:
    """Expected profit per $1 staked: p·(odds−1) − (1−p)."""
    p = probability_pct / 100.0
    return p * (decimal_odds - 1.0) - (1.0 - p)


# ---------------------------------------------------------------------------
# Recommendations / descriptions
# ---------------------------------------------------------------------------

def generate_recommendation(value_class: str, overlay_percent: float, ev: float) -> BettingRecommendation:
    ev_txt = f"{ev * 100:+.1f}% EV"
    if value_class == "massive_overlay":
        return BettingRecommendation(
            "bet_heavily", f"Massive overlay of {overlay_percent:.0f}% ({ev_txt})",
            min(3.0, 1.0 + overlay_percent / 100.0), "immediate",
        )
    if value_class == "strong_overlay":
        return BettingRecommendation(
            "bet_standard", f"Strong overlay of {overlay_percent:.0f}% ({ev_txt})",
            1.0 + overlay_percent / 150.0, "standard",
        )
    if value_class == "moderate_overlay":
        return BettingRecommendation(
            "bet_standard", f"Moderate overlay of {overlay_percent:.0f}% ({ev_txt})", 1.0, "standard",
        )
    if value_class == "slight_overlay":
        return BettingRecommendation(
            "bet_small", f"Slight overlay of {overlay_percent:.0f}%, small stake only", 0.75, "low",
        )
    if value_class == "fair_price":
        return BettingRecommendation(
            "pass", "Priced about right, no edge", 0.5, "none",
        )
    return BettingRecommendation(
        "avoid", f"Underlay: market pays {abs(overlay_percent):.0f}% less than fair", 0.0, "none",
    )


def get_overlay_description(overlay_percent: float) -> str:
    if overlay_percent >= 100:
        return f"Pays {overlay_percent / 100 + 1:.1f}x fair value"
    if overlay_percent >= 10:
        return f"{overlay_percent:.0f}% above fair odds"
    if overlay_percent > -10:
        return "Close to fair odds"
    return f"{abs(overlay_percent):.0f}% below fair odds"


def format_overlay_percent(overlay_percent: float) -> str:
    if not _finite(overlay_percent):
        return "N/A"
    return f"{overlay_percent:+.1f}%"


def format_ev(ev: float) -> str:
    if not _finite(ev):
        return "N/A"
    sign = "+" if ev >= 0 else "-"
    return f"{sign}${abs(ev):.2f}"


def format_ev_percent(ev: float) -> str:
    if not _finite(ev):
        return "N/A"
    return f"{ev * 100:+.1f}%"


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def _to_decimal(odds: Union[str, float, None]) -> float:
    if isinstance(odds, (int, float)) and not isinstance(odds, bool):
        return float(odds) if math.isfinite(odds) and odds > 1.0 else parse_odds(None)
    return parse_odds(odds)


def analyze_overlay(
    score: float, odds: Union[str, float, None], version: str = DEFAULT_SCORE_MODEL,
) -> OverlayAnalysis:
    """Full overlay analysis for one horse.  *odds* is a tote string or decimal."""
    win_pct = score_to_win_probability(score, version)
    fair = probability_to_decimal_odds(win_pct)
    actual = _to_decimal(odds)
    overlay = calculate_overlay_percent(fair, actual)
    value_class = classify_value(overlay)
    ev = calculate_ev(win_pct, actual)

    return OverlayAnalysis(
        win_probability=win_pct,
        fair_odds_decimal=fair,
        fair_odds_display=decimal_to_fractional(fair),
        fair_odds_moneyline=decimal_to_american(fair),
        actual_odds_decimal=actual,
        actual_odds_display=decimal_to_fractional(actual),
        overlay_percent=overlay,
        value_class=value_class,
        ev_per_dollar=ev,
        ev_percent=ev * 100.0,
        is_positive_ev=ev > 0,
        overlay_description=get_overlay_description(overlay),
        recommendation=generate_recommendation(value_class, overlay, ev),
    )


def calculate_tier_adjustment(total_score: float, base_score: float, overlay_percent: float) -> TierAdjustment:
    """Display-score nudge from overlay.

    Big overlays earn a bonus.  Big underlays are penalised, but only when
    the base score is below UNDERLAY_PENALTY_THRESHOLD: a high-scoring
    favorite going off short is correctly priced, not a false favorite.
    """
    points, shift = 0, 0
    reasons: List[str] = []

    for min_overlay, bonus, tier in _OVERLAY_BONUSES:
        if overlay_percent >= min_overlay:
            points, shift = bonus, tier
            reasons.append(f"+{bonus} pts for {overlay_percent:.0f}% overlay")
            break

    if not points:
        for max_overlay, penalty, tier in _UNDERLAY_PENALTIES:
            if overlay_percent <= max_overlay:
                if base_score >= UNDERLAY_PENALTY_THRESHOLD:
                    reasons.append(
                        f"underlay penalty waived: base score {base_score:.0f} "
                        f">= {UNDERLAY_PENALTY_THRESHOLD}"
                    )
                else:
                    points, shift = penalty, tier
                    reasons.append(f"{penalty} pts for {overlay_percent:.0f}% underlay")
                break

    special: Optional[str] = None
    lo, hi = _DIAMOND_BASE_RANGE
    if lo <= base_score < hi and overlay_percent >= _DIAMOND_MIN_OVERLAY:
        special = "diamond_in_rough"
        reasons.append("diamond in the rough: modest base score, huge overlay")
    lo, hi = _FOOLS_GOLD_BASE_RANGE
    if lo <= base_score < hi and overlay_percent <= _FOOLS_GOLD_MAX_OVERLAY:
        special = "fools_gold"
        reasons.append("fool's gold: overbet relative to a mid-range base score")

    return TierAdjustment(
        adjusted_score=max(0.0, total_score + points),
        tier_shift=shift,
        is_special_case=special is not None,
        special_case_type=special,
        reasoning="; ".join(reasons) if reasons else "no overlay adjustment",
    )


# ---------------------------------------------------------------------------
# Value plays
# ---------------------------------------------------------------------------

def detect_value_plays(
    horses: List[Dict[str, Any]],
    min_overlay_percent: float = 10.0,
    version: str = DEFAULT_SCORE_MODEL,
) -> List[ValuePlay]:
    """Non-scratched horses whose overlay clears *min_overlay_percent*.

    *horses*: dicts with program_number, horse_name, score, odds, is_scratched.
    Sorted by overlay descending (program number breaks ties).
    """
    plays: List[ValuePlay] = []
    for h in horses:
        if h.get("is_scratched", False):
            continue
        odds_raw = h.get("odds")
        analysis = analyze_overlay(h.get("score", 0), odds_raw, version)
        if analysis.overlay_percent < min_overlay_percent:
            continue
        plays.append(ValuePlay(
            program_number=h.get("program_number", 0),
            horse_name=h.get("horse_name") or h.get("name") or "?",
            score=h.get("score", 0),
            current_odds="" if odds_raw is None else str(odds_raw),
            odds_decimal=analysis.actual_odds_decimal,
            overlay_percent=analysis.overlay_percent,
            value_class=analysis.value_class,
            ev_per_dollar=analysis.ev_per_dollar,
            win_probability=analysis.win_probability,
            fair_odds_display=analysis.fair_odds_display,
            recommendation=analysis.recommendation.action,
        ))

    plays.sort(key=lambda p: (-p.overlay_percent, p.program_number))
    return plays


def get_value_plays_summary(plays: List[ValuePlay]) -> ValuePlaysSummary:
    counts = {vc: 0 for vc in VALUE_CLASSES}
    for p in plays:
        counts[p.value_class] = counts.get(p.value_class, 0) + 1

    best = max(plays, key=lambda p: (p.overlay_percent, -p.program_number)) if plays else None
    total_ev = sum(p.ev_per_dollar for p in plays if p.ev_per_dollar > 0)

    return ValuePlaysSummary(
        total_count=len(plays),
        class_counts=counts,
        best_play=best,
        total_positive_ev=round(total_ev, 2),
    )
