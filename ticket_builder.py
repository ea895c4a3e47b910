"""Ticket constructor — template selection, confidence and exacta/trifecta structures.

Templates:
    A  SOLID favorite + identified value horse → key the top pick
    B  VULNERABLE favorite                      → key horses 2-4 over the favorite
    C  WIDE_OPEN field                          → boxes
    PASS  SOLID favorite, no value horse

Usage:
    from signal_aggregator import aggregate_signals
    from ticket_builder import build_ticket_construction
    construction = build_ticket_construction(aggregate_signals(horses, detectors), detectors)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from signal_aggregator import (
    VULNERABLE,
    WIDE_OPEN,
    AggregatedSignal,
    DetectorResults,
    ValueHorse,
    VulnerableFavoriteVerdict,
    derive_race_type,
    determine_favorite_status,
    identify_value_horse,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TEMPLATE_A = "A"
TEMPLATE_B = "B"
TEMPLATE_C = "C"
TEMPLATE_PASS = "PASS"

_CONFIDENCE_BY_STRENGTH = {
    "NONE": 25,
    "WEAK": 50,
    "MODERATE": 70,
    "STRONG": 85,
    "VERY_STRONG": 95,
}

# Lower bounds, checked top-down
CONFIDENCE_TIERS = [
    ("HIGH", 80),
    ("MEDIUM", 60),
    ("LOW", 40),
    ("MINIMAL", 0),
]

_EXACTA_BASE = 2.0
_TRIFECTA_BASE = 1.0


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExactaTicket:
    win_position: Tuple[int, ...] = ()
    place_position: Tuple[int, ...] = ()
    combinations: int = 0
    estimated_cost: float = 0.0


@dataclass(frozen=True)
class TrifectaTicket:
    win_position: Tuple[int, ...] = ()
    place_position: Tuple[int, ...] = ()
    show_position: Tuple[int, ...] = ()
    combinations: int = 0
    estimated_cost: float = 0.0


@dataclass(frozen=True)
class Verdict:
    action: str                 # BET / PASS
    summary: str


@dataclass(frozen=True)
class TicketConstruction:
    template: str
    template_reason: str
    favorite_status: str
    favorite_flags: Tuple[str, ...]
    race_type: str
    confidence_score: int
    confidence_tier: str
    value_horse: ValueHorse
    verdict: Verdict
    algorithm_top4: Tuple[int, ...]
    top_pick: Optional[int]
    exacta: ExactaTicket
    trifecta: TrifectaTicket


# ---------------------------------------------------------------------------
# Template / confidence
# ---------------------------------------------------------------------------

def select_template(
    race_type: str,
    favorite_status: str,
    vulnerable_verdict: Optional[VulnerableFavoriteVerdict] = None,
    value_horse: Optional[ValueHorse] = None,
) -> Tuple[str, str]:
    """Returns (template, reason)."""
    if race_type == WIDE_OPEN:
        return TEMPLATE_C, "Wide open field - box the top contenders"

    if favorite_status == VULNERABLE:
        reason = "Vulnerable favorite - key the next three over the favorite"
        if vulnerable_verdict is not None and vulnerable_verdict.reasons:
            reason += f" ({', '.join(vulnerable_verdict.reasons)})"
        return TEMPLATE_B, reason

    if value_horse is not None and value_horse.identified:
        return TEMPLATE_A, (
            f"Solid favorite with value horse #{value_horse.program_number} "
            f"({value_horse.signal_strength}) - key the top pick"
        )
    return TEMPLATE_PASS, "Solid favorite with no identified value horse - pass"


def calculate_confidence_score(value_horse: Optional[ValueHorse]) -> int:
    """Integer 0-100 driven only by the value horse's signal strength."""
    if value_horse is None or not value_horse.identified:
        return _CONFIDENCE_BY_STRENGTH["NONE"]
    return _CONFIDENCE_BY_STRENGTH.get(value_horse.signal_strength, _CONFIDENCE_BY_STRENGTH["NONE"])


def get_confidence_tier(score: int) -> str:
    for name, lower in CONFIDENCE_TIERS:
        if score >= lower:
            return name
    return "MINIMAL"


# ---------------------------------------------------------------------------
# Exotic structures
# ---------------------------------------------------------------------------

def calculate_exacta_combinations(win: Sequence[int], place: Sequence[int]) -> int:
    """Distinct (1st, 2nd) pairs; a horse cannot run 1-2 with itself."""
    return sum(1 for w in win for p in place if w != p)


def calculate_trifecta_combinations(win: Sequence[int], place: Sequence[int], show: Sequence[int]) -> int:
    return sum(
        1
        for w in win
        for p in place if p != w
        for s in show if s != w and s != p
    )


def build_exacta_ticket(template: str, ranked: Sequence[int]) -> ExactaTicket:
    """*ranked*: program numbers in algorithm order."""
    top4 = tuple(ranked[:4])
    if template == TEMPLATE_A:
        win, place = top4[:1], top4[1:4]
    elif template == TEMPLATE_B:
        win, place = top4[1:4], top4
    elif template == TEMPLATE_C:
        win, place = top4, top4
    else:
        return ExactaTicket()
    combos = calculate_exacta_combinations(win, place)
    return ExactaTicket(win, place, combos, combos * _EXACTA_BASE)


def build_trifecta_ticket(template: str, ranked: Sequence[int]) -> TrifectaTicket:
    top4, top5 = tuple(ranked[:4]), tuple(ranked[:5])
    if template == TEMPLATE_A:
        win, place, show = top4[:1], top4[1:4], top4[1:4]
    elif template == TEMPLATE_B:
        win, place, show = top4[1:4], top4, top4
    elif template == TEMPLATE_C:
        win, place, show = top5, top5, top5
    else:
        return TrifectaTicket()
    combos = calculate_trifecta_combinations(win, place, show)
    return TrifectaTicket(win, place, show, combos, combos * _TRIFECTA_BASE)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def _verdict_summary(template: str, favorite: Optional[AggregatedSignal], value_horse: ValueHorse, reason: str) -> str:
    fav = f"#{favorite.program_number}" if favorite else "n/a"
    if template == TEMPLATE_PASS:
        return f"PASS - favorite {fav} solid, no value edge"
    vh = ""
    if value_horse.identified:
        vh = f"; value horse #{value_horse.program_number} ({value_horse.signal_strength})"
    return f"BET - Template {template}: {reason}{vh}"


def build_ticket_construction(
    signals: Sequence[AggregatedSignal], detectors: Optional[DetectorResults] = None,
) -> TicketConstruction:
    """Race-level recommendation from aggregated signals and raw verdicts."""
    detectors = detectors or DetectorResults()
    ranked = sorted(signals, key=lambda s: (s.algorithm_rank, s.program_number))
    program_order: List[int] = [s.program_number for s in ranked]
    favorite = ranked[0] if ranked else None

    status, flags = determine_favorite_status(detectors.vulnerable_favorite, ranked)
    race_type = derive_race_type(detectors.field_spread, ranked)
    value_horse = identify_value_horse(ranked, detectors, status)
    template, reason = select_template(race_type, status, detectors.vulnerable_favorite, value_horse)
    score = calculate_confidence_score(value_horse)

    action = "PASS" if template == TEMPLATE_PASS else "BET"
    logger.debug(f"ticket construction: template={template} status={status} race_type={race_type} confidence={score}")

    return TicketConstruction(
        template=template,
        template_reason=reason,
        favorite_status=status,
        favorite_flags=tuple(flags),
        race_type=race_type,
        confidence_score=score,
        confidence_tier=get_confidence_tier(score),
        value_horse=value_horse,
        verdict=Verdict(action, _verdict_summary(template, favorite, value_horse, reason)),
        algorithm_top4=tuple(program_order[:4]),
        top_pick=favorite.program_number if favorite else None,
        exacta=build_exacta_ticket(template, program_order),
        trifecta=build_trifecta_ticket(template, program_order),
    )
