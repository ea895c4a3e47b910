"""Signal aggregator — folds independent detector verdicts into race-level judgments.

Detectors (trip trouble, pace scenario, vulnerable favorite, field spread,
class drop) are external; only their typed verdicts are consumed here.  A
missing verdict (None) is simply "no evidence".

The value-horse rule is asymmetric: against a VULNERABLE favorite any single
qualifying source is enough, against a SOLID favorite a horse needs two
converging sources or strength >= 50.  See _QUALIFIES.

Usage:
    from signal_aggregator import aggregate_signals, determine_favorite_status, identify_value_horse
    signals = aggregate_signals(horses, detectors)
    status, flags = determine_favorite_status(detectors.vulnerable_favorite, signals)
    value_horse = identify_value_horse(signals, detectors, status)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SOLID = "SOLID"
VULNERABLE = "VULNERABLE"

WIDE_OPEN = "WIDE_OPEN"
CHALK = "CHALK"
COMPETITIVE = "COMPETITIVE"

_FIELD_TYPE_TO_RACE_TYPE = {
    "WIDE_OPEN": WIDE_OPEN,
    "DOMINANT": CHALK,
    "SEPARATED": CHALK,
    "COMPETITIVE": COMPETITIVE,
    "MIXED": COMPETITIVE,
    "TIGHT": COMPETITIVE,
}
_CHALK_MIN_GAP = 20.0               # points between #1 and #2

# Value sources
TRIP_TROUBLE = "TRIP_TROUBLE"
PACE_ADVANTAGE = "PACE_ADVANTAGE"
VULNERABLE_FAVORITE = "VULNERABLE_FAVORITE"
CLASS_DROP = "CLASS_DROP"
MULTIPLE = "MULTIPLE"

_SOURCE_STRENGTH = {
    TRIP_TROUBLE: 30,
    PACE_ADVANTAGE: 35,
    VULNERABLE_FAVORITE: 40,        # rank-2 horse when the favorite is vulnerable
}
_CLASS_DROP_STRENGTH = {"MAJOR": 40, "MODERATE": 25}
_CONVERGENCE_BONUS = 10             # per source beyond the first
_MAX_STRENGTH = 100
_SOLID_MIN_STRENGTH = 50

# Signal strength buckets (lower bounds)
STRENGTH_BUCKETS = [
    ("VERY_STRONG", 80),
    ("STRONG", 60),
    ("MODERATE", 40),
    ("WEAK", 0),
]

# Evidence classes for the qualification table
EVIDENCE_NONE = "NONE"
EVIDENCE_SINGLE_WEAK = "SINGLE_WEAK"
EVIDENCE_SINGLE_STRONG = "SINGLE_STRONG"
EVIDENCE_CONVERGENT = "CONVERGENT"

_QUALIFIES: Dict[Tuple[str, str], bool] = {
    (SOLID, EVIDENCE_NONE): False,
    (SOLID, EVIDENCE_SINGLE_WEAK): False,
    (SOLID, EVIDENCE_SINGLE_STRONG): True,
    (SOLID, EVIDENCE_CONVERGENT): True,
    (VULNERABLE, EVIDENCE_NONE): False,
    (VULNERABLE, EVIDENCE_SINGLE_WEAK): True,
    (VULNERABLE, EVIDENCE_SINGLE_STRONG): True,
    (VULNERABLE, EVIDENCE_CONVERGENT): True,
}

_CONFIDENT = ("HIGH", "MEDIUM")


# ---------------------------------------------------------------------------
# Detector verdicts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TripTroubleHorse:
    program_number: int
    horse_name: str = ""
    issue: str = ""
    masked_ability: bool = False
    confidence: str = "MEDIUM"      # HIGH / MEDIUM / LOW


@dataclass(frozen=True)
class TripTroubleVerdict:
    horses: Tuple[TripTroubleHorse, ...] = ()


@dataclass(frozen=True)
class PaceScenarioVerdict:
    pace_projection: str = "MODERATE"           # HOT / MODERATE / SLOW
    lone_speed_program: Optional[int] = None
    speed_duel_likely: bool = False
    advantaged_programs: Tuple[int, ...] = ()
    reason: str = ""


@dataclass(frozen=True)
class VulnerableFavoriteVerdict:
    is_vulnerable: bool = False
    reasons: Tuple[str, ...] = ()
    confidence: str = "LOW"                     # HIGH / MEDIUM / LOW


@dataclass(frozen=True)
class FieldSpreadVerdict:
    field_type: str = "COMPETITIVE"             # DOMINANT / SEPARATED / COMPETITIVE / TIGHT / MIXED / WIDE_OPEN
    top_tier_count: int = 0


@dataclass(frozen=True)
class ClassDropHorse:
    program_number: int
    horse_name: str = ""
    drop_type: str = "NONE"                     # MAJOR / MODERATE / MINOR / NONE / RISING
    reason: str = ""


@dataclass(frozen=True)
class ClassDropVerdict:
    horses: Tuple[ClassDropHorse, ...] = ()


@dataclass(frozen=True)
class DetectorResults:
    """All detector verdicts for one race; any of them may be None."""
    trip_trouble: Optional[TripTroubleVerdict] = None
    pace_scenario: Optional[PaceScenarioVerdict] = None
    vulnerable_favorite: Optional[VulnerableFavoriteVerdict] = None
    field_spread: Optional[FieldSpreadVerdict] = None
    class_drop: Optional[ClassDropVerdict] = None


# ---------------------------------------------------------------------------
# Aggregated per-horse signals / value horse
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AggregatedSignal:
    program_number: int
    horse_name: str
    algorithm_rank: int
    algorithm_score: float
    odds_decimal: Optional[float] = None
    trip_trouble_flagged: bool = False
    trip_trouble_boost: int = 0
    trip_trouble_reason: str = ""
    pace_advantage: int = 0
    pace_edge_reason: str = ""
    is_vulnerable: bool = False
    vulnerability_flags: Tuple[str, ...] = ()
    class_drop_flagged: bool = False
    class_drop_boost: int = 0
    class_drop_reason: str = ""


@dataclass(frozen=True)
class ValueHorse:
    identified: bool
    program_number: Optional[int] = None
    horse_name: Optional[str] = None
    signal_strength: str = "NONE"       # NONE / WEAK / MODERATE / STRONG / VERY_STRONG
    sources: Tuple[str, ...] = ()
    bot_convergence_count: int = 0
    raw_strength: int = 0
    reasoning: str = ""


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def _rank_horses(horses: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    active = [h for h in horses if not h.get("is_scratched", False)]
    return sorted(active, key=lambda h: (-(h.get("score") or 0), h.get("program_number", 0)))


def aggregate_signals(
    horses: Sequence[Dict[str, Any]], detectors: Optional[DetectorResults] = None,
) -> List[AggregatedSignal]:
    """Rank non-scratched horses by score and attach detector evidence.

    *horses*: dicts with program_number, horse_name, score, is_scratched and
    optionally odds_decimal.
    """
    detectors = detectors or DetectorResults()
    ranked = _rank_horses(horses)

    trips = {t.program_number: t for t in (detectors.trip_trouble.horses if detectors.trip_trouble else ())}
    drops = {c.program_number: c for c in (detectors.class_drop.horses if detectors.class_drop else ())}

    pace = detectors.pace_scenario
    pace_edges: Dict[int, str] = {}
    if pace is not None:
        for pn in pace.advantaged_programs:
            pace_edges[pn] = pace.reason or f"{pace.pace_projection.lower()} pace sets up"
        if pace.lone_speed_program is not None and not pace.speed_duel_likely:
            pace_edges[pace.lone_speed_program] = "Lone speed"

    vuln = detectors.vulnerable_favorite
    signals: List[AggregatedSignal] = []
    for rank, h in enumerate(ranked, start=1):
        pn = h.get("program_number", 0)

        trip = trips.get(pn)
        trip_flagged = bool(trip and trip.masked_ability and trip.confidence in _CONFIDENT)
        trip_boost = (2 if trip.confidence == "HIGH" else 1) if trip_flagged else 0

        drop = drops.get(pn)
        drop_type = drop.drop_type if drop else "NONE"
        drop_boost = {"MAJOR": 2, "MODERATE": 1}.get(drop_type, 0)

        is_fav = rank == 1
        fav_vulnerable = bool(is_fav and vuln is not None and vuln.is_vulnerable)

        signals.append(AggregatedSignal(
            program_number=pn,
            horse_name=h.get("horse_name") or h.get("name") or "?",
            algorithm_rank=rank,
            algorithm_score=h.get("score") or 0,
            odds_decimal=h.get("odds_decimal"),
            trip_trouble_flagged=trip_flagged,
            trip_trouble_boost=trip_boost,
            trip_trouble_reason=trip.issue if trip else "",
            pace_advantage=1 if pn in pace_edges else 0,
            pace_edge_reason=pace_edges.get(pn, ""),
            is_vulnerable=fav_vulnerable,
            vulnerability_flags=tuple(vuln.reasons) if fav_vulnerable else (),
            class_drop_flagged=drop_boost > 0,
            class_drop_boost=drop_boost,
            class_drop_reason=drop.reason if drop else "",
        ))
    return signals


# ---------------------------------------------------------------------------
# Favorite status / race type
# ---------------------------------------------------------------------------

def determine_favorite_status(
    verdict: Optional[VulnerableFavoriteVerdict],
    signals: Optional[Sequence[AggregatedSignal]] = None,
) -> Tuple[str, List[str]]:
    """SOLID or VULNERABLE, plus the flags behind a VULNERABLE call.

    A confident verdict (HIGH/MEDIUM) is enough on its own; otherwise two or
    more distinct flags must accumulate.
    """
    flags: List[str] = []
    if verdict is not None and verdict.is_vulnerable:
        flags.extend(verdict.reasons)
    favorite = next((s for s in (signals or ()) if s.algorithm_rank == 1), None)
    if favorite is not None:
        flags.extend(favorite.vulnerability_flags)
    flags = list(dict.fromkeys(flags))     # de-dup, keep order

    confident = verdict is not None and verdict.is_vulnerable and verdict.confidence in _CONFIDENT
    if confident or len(flags) >= 2:
        return VULNERABLE, flags
    return SOLID, []


def derive_race_type(
    field_spread: Optional[FieldSpreadVerdict],
    signals: Optional[Sequence[AggregatedSignal]] = None,
) -> str:
    """WIDE_OPEN / CHALK / COMPETITIVE from the spread verdict.

    Without a verdict there is no evidence of a wide-open field, so only the
    #1 / #2 score gap is used to tell CHALK from COMPETITIVE.
    """
    if field_spread is not None and field_spread.field_type in _FIELD_TYPE_TO_RACE_TYPE:
        return _FIELD_TYPE_TO_RACE_TYPE[field_spread.field_type]

    scores = sorted((s.algorithm_score for s in (signals or ())), reverse=True)
    if len(scores) >= 2 and scores[0] - scores[1] >= _CHALK_MIN_GAP:
        return CHALK
    return COMPETITIVE


# ---------------------------------------------------------------------------
# Value horse
# ---------------------------------------------------------------------------

def strength_bucket(strength: int) -> str:
    for name, lower in STRENGTH_BUCKETS:
        if strength >= lower:
            return name
    return "WEAK"


def evidence_class(source_count: int, strength: int) -> str:
    if source_count <= 0:
        return EVIDENCE_NONE
    if source_count >= 2:
        return EVIDENCE_CONVERGENT
    return EVIDENCE_SINGLE_STRONG if strength >= _SOLID_MIN_STRENGTH else EVIDENCE_SINGLE_WEAK


def qualifies(favorite_status: str, source_count: int, strength: int) -> bool:
    status = favorite_status if favorite_status in (SOLID, VULNERABLE) else SOLID
    return _QUALIFIES[(status, evidence_class(source_count, strength))]


def _collect_evidence(
    signal: AggregatedSignal, favorite_status: str, beneficiary: Optional[int],
) -> List[Tuple[str, int]]:
    evidence: List[Tuple[str, int]] = []
    if signal.trip_trouble_flagged:
        evidence.append((TRIP_TROUBLE, _SOURCE_STRENGTH[TRIP_TROUBLE]))
    if signal.pace_advantage > 0:
        evidence.append((PACE_ADVANTAGE, _SOURCE_STRENGTH[PACE_ADVANTAGE]))
    if favorite_status == VULNERABLE and signal.program_number == beneficiary:
        evidence.append((VULNERABLE_FAVORITE, _SOURCE_STRENGTH[VULNERABLE_FAVORITE]))
    if signal.class_drop_flagged:
        drop_type = "MAJOR" if signal.class_drop_boost >= 2 else "MODERATE"
        evidence.append((CLASS_DROP, _CLASS_DROP_STRENGTH[drop_type]))
    return evidence


def _total_strength(evidence: List[Tuple[str, int]]) -> int:
    if not evidence:
        return 0
    total = sum(s for _, s in evidence) + _CONVERGENCE_BONUS * (len(evidence) - 1)
    return min(_MAX_STRENGTH, total)


def identify_value_horse(
    signals: Sequence[AggregatedSignal],
    detectors: Optional[DetectorResults] = None,
    favorite_status: str = SOLID,
) -> ValueHorse:
    """Elect the single non-favorite worth backing, if any."""
    ranked = sorted(signals, key=lambda s: (s.algorithm_rank, s.program_number))
    if len(ranked) < 2:
        return ValueHorse(identified=False, reasoning="Field too small for a value horse")

    favorite = ranked[0]
    beneficiary = ranked[1].program_number

    candidates = []
    for s in ranked[1:]:
        evidence = _collect_evidence(s, favorite_status, beneficiary)
        if evidence:
            candidates.append((s, evidence, _total_strength(evidence)))

    if not candidates:
        return ValueHorse(identified=False, reasoning=f"{favorite_status} favorite #{favorite.program_number}: no value signals on other horses")

    candidates.sort(key=lambda c: (-c[2], -len(c[1]), c[0].algorithm_rank, c[0].program_number))

    for s, evidence, strength in candidates:
        if not qualifies(favorite_status, len(evidence), strength):
            continue
        sources = [src for src, _ in evidence]
        if len(sources) >= 2:
            sources = [MULTIPLE] + sources
        reasoning = (
            f"{favorite_status} favorite #{favorite.program_number}; "
            f"value horse #{s.program_number} {s.horse_name}: "
            f"{', '.join(src for src, _ in evidence)} (strength {strength}, {len(evidence)} source(s))"
        )
        vuln = detectors.vulnerable_favorite if detectors else None
        if favorite_status == VULNERABLE and vuln is not None and vuln.reasons:
            reasoning += f"; favorite flags: {', '.join(vuln.reasons)}"
        return ValueHorse(
            identified=True,
            program_number=s.program_number,
            horse_name=s.horse_name,
            signal_strength=strength_bucket(strength),
            sources=tuple(sources),
            bot_convergence_count=len(evidence),
            raw_strength=strength,
            reasoning=reasoning,
        )

    s, evidence, strength = candidates[0]
    reasoning = (
        f"SOLID favorite #{favorite.program_number}: Weak value signal rejected for "
        f"#{s.program_number} ({', '.join(src for src, _ in evidence)}, strength {strength})"
    )
    logger.debug(reasoning)
    return ValueHorse(identified=False, reasoning=reasoning)
