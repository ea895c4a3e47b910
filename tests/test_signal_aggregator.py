"""Tests for signal_aggregator — detector folding, favorite status, race type, value horse."""
from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from signal_aggregator import (
    CHALK,
    COMPETITIVE,
    SOLID,
    VULNERABLE,
    WIDE_OPEN,
    AggregatedSignal,
    ClassDropHorse,
    ClassDropVerdict,
    DetectorResults,
    FieldSpreadVerdict,
    PaceScenarioVerdict,
    TripTroubleHorse,
    TripTroubleVerdict,
    VulnerableFavoriteVerdict,
    aggregate_signals,
    derive_race_type,
    determine_favorite_status,
    evidence_class,
    identify_value_horse,
    qualifies,
    strength_bucket,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _make_horse(pn, score, scratched=False):
    return {"program_number": pn, "horse_name": f"HORSE {pn}", "score": score, "is_scratched": scratched}


def _make_signal(pn, rank, score, **kw):
    return AggregatedSignal(program_number=pn, horse_name=f"HORSE {pn}", algorithm_rank=rank, algorithm_score=score, **kw)


HORSES = [
    _make_horse(4, 150),
    _make_horse(1, 200),
    _make_horse(7, 120),
    _make_horse(2, 170),
    _make_horse(9, 190, scratched=True),
]

# rank order: #1, #2, #4, #7
PLAIN = [
    _make_signal(1, 1, 200),
    _make_signal(2, 2, 170),
    _make_signal(4, 3, 150),
    _make_signal(7, 4, 120),
]

HIGH_VULN = VulnerableFavoriteVerdict(
    is_vulnerable=True, reasons=("bounce off career top", "drawn outside"), confidence="HIGH",
)


def _with(signals, pn, **kw):
    out = []
    for s in signals:
        if s.program_number == pn:
            fields = {**s.__dict__, **kw}
            out.append(AggregatedSignal(**fields))
        else:
            out.append(s)
    return out


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

class TestAggregateSignals:
    def test_ranking_excludes_scratched(self):
        signals = aggregate_signals(HORSES)
        assert [s.program_number for s in signals] == [1, 2, 4, 7]
        assert [s.algorithm_rank for s in signals] == [1, 2, 3, 4]

    def test_ties_broken_by_program_number(self):
        signals = aggregate_signals([_make_horse(5, 100), _make_horse(3, 100)])
        assert [s.program_number for s in signals] == [3, 5]

    def test_no_detectors(self):
        for s in aggregate_signals(HORSES, None):
            assert not s.trip_trouble_flagged
            assert s.pace_advantage == 0
            assert not s.is_vulnerable
            assert not s.class_drop_flagged

    def test_trip_trouble_confidence(self):
        det = DetectorResults(trip_trouble=TripTroubleVerdict(horses=(
            TripTroubleHorse(2, issue="checked at the 3/8", masked_ability=True, confidence="HIGH"),
            TripTroubleHorse(4, issue="wide trip", masked_ability=True, confidence="LOW"),
            TripTroubleHorse(7, issue="bumped", masked_ability=False, confidence="HIGH"),
        )))
        by_pn = {s.program_number: s for s in aggregate_signals(HORSES, det)}
        assert by_pn[2].trip_trouble_flagged and by_pn[2].trip_trouble_boost == 2
        assert by_pn[2].trip_trouble_reason == "checked at the 3/8"
        assert not by_pn[4].trip_trouble_flagged
        assert not by_pn[7].trip_trouble_flagged

    def test_lone_speed(self):
        det = DetectorResults(pace_scenario=PaceScenarioVerdict(pace_projection="SLOW", lone_speed_program=4))
        by_pn = {s.program_number: s for s in aggregate_signals(HORSES, det)}
        assert by_pn[4].pace_advantage == 1
        assert by_pn[4].pace_edge_reason == "Lone speed"

    def test_speed_duel_cancels_lone_speed(self):
        det = DetectorResults(pace_scenario=PaceScenarioVerdict(
            pace_projection="HOT", lone_speed_program=4, speed_duel_likely=True,
            advantaged_programs=(7,), reason="Hot pace sets up closers",
        ))
        by_pn = {s.program_number: s for s in aggregate_signals(HORSES, det)}
        assert by_pn[4].pace_advantage == 0
        assert by_pn[7].pace_advantage == 1
        assert by_pn[7].pace_edge_reason == "Hot pace sets up closers"

    def test_vulnerability_on_favorite_only(self):
        by_pn = {s.program_number: s for s in aggregate_signals(HORSES, DetectorResults(vulnerable_favorite=HIGH_VULN))}
        assert by_pn[1].is_vulnerable
        assert by_pn[1].vulnerability_flags == HIGH_VULN.reasons
        assert not by_pn[2].is_vulnerable

    def test_class_drop(self):
        det = DetectorResults(class_drop=ClassDropVerdict(horses=(
            ClassDropHorse(4, drop_type="MAJOR", reason="stakes to allowance"),
            ClassDropHorse(7, drop_type="MINOR", reason="slight drop"),
        )))
        by_pn = {s.program_number: s for s in aggregate_signals(HORSES, det)}
        assert by_pn[4].class_drop_flagged and by_pn[4].class_drop_boost == 2
        assert not by_pn[7].class_drop_flagged
        assert by_pn[7].class_drop_reason == "slight drop"


# ---------------------------------------------------------------------------
# Favorite status
# ---------------------------------------------------------------------------

class TestFavoriteStatus:
    def test_no_verdict(self):
        assert determine_favorite_status(None) == (SOLID, [])

    def test_high_confidence(self):
        status, flags = determine_favorite_status(HIGH_VULN)
        assert status == VULNERABLE
        assert flags == list(HIGH_VULN.reasons)

    def test_medium_single_reason(self):
        v = VulnerableFavoriteVerdict(True, ("bounce",), "MEDIUM")
        assert determine_favorite_status(v)[0] == VULNERABLE

    def test_single_weak_flag_stays_solid(self):
        v = VulnerableFavoriteVerdict(True, ("bounce",), "LOW")
        assert determine_favorite_status(v) == (SOLID, [])

    def test_two_weak_flags_accumulate(self):
        v = VulnerableFavoriteVerdict(True, ("bounce", "layoff"), "LOW")
        assert determine_favorite_status(v)[0] == VULNERABLE

    def test_flags_from_favorite_signal_count(self):
        v = VulnerableFavoriteVerdict(True, ("bounce",), "LOW")
        signals = _with(PLAIN, 1, vulnerability_flags=("bounce", "class rise"))
        status, flags = determine_favorite_status(v, signals)
        assert status == VULNERABLE
        assert flags == ["bounce", "class rise"]

    def test_not_vulnerable_verdict(self):
        v = VulnerableFavoriteVerdict(False, ("bounce", "layoff"), "HIGH")
        assert determine_favorite_status(v)[0] == SOLID


# ---------------------------------------------------------------------------
# Race type
# ---------------------------------------------------------------------------

class TestRaceType:
    def test_from_field_spread(self):
        assert derive_race_type(FieldSpreadVerdict("WIDE_OPEN")) == WIDE_OPEN
        assert derive_race_type(FieldSpreadVerdict("DOMINANT")) == CHALK
        assert derive_race_type(FieldSpreadVerdict("SEPARATED")) == CHALK
        for ft in ("COMPETITIVE", "MIXED", "TIGHT"):
            assert derive_race_type(FieldSpreadVerdict(ft)) == COMPETITIVE

    def test_tight_scores_without_verdict_not_wide_open(self):
        scores = [200, 190, 185, 180, 178, 175, 100]
        signals = [_make_signal(i + 1, i + 1, s) for i, s in enumerate(scores)]
        assert derive_race_type(None, signals) == COMPETITIVE

    def test_from_scores_chalk(self):
        signals = [_make_signal(i + 1, i + 1, s) for i, s in enumerate([220, 190, 170, 150])]
        assert derive_race_type(None, signals) == CHALK

    def test_from_scores_competitive(self):
        signals = [_make_signal(i + 1, i + 1, s) for i, s in enumerate([200, 190, 150, 120])]
        assert derive_race_type(None, signals) == COMPETITIVE

    def test_empty(self):
        assert derive_race_type(None, []) == COMPETITIVE


# ---------------------------------------------------------------------------
# Value horse
# ---------------------------------------------------------------------------

class TestDecisionTable:
    @pytest.mark.parametrize("status,count,strength,expected", [
        (SOLID, 0, 0, False),
        (SOLID, 1, 30, False),
        (SOLID, 1, 49, False),
        (SOLID, 1, 50, True),
        (SOLID, 2, 40, True),
        (VULNERABLE, 0, 0, False),
        (VULNERABLE, 1, 30, True),
        (VULNERABLE, 1, 50, True),
        (VULNERABLE, 2, 40, True),
    ])
    def test_qualifies(self, status, count, strength, expected):
        assert qualifies(status, count, strength) is expected

    def test_evidence_classes(self):
        assert evidence_class(0, 0) == "NONE"
        assert evidence_class(1, 49) == "SINGLE_WEAK"
        assert evidence_class(1, 50) == "SINGLE_STRONG"
        assert evidence_class(3, 10) == "CONVERGENT"

    def test_single_source_band_is_asymmetric(self):
        for strength in range(30, 50):
            assert qualifies(SOLID, 1, strength) is False
            assert qualifies(VULNERABLE, 1, strength) is True

    def test_strength_buckets(self):
        assert strength_bucket(0) == "WEAK"
        assert strength_bucket(39) == "WEAK"
        assert strength_bucket(40) == "MODERATE"
        assert strength_bucket(59) == "MODERATE"
        assert strength_bucket(60) == "STRONG"
        assert strength_bucket(79) == "STRONG"
        assert strength_bucket(80) == "VERY_STRONG"
        assert strength_bucket(100) == "VERY_STRONG"


class TestIdentifyValueHorse:
    def test_no_signals(self):
        vh = identify_value_horse(PLAIN, None, SOLID)
        assert not vh.identified
        assert vh.signal_strength == "NONE"

    def test_single_trip_rejected_for_solid(self):
        signals = _with(PLAIN, 4, trip_trouble_flagged=True, trip_trouble_boost=2)
        vh = identify_value_horse(signals, None, SOLID)
        assert not vh.identified
        assert "SOLID favorite" in vh.reasoning
        assert "Weak value signal rejected" in vh.reasoning

    def test_same_trip_accepted_for_vulnerable(self):
        signals = _with(PLAIN, 4, trip_trouble_flagged=True, trip_trouble_boost=2)
        vh = identify_value_horse(signals, DetectorResults(vulnerable_favorite=HIGH_VULN), VULNERABLE)
        assert vh.identified

    def test_single_pace_rejected_for_solid(self):
        signals = _with(PLAIN, 7, pace_advantage=1)
        assert not identify_value_horse(signals, None, SOLID).identified

    def test_convergence_accepted_for_solid(self):
        signals = _with(PLAIN, 4, trip_trouble_flagged=True, trip_trouble_boost=1, pace_advantage=1)
        vh = identify_value_horse(signals, None, SOLID)
        assert vh.identified
        assert vh.program_number == 4
        assert vh.bot_convergence_count == 2
        assert vh.raw_strength == 75
        assert vh.signal_strength == "STRONG"
        assert vh.sources == ("MULTIPLE", "TRIP_TROUBLE", "PACE_ADVANTAGE")

    def test_beneficiary_with_trip_for_vulnerable(self):
        signals = _with(PLAIN, 2, trip_trouble_flagged=True, trip_trouble_boost=2)
        vh = identify_value_horse(signals, None, VULNERABLE)
        assert vh.program_number == 2
        assert vh.raw_strength == 80
        assert vh.signal_strength == "VERY_STRONG"
        assert "VULNERABLE_FAVORITE" in vh.sources

    def test_vulnerable_beneficiary_alone(self):
        vh = identify_value_horse(PLAIN, None, VULNERABLE)
        assert vh.identified
        assert vh.program_number == 2
        assert vh.signal_strength == "MODERATE"

    def test_class_drop_plus_trip(self):
        signals = _with(PLAIN, 7, class_drop_flagged=True, class_drop_boost=2, trip_trouble_flagged=True)
        vh = identify_value_horse(signals, None, SOLID)
        assert vh.identified
        assert vh.raw_strength == 80

    def test_favorite_signals_ignored(self):
        signals = _with(PLAIN, 1, trip_trouble_flagged=True, pace_advantage=1)
        assert not identify_value_horse(signals, None, SOLID).identified

    def test_strongest_candidate_wins(self):
        signals = _with(PLAIN, 7, trip_trouble_flagged=True, pace_advantage=1, class_drop_flagged=True, class_drop_boost=2)
        signals = _with(signals, 4, trip_trouble_flagged=True, pace_advantage=1)
        assert identify_value_horse(signals, None, SOLID).program_number == 7

    def test_field_of_one(self):
        assert not identify_value_horse(PLAIN[:1], None, VULNERABLE).identified

    def test_deterministic(self):
        signals = _with(PLAIN, 4, trip_trouble_flagged=True, pace_advantage=1)
        results = [identify_value_horse(signals, None, SOLID) for _ in range(3)]
        assert results[0] == results[1] == results[2]
