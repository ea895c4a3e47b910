"""Bet Builder — per-race recommendation + Kelly-sized WIN bet, and day plans.

Runs the full chain for each race: market sanity check, value plays,
signal aggregation and ticket template, then a Kelly-sized WIN bet on the
value horse when the verdict is BET.  A day plan rebalances all WIN bets
against one exposure ceiling.

Usage:
    from bet_builder import build_day_plan, BetSettings
    settings = BetSettings(bankroll=1000)
    plan = build_day_plan(race_horses, settings, detectors_by_race)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict, replace
from typing import List, Optional, Dict, Any

import pandas as pd

from bet_sizer import (
    BetSizingConfig,
    SizedBet,
    adjust_for_simultaneous_bets,
    create_config_from_risk_tolerance,
    format_cap_reason,
    get_recommended_config,
    size_bet,
)
from kelly_calculator import KellyInput, KellyOutput, calculate_fractional_kelly
from market_normalizer import (
    MarketValidation,
    parse_odds_with_details,
    validate_market_odds,
)
from overlay_analyzer import DEFAULT_SCORE_MODEL, ValuePlay, analyze_overlay, detect_value_plays
from signal_aggregator import DetectorResults, aggregate_signals
from ticket_builder import TicketConstruction, build_ticket_construction

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class BetSettings:
    """User-configurable betting parameters."""
    bankroll: float = 1000.0
    risk_tolerance: str = "moderate"        # conservative / moderate / aggressive / tiered
    max_total_exposure: float = 0.10        # fraction of bankroll across the whole card
    min_overlay_pct: float = 10.0           # value plays below this are not listed
    score_model: str = DEFAULT_SCORE_MODEL
    paper_mode: bool = True                 # paper bets (no real money implied)
    sizing: Optional[BetSizingConfig] = None  # explicit override of the tolerance preset

    @property
    def sizing_config(self) -> BetSizingConfig:
        if self.sizing is not None:
            return self.sizing
        if self.risk_tolerance == "tiered":
            return get_recommended_config(self.bankroll)
        return create_config_from_risk_tolerance(self.risk_tolerance)

    @property
    def max_total_risk(self) -> float:
        return self.bankroll * self.max_total_exposure


@dataclass
class WinBet:
    """Kelly-sized WIN bet on a race's value horse."""
    program_number: int
    horse_name: str
    odds_decimal: float
    odds_display: str
    win_probability: float      # %
    overlay_percent: float
    value_class: str
    kelly: KellyOutput
    sized: SizedBet
    stake: float
    rationale: str = ""


@dataclass
class RacePlan:
    """Bet plan for one race."""
    race_number: int = 0
    ticket: Optional[TicketConstruction] = None
    value_plays: List[ValuePlay] = field(default_factory=list)
    win_bet: Optional[WinBet] = None
    total_cost: float = 0.0
    exotics_cost: float = 0.0   # informational; exotic stakes are not Kelly-sized
    rationale: str = ""
    passed: bool = False
    warnings: List[str] = field(default_factory=list)
    blockers: List[str] = field(default_factory=list)
    market: Optional[MarketValidation] = None


@dataclass
class DayPlan:
    """Complete bet plan for a card."""
    race_plans: List[RacePlan] = field(default_factory=list)
    total_risk: float = 0.0
    warnings: List[str] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _horse_name(h: Dict[str, Any]) -> str:
    return h.get("horse_name") or h.get("name") or "?"


def _with_decimal_odds(horses: List[Dict[str, Any]], warnings: List[str]) -> List[Dict[str, Any]]:
    """Copies of the horse rows with odds_decimal filled in from the odds string."""
    rows = []
    for h in horses:
        row = dict(h)
        if row.get("odds_decimal") is None:
            parsed = parse_odds_with_details(row.get("odds"))
            if not parsed.is_valid and not row.get("is_scratched", False):
                warnings.append(
                    f"#{row.get('program_number', '?')} {_horse_name(row)}: "
                    f"odds {parsed.original_input!r} unreadable, treated as EVEN"
                )
            row["odds_decimal"] = parsed.decimal_odds
        rows.append(row)
    return rows


def _build_win_bet(
    row: Dict[str, Any], settings: BetSettings, blockers: List[str],
) -> Optional[WinBet]:
    name = _horse_name(row)
    pn = row.get("program_number", 0)
    analysis = analyze_overlay(row.get("score", 0), row["odds_decimal"], settings.score_model)
    config = settings.sizing_config

    kelly = calculate_fractional_kelly(KellyInput(
        probability=analysis.win_probability / 100.0,
        decimal_odds=analysis.actual_odds_decimal,
        bankroll=settings.bankroll,
        kelly_fraction=config.kelly_fraction,
    ))
    sized = size_bet(kelly, settings.bankroll, config)

    if sized.final_bet <= 0:
        why = format_cap_reason(sized.cap_reason) or kelly.reason
        blockers.append(f"#{pn} {name} @ {analysis.actual_odds_display}: {why}")
        return None

    return WinBet(
        program_number=pn,
        horse_name=name,
        odds_decimal=analysis.actual_odds_decimal,
        odds_display=analysis.actual_odds_display,
        win_probability=analysis.win_probability,
        overlay_percent=analysis.overlay_percent,
        value_class=analysis.value_class,
        kelly=kelly,
        sized=sized,
        stake=sized.final_bet,
        rationale=(
            f"WIN #{pn} {name} @ {analysis.actual_odds_display} "
            f"(fair {analysis.fair_odds_display}, {analysis.overlay_percent:+.0f}%) "
            f"{kelly.kelly_fraction_used} Kelly ${sized.final_bet:.0f}"
        ),
    )


# ---------------------------------------------------------------------------
# Race Plan Builder
# ---------------------------------------------------------------------------

def build_race_plan(
    race_number: int,
    horses: List[Dict[str, Any]],
    settings: BetSettings,
    detectors: Optional[DetectorResults] = None,
) -> RacePlan:
    """Build a complete bet plan for one race.

    *horses*: dicts with program_number, horse_name, score, odds, is_scratched.
    """
    warnings: List[str] = []
    blockers: List[str] = []

    rows = _with_decimal_odds(horses, warnings)
    active = [r for r in rows if not r.get("is_scratched", False)]
    if not active:
        return RacePlan(
            race_number=race_number,
            passed=True,
            rationale="PASS - no active horses",
            blockers=["no active horses"],
            warnings=warnings,
        )

    market = validate_market_odds([r["odds_decimal"] for r in active])
    if market.warnings:
        logger.warning(f"Race {race_number} market: {'; '.join(market.warnings)}")
        warnings.extend(market.warnings)

    signals = aggregate_signals(active, detectors)
    ticket = build_ticket_construction(signals, detectors)
    plays = detect_value_plays(active, settings.min_overlay_pct, settings.score_model)

    if ticket.verdict.action == "PASS":
        return RacePlan(
            race_number=race_number,
            ticket=ticket,
            value_plays=plays,
            passed=True,
            rationale=ticket.verdict.summary,
            warnings=warnings,
            blockers=[ticket.template_reason],
            market=market,
        )

    win_bet = None
    vh = ticket.value_horse
    if vh.identified:
        row = next(r for r in active if r.get("program_number") == vh.program_number)
        win_bet = _build_win_bet(row, settings, blockers)
    else:
        blockers.append(f"Template {ticket.template}: no value horse for a WIN bet")

    exotics = ticket.exacta.estimated_cost + ticket.trifecta.estimated_cost
    parts = [ticket.verdict.summary]
    if win_bet:
        parts.append(win_bet.rationale)

    return RacePlan(
        race_number=race_number,
        ticket=ticket,
        value_plays=plays,
        win_bet=win_bet,
        total_cost=win_bet.stake if win_bet else 0.0,
        exotics_cost=exotics,
        rationale=" | ".join(parts),
        passed=False,
        warnings=warnings,
        blockers=blockers,
        market=market,
    )


# ---------------------------------------------------------------------------
# Day Plan Builder
# ---------------------------------------------------------------------------

def build_day_plan(
    race_horses: Dict[int, List[Dict[str, Any]]],
    settings: BetSettings,
    detectors_by_race: Optional[Dict[int, DetectorResults]] = None,
) -> DayPlan:
    """Build a full card's bet plan.

    *race_horses*: {race_number: [horse dicts...]}
    *detectors_by_race*: optional {race_number: DetectorResults}

    WIN stakes across the card are rebalanced in one pass so their total
    stays within settings.max_total_risk.
    """
    warnings: List[str] = []
    race_plans = [
        build_race_plan(rn, race_horses[rn], settings, (detectors_by_race or {}).get(rn))
        for rn in sorted(race_horses.keys())
    ]

    with_bets = [rp for rp in race_plans if rp.win_bet is not None]
    adjusted = adjust_for_simultaneous_bets(
        [rp.win_bet.sized for rp in with_bets], settings.bankroll, settings.max_total_exposure,
        settings.sizing_config,
    )
    reduced = False
    for rp, adj in zip(with_bets, adjusted):
        if adj.final_bet == rp.win_bet.stake:
            continue
        reduced = True
        if adj.final_bet <= 0:
            rp.blockers.append(f"WIN #{rp.win_bet.program_number} dropped by card exposure cap")
            rp.win_bet = None
            rp.total_cost = 0.0
            continue
        rp.win_bet = replace(rp.win_bet, sized=adj, stake=adj.final_bet)
        rp.total_cost = adj.final_bet
        rp.warnings.append(f"WIN stake reduced {adj.reduction_percent:.0f}% for card exposure cap")

    total_risk = sum(rp.total_cost for rp in race_plans)

    if reduced:
        warnings.append(
            f"WIN stakes scaled to fit exposure cap: ${total_risk:.0f} / ${settings.max_total_risk:.0f}"
        )
    if not any(rp.win_bet for rp in race_plans):
        warnings.append("No WIN bets generated - every race passed or lacked a value horse")

    logger.info(
        f"Day plan: {len(race_plans)} races, "
        f"{sum(1 for rp in race_plans if rp.passed)} passed, total risk ${total_risk:.0f}"
    )

    return DayPlan(
        race_plans=race_plans,
        total_risk=total_risk,
        warnings=warnings,
        settings=asdict(settings),
    )


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _ticket_dict(t: Optional[TicketConstruction]) -> Optional[dict]:
    if t is None:
        return None
    return {
        "template": t.template,
        "template_reason": t.template_reason,
        "favorite_status": t.favorite_status,
        "favorite_flags": list(t.favorite_flags),
        "race_type": t.race_type,
        "confidence_score": t.confidence_score,
        "confidence_tier": t.confidence_tier,
        "value_horse": asdict(t.value_horse),
        "verdict": asdict(t.verdict),
        "algorithm_top4": list(t.algorithm_top4),
        "exacta": asdict(t.exacta),
        "trifecta": asdict(t.trifecta),
    }


def day_plan_to_dict(plan: DayPlan) -> dict:
    """Convert DayPlan to JSON-serializable dict."""
    template_counts = {"A": 0, "B": 0, "C": 0, "PASS": 0}
    all_blockers = []
    for rp in plan.race_plans:
        if rp.ticket:
            template_counts[rp.ticket.template] = template_counts.get(rp.ticket.template, 0) + 1
        for b in rp.blockers:
            all_blockers.append({"race": rp.race_number, "reason": b})

    return {
        "total_risk": plan.total_risk,
        "warnings": plan.warnings,
        "settings": plan.settings,
        "diagnostics": {
            "template_counts": template_counts,
            "total_win_bets": sum(1 for rp in plan.race_plans if rp.win_bet),
            "total_passed": sum(1 for rp in plan.race_plans if rp.passed),
            "blockers": all_blockers,
        },
        "race_plans": [
            {
                "race_number": rp.race_number,
                "passed": rp.passed,
                "total_cost": rp.total_cost,
                "exotics_cost": rp.exotics_cost,
                "rationale": rp.rationale,
                "warnings": rp.warnings,
                "blockers": rp.blockers,
                "ticket": _ticket_dict(rp.ticket),
                "win_bet": None if rp.win_bet is None else {
                    "program_number": rp.win_bet.program_number,
                    "horse_name": rp.win_bet.horse_name,
                    "odds": rp.win_bet.odds_display,
                    "odds_decimal": rp.win_bet.odds_decimal,
                    "win_probability": rp.win_bet.win_probability,
                    "overlay_percent": rp.win_bet.overlay_percent,
                    "value_class": rp.win_bet.value_class,
                    "stake": rp.win_bet.stake,
                    "cap_reason": rp.win_bet.sized.cap_reason,
                },
                "value_plays": [asdict(p) for p in rp.value_plays],
            }
            for rp in plan.race_plans
        ],
    }


def day_plan_to_text(plan: DayPlan) -> str:
    """Format DayPlan as human-readable text for export."""
    lines = []
    mode = "PAPER MODE" if plan.settings.get("paper_mode", True) else "LIVE"
    lines.append(f"=== BET PLAN ({mode}) ===")
    lines.append(f"Bankroll: ${plan.settings.get('bankroll', 0):.0f}")
    lines.append(f"Risk tolerance: {plan.settings.get('risk_tolerance', 'moderate')}")
    lines.append(f"Total risk: ${plan.total_risk:.0f}")
    lines.append("")

    for rp in plan.race_plans:
        t = rp.ticket
        head = f"Template {t.template}, {t.confidence_tier} ({t.confidence_score})" if t else "no ticket"
        if rp.passed:
            lines.append(f"Race {rp.race_number}: PASS ({head}) - {rp.rationale}")
        else:
            lines.append(f"Race {rp.race_number}: {head} - ${rp.total_cost:.0f}")
            if rp.win_bet:
                lines.append(f"  {rp.win_bet.rationale}")
            if t and t.exacta.combinations:
                ex = t.exacta
                lines.append(
                    f"  EX {','.join(map(str, ex.win_position))} / "
                    f"{','.join(map(str, ex.place_position))} ({ex.combinations} combos, ${ex.estimated_cost:.0f})"
                )
            if t and t.trifecta.combinations:
                tri = t.trifecta
                lines.append(
                    f"  TRI {','.join(map(str, tri.win_position))} / "
                    f"{','.join(map(str, tri.place_position))} / "
                    f"{','.join(map(str, tri.show_position))} ({tri.combinations} combos, ${tri.estimated_cost:.0f})"
                )
        for b in rp.blockers:
            lines.append(f"  [blocker] {b}")
        lines.append("")

    if plan.warnings:
        lines.append("WARNINGS:")
        for w in plan.warnings:
            lines.append(f"  - {w}")

    return "\n".join(lines)


def day_plan_to_frame(plan: DayPlan) -> pd.DataFrame:
    """One row per race: template, confidence, value horse and WIN stake."""
    rows = []
    for rp in plan.race_plans:
        t = rp.ticket
        wb = rp.win_bet
        rows.append({
            "race": rp.race_number,
            "template": t.template if t else "PASS",
            "confidence": t.confidence_score if t else 0,
            "tier": t.confidence_tier if t else "MINIMAL",
            "favorite_status": t.favorite_status if t else "",
            "value_horse": t.value_horse.program_number if t and t.value_horse.identified else None,
            "win_horse": wb.horse_name if wb else "",
            "win_odds": wb.odds_display if wb else "",
            "overlay_pct": wb.overlay_percent if wb else None,
            "stake": rp.total_cost,
            "exacta_combos": t.exacta.combinations if t else 0,
            "trifecta_combos": t.trifecta.combinations if t else 0,
            "rationale": rp.rationale,
        })
    return pd.DataFrame(rows)


def day_plan_to_csv(plan: DayPlan) -> str:
    """Export the per-race summary as CSV."""
    return day_plan_to_frame(plan).to_csv(index=False)
