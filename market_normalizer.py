"""Market normalizer — odds parsing, implied probability, overround and vig removal.

Decimal odds are the canonical internal form everywhere in the engine.
Tote strings ("5-2", "9/5", "EVEN", "+300", bare "6") are parsed here;
anything unparseable resolves to EVEN (decimal 2.0) instead of raising.

Usage:
    from market_normalizer import parse_odds, normalize_field_odds
    field = normalize_field_odds([parse_odds(o) for o in ["5-2", "3-1", "9-2"]])
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_DECIMAL_ODDS = 2.0          # EVEN; fallback for anything unparseable
MIN_VALID_DECIMAL_ODDS = 1.01       # 1-100
MAX_VALID_DECIMAL_ODDS = 1000.0     # 999-1

_FRACTION_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*[-/:]\s*(\d+(?:\.\d+)?)$")
_AMERICAN_RE = re.compile(r"^([+-])(\d+(?:\.\d+)?)$")
_BARE_NUMBER_RE = re.compile(r"^\d+(?:\.\d+)?$")
_EVEN_TOKENS = ("EVEN", "EVN", "EVS", "EV")

# Fractions a tote board actually shows, as (profit per $1, label)
_COMMON_FRACTIONS = [
    (0.2, "1-5"), (0.25, "1-4"), (0.4, "2-5"), (0.5, "1-2"), (0.6, "3-5"),
    (0.8, "4-5"), (1.0, "EVEN"), (1.2, "6-5"), (1.4, "7-5"), (1.5, "3-2"),
    (1.6, "8-5"), (1.8, "9-5"), (2.0, "2-1"), (2.5, "5-2"), (3.0, "3-1"),
    (3.5, "7-2"), (4.0, "4-1"), (4.5, "9-2"), (5.0, "5-1"), (6.0, "6-1"),
    (7.0, "7-1"), (8.0, "8-1"), (9.0, "9-1"), (10.0, "10-1"),
]


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MarketConfig:
    """Plausibility band for a field's summed implied probability."""
    min_overround: float = 1.10
    max_overround: float = 1.35


@dataclass(frozen=True)
class ParsedOdds:
    decimal_odds: float
    is_valid: bool
    original_input: str
    detected_format: str            # fractional / american / even / unknown
    error: Optional[str] = None


@dataclass(frozen=True)
class NormalizedOdds:
    """One horse's market numbers; overround/takeout are field-level."""
    decimal_odds: float
    implied_probability: float
    normalized_probability: float
    overround: float
    takeout_percent: float


@dataclass(frozen=True)
class OddsDisplay:
    decimal: str
    fractional: str
    american: str
    implied_percent: str


@dataclass
class MarketValidation:
    is_valid: bool
    overround: float
    warnings: List[str] = field(default_factory=list)
    invalid_indices: List[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------

def _finite(x) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)


def fractional_to_decimal(numerator: float, denominator: float) -> float:
    """n/d + 1.  Zero denominator or non-finite parts → EVEN."""
    if not _finite(numerator) or not _finite(denominator) or denominator == 0:
        return DEFAULT_DECIMAL_ODDS
    return numerator / denominator + 1.0


def american_to_decimal(american: float) -> float:
    """+300 → 4.0, -150 → 1.667.  Zero or non-finite → EVEN."""
    if not _finite(american) or american == 0:
        return DEFAULT_DECIMAL_ODDS
    if american > 0:
        return american / 100.0 + 1.0
    return 100.0 / abs(american) + 1.0


def implied_probability(decimal_odds: float) -> float:
    """1/decimal, or 0 for non-positive / non-finite odds."""
    if not _finite(decimal_odds) or decimal_odds <= 0:
        return 0.0
    return 1.0 / decimal_odds


def overround(probabilities: Sequence[float]) -> float:
    """Sum of a field's implied probabilities, skipping non-finite entries.

    An empty field has no margin, so its overround is 1.0.
    """
    if not probabilities:
        return 1.0
    return sum(p for p in probabilities if _finite(p))


def takeout_percent(field_overround: float) -> float:
    if not _finite(field_overround) or field_overround <= 0:
        return 0.0
    return (field_overround - 1.0) / field_overround * 100.0


def normalize(probabilities: Sequence[float]) -> List[float]:
    """Strip the vig: divide each probability by the field overround.

    Order is preserved and the result sums to 1.0.  Non-finite entries get
    0; if nothing usable remains the field is spread evenly.
    """
    if not probabilities:
        return []
    cleaned = [p if _finite(p) else 0.0 for p in probabilities]
    total = overround(cleaned)
    if total <= 0:
        logger.debug(f"normalize: non-positive overround {total}, spreading evenly")
        return [1.0 / len(cleaned)] * len(cleaned)
    return [p / total for p in cleaned]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _in_range(decimal_odds: float) -> bool:
    return MIN_VALID_DECIMAL_ODDS <= decimal_odds <= MAX_VALID_DECIMAL_ODDS


def parse_odds_with_details(text: Optional[str]) -> ParsedOdds:
    """Parse a tote/ML odds string into decimal odds with diagnostics.

    Accepts "5-1", "9/5", "5:2", "EVEN"/"EVN"/"EVS", "+250", "-150", a bare
    number ("6" means 6-1) and a leading "*" favorite marker.  Anything else
    resolves to EVEN with *is_valid* False.
    """
    original = "" if text is None else str(text)
    s = original.strip().lstrip("*").strip().upper()

    def _invalid(fmt: str, msg: str) -> ParsedOdds:
        logger.debug(f"parse_odds: {msg} ({original!r}), using {DEFAULT_DECIMAL_ODDS}")
        return ParsedOdds(DEFAULT_DECIMAL_ODDS, False, original, fmt, msg)

    if not s:
        return _invalid("unknown", "empty odds")

    if s in _EVEN_TOKENS:
        return ParsedOdds(DEFAULT_DECIMAL_ODDS, True, original, "even")

    m = _FRACTION_RE.match(s)
    if m:
        num, den = float(m.group(1)), float(m.group(2))
        if den == 0:
            return _invalid("fractional", "zero denominator")
        dec = fractional_to_decimal(num, den)
        if not _in_range(dec):
            return _invalid("fractional", f"odds {dec:.2f} out of range")
        return ParsedOdds(dec, True, original, "fractional")

    m = _AMERICAN_RE.match(s)
    if m:
        value = float(m.group(2))
        if m.group(1) == "-":
            value = -value
        if value == 0 or (abs(value) < 100):
            return _invalid("american", "moneyline must be at least 100")
        dec = american_to_decimal(value)
        if not _in_range(dec):
            return _invalid("american", f"odds {dec:.2f} out of range")
        return ParsedOdds(dec, True, original, "american")

    if _BARE_NUMBER_RE.match(s):
        # Tote boards drop the "-1": "6" means 6-1
        dec = fractional_to_decimal(float(s), 1.0)
        if not _in_range(dec):
            return _invalid("fractional", f"odds {dec:.2f} out of range")
        return ParsedOdds(dec, True, original, "fractional")

    return _invalid("unknown", "unrecognised odds format")


def parse_odds(text: Optional[str]) -> float:
    """Decimal odds for *text*, EVEN (2.0) when unparseable."""
    return parse_odds_with_details(text).decimal_odds


# ---------------------------------------------------------------------------
# Display formatters
# ---------------------------------------------------------------------------

def decimal_to_fractional(decimal_odds: float) -> str:
    """Nearest clean tote fraction: 3.5 → "5-2", 2.0 → "EVEN"."""
    if not _finite(decimal_odds) or decimal_odds <= 1.0:
        return "EVEN"
    profit = decimal_odds - 1.0
    if profit > _COMMON_FRACTIONS[-1][0]:
        return f"{int(math.floor(profit + 0.5))}-1"
    _, label = min(_COMMON_FRACTIONS, key=lambda f: abs(f[0] - profit))
    return label


def decimal_to_american(decimal_odds: float) -> str:
    """Moneyline string; positive from 2.0 upward, negative below."""
    if not _finite(decimal_odds) or decimal_odds <= 1.0:
        return "EVEN"
    if decimal_odds >= 2.0:
        return f"+{int(math.floor((decimal_odds - 1.0) * 100 + 0.5))}"
    return f"-{int(math.floor(100.0 / (decimal_odds - 1.0) + 0.5))}"


def format_odds_display(decimal_odds: float) -> OddsDisplay:
    return OddsDisplay(
        decimal=f"{decimal_odds:.2f}" if _finite(decimal_odds) else "N/A",
        fractional=decimal_to_fractional(decimal_odds),
        american=decimal_to_american(decimal_odds),
        implied_percent=f"{implied_probability(decimal_odds) * 100:.1f}%",
    )


# ---------------------------------------------------------------------------
# Field-level operations
# ---------------------------------------------------------------------------

def normalize_field_odds(decimal_odds: Sequence[float]) -> List[NormalizedOdds]:
    """Per-horse implied and vig-free probabilities for one field."""
    implied = [implied_probability(o) for o in decimal_odds]
    field_overround = overround(implied)
    takeout = takeout_percent(field_overround)
    normalized = normalize(implied)
    return [
        NormalizedOdds(
            decimal_odds=o,
            implied_probability=ip,
            normalized_probability=np_,
            overround=field_overround,
            takeout_percent=takeout,
        )
        for o, ip, np_ in zip(decimal_odds, implied, normalized)
    ]


def validate_market_odds(
    decimal_odds: Sequence[float], config: Optional[MarketConfig] = None,
) -> MarketValidation:
    """Sanity-check a field's odds before trusting its market numbers."""
    config = config or MarketConfig()
    warnings: List[str] = []
    invalid: List[int] = []

    for i, o in enumerate(decimal_odds):
        if not _finite(o) or o <= 0:
            invalid.append(i)
            warnings.append(f"entry {i}: invalid odds {o!r}")

    usable = [o for i, o in enumerate(decimal_odds) if i not in invalid]
    field_overround = overround([implied_probability(o) for o in usable])
    is_valid = True

    if len(decimal_odds) < 2:
        is_valid = False
        warnings.append(f"field size {len(decimal_odds)} below minimum of 2")

    if usable and not (config.min_overround <= field_overround <= config.max_overround):
        warnings.append(
            f"overround {field_overround:.3f} outside plausible band "
            f"{config.min_overround:.2f}-{config.max_overround:.2f}"
        )

    if invalid:
        is_valid = False

    return MarketValidation(
        is_valid=is_valid,
        overround=field_overround,
        warnings=warnings,
        invalid_indices=invalid,
    )
