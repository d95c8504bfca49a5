"""
Strategy Templates - Authoritative source for strategy names.

Every supported strategy is one StrategyKind. Free-form labels typed by the
user ("Short Iron Condor", "SPY put credit spread", "PCS") resolve to the
longest alias phrase they contain on word boundaries, and that phrase is an
exact key into the alias table. "iron condor" always beats a shorter phrase
such as "condor", and each kind has exactly one rule chain.

Each template carries:
- Display name
- Expected leg count (None when the structure allows a range)
- Whether the vertical spread rules apply
- An optional guide (example + rules) appended to validation messages
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


# ============================================================================
# Enums
# ============================================================================

class StrategyKind(Enum):
    """Closed set of strategy variants the validator knows."""
    STOCK = "stock"
    VERTICAL = "vertical spread"
    CREDIT_SPREAD = "credit spread"
    DEBIT_SPREAD = "debit spread"
    PUT_CREDIT_SPREAD = "put credit spread"
    CALL_CREDIT_SPREAD = "call credit spread"
    PUT_DEBIT_SPREAD = "put debit spread"
    CALL_DEBIT_SPREAD = "call debit spread"
    IRON_CONDOR = "iron condor"
    STRADDLE = "straddle"
    STRANGLE = "strangle"
    CALENDAR = "calendar spread"
    DIAGONAL = "diagonal spread"
    CASH_SECURED_PUT = "cash secured put"
    COVERED_CALL = "covered call"
    BUTTERFLY = "butterfly"


# ============================================================================
# Template dataclasses
# ============================================================================

@dataclass(frozen=True)
class StrategyGuide:
    """User-facing explanation attached to validation messages."""
    example: str
    rules: Tuple[str, ...]

    def render(self) -> str:
        lines = [f"• {rule}" for rule in self.rules]
        lines.append(f"Example: {self.example}")
        return "\n".join(lines)


@dataclass(frozen=True)
class StrategyTemplate:
    kind: StrategyKind
    name: str
    leg_count: Optional[int]
    is_vertical: bool = False
    guide: Optional[StrategyGuide] = None


# ============================================================================
# Catalog
# ============================================================================

_TEMPLATES: Dict[StrategyKind, StrategyTemplate] = {}


def _register(t: StrategyTemplate) -> None:
    _TEMPLATES[t.kind] = t


_register(StrategyTemplate(StrategyKind.STOCK, "Stock", leg_count=0))
_register(StrategyTemplate(StrategyKind.VERTICAL, "Vertical Spread", leg_count=2, is_vertical=True))
_register(StrategyTemplate(StrategyKind.CREDIT_SPREAD, "Credit Spread", leg_count=2, is_vertical=True))
_register(StrategyTemplate(StrategyKind.DEBIT_SPREAD, "Debit Spread", leg_count=2, is_vertical=True))

_register(StrategyTemplate(
    StrategyKind.PUT_CREDIT_SPREAD, "Put Credit Spread", leg_count=2, is_vertical=True,
    guide=StrategyGuide(
        example="STO PUT 100 / BTO PUT 95",
        rules=(
            "Sell PUT at the HIGHER strike",
            "Buy PUT at the LOWER strike",
            "Same expiration",
        ),
    ),
))

_register(StrategyTemplate(
    StrategyKind.CALL_CREDIT_SPREAD, "Call Credit Spread", leg_count=2, is_vertical=True,
    guide=StrategyGuide(
        example="STO CALL 105 / BTO CALL 110",
        rules=(
            "Sell CALL at the LOWER strike",
            "Buy CALL at the HIGHER strike",
            "Same expiration",
        ),
    ),
))

_register(StrategyTemplate(StrategyKind.PUT_DEBIT_SPREAD, "Put Debit Spread", leg_count=2, is_vertical=True))
_register(StrategyTemplate(StrategyKind.CALL_DEBIT_SPREAD, "Call Debit Spread", leg_count=2, is_vertical=True))

_register(StrategyTemplate(
    StrategyKind.IRON_CONDOR, "Iron Condor", leg_count=4,
    guide=StrategyGuide(
        example="PUT: STO 100 / BTO 95  |  CALL: STO 110 / BTO 115",
        rules=(
            "PUT side: Sell higher strike, Buy lower strike",
            "CALL side: Sell lower strike, Buy higher strike",
            "All legs must share the same expiration",
        ),
    ),
))

_register(StrategyTemplate(StrategyKind.STRADDLE, "Straddle", leg_count=2))
_register(StrategyTemplate(StrategyKind.STRANGLE, "Strangle", leg_count=2))
_register(StrategyTemplate(StrategyKind.CALENDAR, "Calendar Spread", leg_count=2))
_register(StrategyTemplate(StrategyKind.DIAGONAL, "Diagonal Spread", leg_count=2))
_register(StrategyTemplate(StrategyKind.CASH_SECURED_PUT, "Cash Secured Put", leg_count=1))
_register(StrategyTemplate(StrategyKind.COVERED_CALL, "Covered Call", leg_count=None))
_register(StrategyTemplate(StrategyKind.BUTTERFLY, "Butterfly", leg_count=None))


# Normalized label -> kind. Keys are what normalize_strategy() produces.
STRATEGY_ALIASES: Dict[str, StrategyKind] = {
    'stock': StrategyKind.STOCK,
    'shares': StrategyKind.STOCK,

    'vertical': StrategyKind.VERTICAL,
    'vertical spread': StrategyKind.VERTICAL,
    'credit spread': StrategyKind.CREDIT_SPREAD,
    'debit spread': StrategyKind.DEBIT_SPREAD,

    'put credit spread': StrategyKind.PUT_CREDIT_SPREAD,
    'bull put spread': StrategyKind.PUT_CREDIT_SPREAD,
    'pcs': StrategyKind.PUT_CREDIT_SPREAD,
    'call credit spread': StrategyKind.CALL_CREDIT_SPREAD,
    'bear call spread': StrategyKind.CALL_CREDIT_SPREAD,
    'ccs': StrategyKind.CALL_CREDIT_SPREAD,
    'put debit spread': StrategyKind.PUT_DEBIT_SPREAD,
    'bear put spread': StrategyKind.PUT_DEBIT_SPREAD,
    'pds': StrategyKind.PUT_DEBIT_SPREAD,
    'call debit spread': StrategyKind.CALL_DEBIT_SPREAD,
    'bull call spread': StrategyKind.CALL_DEBIT_SPREAD,
    'cds': StrategyKind.CALL_DEBIT_SPREAD,

    'iron condor': StrategyKind.IRON_CONDOR,
    'ic': StrategyKind.IRON_CONDOR,

    'straddle': StrategyKind.STRADDLE,
    'long straddle': StrategyKind.STRADDLE,
    'short straddle': StrategyKind.STRADDLE,
    'strangle': StrategyKind.STRANGLE,
    'long strangle': StrategyKind.STRANGLE,
    'short strangle': StrategyKind.STRANGLE,

    'calendar': StrategyKind.CALENDAR,
    'calendar spread': StrategyKind.CALENDAR,
    'horizontal spread': StrategyKind.CALENDAR,
    'diagonal': StrategyKind.DIAGONAL,
    'diagonal spread': StrategyKind.DIAGONAL,

    'cash secured put': StrategyKind.CASH_SECURED_PUT,
    'csp': StrategyKind.CASH_SECURED_PUT,
    'covered call': StrategyKind.COVERED_CALL,
    'cc': StrategyKind.COVERED_CALL,

    'butterfly': StrategyKind.BUTTERFLY,
    'butterfly spread': StrategyKind.BUTTERFLY,
    'long butterfly': StrategyKind.BUTTERFLY,
    'call butterfly': StrategyKind.BUTTERFLY,
    'put butterfly': StrategyKind.BUTTERFLY,
}


# ============================================================================
# Public API
# ============================================================================

def normalize_strategy(label: Optional[str]) -> str:
    """'  Put_Credit-Spread ' -> 'put credit spread'"""
    text = re.sub(r'[^a-z0-9]+', ' ', (label or '').lower())
    return ' '.join(text.split())


# Longest first; equal lengths keep table order.
_PHRASES = sorted(STRATEGY_ALIASES, key=len, reverse=True)


def resolve_strategy(label: Optional[str]) -> Optional[StrategyKind]:
    """
    Resolve a free-form label to one kind.

    The normalized label is scanned for the longest alias phrase it contains
    as whole words, then dispatched on that exact key:

        'Short Iron Condor'      -> IRON_CONDOR
        'SPY put credit spread'  -> PUT_CREDIT_SPREAD  (not CREDIT_SPREAD)
        'Jade Lizard'            -> None
    """
    padded = f" {normalize_strategy(label)} "
    for phrase in _PHRASES:
        if f" {phrase} " in padded:
            return STRATEGY_ALIASES[phrase]
    return None


def get_template(kind: StrategyKind) -> StrategyTemplate:
    return _TEMPLATES[kind]


def get_all_templates() -> Dict[StrategyKind, StrategyTemplate]:
    return dict(_TEMPLATES)
