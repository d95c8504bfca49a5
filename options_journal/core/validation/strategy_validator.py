"""
Strategy Validator - leg structure checks run before a position is stored.

Pure: no I/O, no mutation of the legs. The verdict depends only on the
multiset of legs, never on their order.

Usage:
    violation = validate_strategy("put credit spread", legs)
    if violation:
        print(violation.rule, violation.message)
"""

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from options_journal.core.models.domain import Leg, LegAction, OptionType
from options_journal.core.models.strategy_templates import (
    StrategyKind,
    get_template,
    resolve_strategy,
)


@dataclass(frozen=True)
class StrategyViolation:
    """First rule a set of legs broke."""
    rule: str
    message: str


class LegSet:
    """Precomputed views over the legs shared by every rule."""

    def __init__(self, legs: Sequence[Leg], open_only: bool):
        self.legs = list(legs)
        self.open_only = open_only
        self.calls = [l for l in self.legs if l.option_type == OptionType.CALL]
        self.puts = [l for l in self.legs if l.option_type == OptionType.PUT]
        self.strikes = {l.strike for l in self.legs}
        self.expirations = {l.expiration for l in self.legs}
        self.actions = Counter(l.action for l in self.legs)

    @property
    def same_expiration(self) -> bool:
        return len(self.expirations) == 1

    @property
    def same_strike(self) -> bool:
        return len(self.strikes) == 1

    @property
    def opening_count(self) -> int:
        return self.actions[LegAction.BUY_TO_OPEN] + self.actions[LegAction.SELL_TO_OPEN]

    @property
    def single_direction(self) -> bool:
        """Both long or both short"""
        bto = self.actions[LegAction.BUY_TO_OPEN]
        sto = self.actions[LegAction.SELL_TO_OPEN]
        return (bto == len(self.legs) and sto == 0) or (sto == len(self.legs) and bto == 0)


Rule = Callable[[LegSet], Optional[StrategyViolation]]


def _has(legs: List[Leg], strike: Decimal, action: LegAction) -> bool:
    return any(l.strike == strike and l.action == action for l in legs)


def _guided(kind: StrategyKind, headline: str) -> str:
    guide = get_template(kind).guide
    if guide is None:
        return headline
    return f"{headline}\nExpected:\n{guide.render()}"


# ============================================================================
# Generic rules
# ============================================================================

def _no_close_actions(ls: LegSet) -> Optional[StrategyViolation]:
    if ls.open_only and any(l.action.is_closing for l in ls.legs):
        return StrategyViolation(
            'CloseActionNotAllowed',
            "New positions must use only Buy/Sell to Open actions (BTO / STO).",
        )
    return None


# ============================================================================
# Vertical spreads
# ============================================================================

def _vertical(ls: LegSet) -> Optional[StrategyViolation]:
    if len(ls.legs) != 2:
        return StrategyViolation('LegCount', "Vertical spreads must have exactly 2 legs.")
    if not ls.same_expiration:
        return StrategyViolation('ExpirationMismatch', "Vertical spread legs must share the same expiration.")
    if len(ls.calls) != 2 and len(ls.puts) != 2:
        return StrategyViolation('OptionTypeMix', "Vertical spreads must be either 2 CALLs or 2 PUTs.")
    if ls.open_only and ls.opening_count != 2:
        return StrategyViolation('OpeningActions', "Vertical spreads must be opened using only BTO / STO.")
    return None


def _put_credit_spread(ls: LegSet) -> Optional[StrategyViolation]:
    if len(ls.puts) != 2:
        return StrategyViolation('OptionTypeMix', "Put Credit Spread requires exactly 2 PUTs.")
    strikes = [l.strike for l in ls.puts]
    if not (_has(ls.puts, max(strikes), LegAction.SELL_TO_OPEN)
            and _has(ls.puts, min(strikes), LegAction.BUY_TO_OPEN)):
        return StrategyViolation(
            'StrikeActionPairing',
            _guided(StrategyKind.PUT_CREDIT_SPREAD, "Put Credit Spread setup incorrect."),
        )
    return None


def _call_credit_spread(ls: LegSet) -> Optional[StrategyViolation]:
    if len(ls.calls) != 2:
        return StrategyViolation('OptionTypeMix', "Call Credit Spread requires exactly 2 CALLs.")
    strikes = [l.strike for l in ls.calls]
    if not (_has(ls.calls, min(strikes), LegAction.SELL_TO_OPEN)
            and _has(ls.calls, max(strikes), LegAction.BUY_TO_OPEN)):
        return StrategyViolation(
            'StrikeActionPairing',
            _guided(StrategyKind.CALL_CREDIT_SPREAD, "Call Credit Spread setup incorrect."),
        )
    return None


# ============================================================================
# Iron condor
# ============================================================================

def _iron_condor(ls: LegSet) -> Optional[StrategyViolation]:
    if len(ls.legs) != 4:
        return StrategyViolation('LegCount', "Iron Condor must have exactly 4 legs.")
    if not ls.same_expiration:
        return StrategyViolation('ExpirationMismatch', "Iron Condor legs must all share the same expiration.")
    if len(ls.puts) != 2 or len(ls.calls) != 2:
        return StrategyViolation('OptionTypeMix', "Iron Condor requires 2 PUTs and 2 CALLs.")

    put_strikes = [l.strike for l in ls.puts]
    if not (_has(ls.puts, max(put_strikes), LegAction.SELL_TO_OPEN)
            and _has(ls.puts, min(put_strikes), LegAction.BUY_TO_OPEN)):
        return StrategyViolation(
            'PutSide',
            _guided(StrategyKind.IRON_CONDOR, "Iron Condor PUT side incorrect."),
        )

    call_strikes = [l.strike for l in ls.calls]
    if not (_has(ls.calls, min(call_strikes), LegAction.SELL_TO_OPEN)
            and _has(ls.calls, max(call_strikes), LegAction.BUY_TO_OPEN)):
        return StrategyViolation(
            'CallSide',
            _guided(StrategyKind.IRON_CONDOR, "Iron Condor CALL side incorrect."),
        )
    return None


# ============================================================================
# Volatility structures
# ============================================================================

def _one_call_one_put(name: str) -> Rule:
    def rule(ls: LegSet) -> Optional[StrategyViolation]:
        if len(ls.legs) != 2:
            return StrategyViolation('LegCount', f"{name} must have exactly 2 legs.")
        if len(ls.calls) != 1 or len(ls.puts) != 1:
            return StrategyViolation('OptionTypeMix', f"{name} requires 1 CALL and 1 PUT.")
        return None
    return rule


def _single_direction(name: str) -> Rule:
    def rule(ls: LegSet) -> Optional[StrategyViolation]:
        if ls.open_only and not ls.single_direction:
            return StrategyViolation(
                'MixedDirection',
                f"{name} opening must be either:\n"
                f"• Both Buy to Open (long {name.lower()})\n"
                f"• Both Sell to Open (short {name.lower()})",
            )
        return None
    return rule


def _straddle_strikes(ls: LegSet) -> Optional[StrategyViolation]:
    if not ls.same_strike:
        strikes = ', '.join(str(s) for s in sorted(ls.strikes))
        return StrategyViolation(
            'StrikeMismatch',
            f"Straddle legs must share the same strike (got {strikes}).",
        )
    return None


def _straddle_expirations(ls: LegSet) -> Optional[StrategyViolation]:
    if not ls.same_expiration:
        return StrategyViolation('ExpirationMismatch', "Straddle legs must share the same expiration.")
    return None


def _strangle_strikes(ls: LegSet) -> Optional[StrategyViolation]:
    if ls.same_strike:
        return StrategyViolation('StrikeMismatch', "Strangle strikes must be different.")
    return None


def _strangle_expirations(ls: LegSet) -> Optional[StrategyViolation]:
    if not ls.same_expiration:
        return StrategyViolation('ExpirationMismatch', "Strangle legs must share the same expiration.")
    return None


# ============================================================================
# Time spreads
# ============================================================================

def _calendar(ls: LegSet) -> Optional[StrategyViolation]:
    if len(ls.legs) != 2:
        return StrategyViolation('LegCount', "Calendar spread must have exactly 2 legs.")
    if not ls.same_strike:
        return StrategyViolation('StrikeMismatch', "Calendar spread legs must share the same strike.")
    if len(ls.expirations) != 2:
        return StrategyViolation('ExpirationMismatch', "Calendar spread legs must use two different expirations.")
    return None


def _diagonal(ls: LegSet) -> Optional[StrategyViolation]:
    if len(ls.legs) != 2:
        return StrategyViolation('LegCount', "Diagonal spread must have exactly 2 legs.")
    if ls.same_strike:
        return StrategyViolation('StrikeMismatch', "Diagonal spread strikes must be different.")
    if ls.same_expiration:
        return StrategyViolation('ExpirationMismatch', "Diagonal spread expirations must be different.")
    return None


# ============================================================================
# Single-option income strategies
# ============================================================================

def _cash_secured_put(ls: LegSet) -> Optional[StrategyViolation]:
    if len(ls.legs) != 1 or len(ls.puts) != 1:
        return StrategyViolation('LegCount', "Cash Secured Put must have a single PUT leg.")
    if ls.legs[0].action != LegAction.SELL_TO_OPEN:
        return StrategyViolation('OpeningActions', "Cash Secured Put must be Sell to Open.")
    return None


def _covered_call(ls: LegSet) -> Optional[StrategyViolation]:
    if not ls.calls:
        return StrategyViolation('OptionTypeMix', "Covered Call must include a CALL option.")
    if not any(l.action == LegAction.SELL_TO_OPEN for l in ls.calls):
        return StrategyViolation('OpeningActions', "Covered Call must sell a CALL (Sell to Open).")
    return None


def _butterfly(ls: LegSet) -> Optional[StrategyViolation]:
    # Strike spacing and the 1-2-1 ratio are not checked.
    if len(ls.legs) not in (3, 4):
        return StrategyViolation('LegCount', "Butterfly must have 3 or 4 legs.")
    if not ls.same_expiration:
        return StrategyViolation('ExpirationMismatch', "Butterfly legs must share the same expiration.")
    return None


# ============================================================================
# Dispatch
# ============================================================================

RULES: Dict[StrategyKind, Tuple[Rule, ...]] = {
    StrategyKind.STOCK: (),
    StrategyKind.VERTICAL: (_vertical,),
    StrategyKind.CREDIT_SPREAD: (_vertical,),
    StrategyKind.DEBIT_SPREAD: (_vertical,),
    StrategyKind.PUT_DEBIT_SPREAD: (_vertical,),
    StrategyKind.CALL_DEBIT_SPREAD: (_vertical,),
    StrategyKind.PUT_CREDIT_SPREAD: (_vertical, _put_credit_spread),
    StrategyKind.CALL_CREDIT_SPREAD: (_vertical, _call_credit_spread),
    StrategyKind.IRON_CONDOR: (_iron_condor,),
    StrategyKind.STRADDLE: (
        _one_call_one_put("Straddle"),
        _straddle_strikes,
        _straddle_expirations,
        _single_direction("Straddle"),
    ),
    StrategyKind.STRANGLE: (
        _one_call_one_put("Strangle"),
        _strangle_strikes,
        _strangle_expirations,
        _single_direction("Strangle"),
    ),
    StrategyKind.CALENDAR: (_calendar,),
    StrategyKind.DIAGONAL: (_diagonal,),
    StrategyKind.CASH_SECURED_PUT: (_cash_secured_put,),
    StrategyKind.COVERED_CALL: (_covered_call,),
    StrategyKind.BUTTERFLY: (_butterfly,),
}


def validate_strategy(
    strategy: Optional[str],
    legs: Sequence[Leg],
    allow_close_or_roll: bool = False,
) -> Optional[StrategyViolation]:
    """
    Check the leg structure against the named strategy.

    Args:
        strategy: free-form label, resolved by exact alias lookup
        legs: normalized legs
        allow_close_or_roll: accept "to Close" actions (roll / close tickets)

    Returns:
        None when valid, otherwise the first violated rule.
        Unknown strategy labels only get the generic checks.
    """
    if not legs:
        return StrategyViolation('NoLegs', "No option legs provided.")

    ls = LegSet(legs, open_only=not allow_close_or_roll)

    violation = _no_close_actions(ls)
    if violation:
        return violation

    kind = resolve_strategy(strategy)
    if kind is None:
        return None

    for rule in RULES[kind]:
        violation = rule(ls)
        if violation:
            return violation
    return None
