"""
Functional Calculation Layer - Pure Functions for Positions

KEY INSIGHT: Separate DATA (domain.py) from CALCULATIONS (this file)

Everything here is a display estimate computed once at creation. Nothing in
this file feeds the ledger; the only consumer on the accounting side is
close(), which uses max_loss as the denominator of the realized return.

Conventions:
- Dollar amounts are for the whole position (per-share * contracts * multiplier)
- Break-evens are underlying prices
- None means unbounded or not computable for the strategy
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

import options_journal.core.models.domain as dm
from options_journal.core.models.strategy_templates import (
    StrategyKind,
    get_template,
    resolve_strategy,
)


# ============================================================================
# PART 1: Results
# ============================================================================

@dataclass(frozen=True)
class PremiumSummary:
    """Opening cash of a set of legs, in dollars"""
    received: Decimal
    paid: Decimal

    @property
    def net(self) -> Decimal:
        """+ = credit, - = debit"""
        return self.received - self.paid


@dataclass(frozen=True)
class PnLEstimate:
    max_profit: Optional[Decimal] = None
    max_loss: Optional[Decimal] = None
    break_even_low: Optional[Decimal] = None
    break_even_high: Optional[Decimal] = None

    @classmethod
    def rounded(cls, max_profit=None, max_loss=None, break_even_low=None, break_even_high=None) -> 'PnLEstimate':
        return cls(
            max_profit=dm.to_money(max_profit),
            max_loss=dm.to_money(max_loss),
            break_even_low=dm.to_money(break_even_low),
            break_even_high=dm.to_money(break_even_high),
        )


# ============================================================================
# PART 2: Cash
# ============================================================================

def summarize_premiums(legs: Sequence[dm.Leg], multiplier: int = 100) -> PremiumSummary:
    """
    Sum opening premiums by direction.

    Usage:
        summary = summarize_premiums(position.legs)
        summary.net   # 60.00 for STO 1.20 / BTO 0.60
    """
    received = Decimal('0')
    paid = Decimal('0')
    for leg in legs:
        cash = leg.signed_cash(multiplier)
        if cash >= 0:
            received += cash
        else:
            paid -= cash
    return PremiumSummary(received=dm.to_money(received), paid=dm.to_money(paid))


# ============================================================================
# PART 3: Strategy estimates
# ============================================================================

def _contracts(legs: Sequence[dm.Leg]) -> int:
    return legs[0].quantity if legs else 1


def _vertical(legs: Sequence[dm.Leg], multiplier: int) -> PnLEstimate:
    short = next((l for l in legs if l.action == dm.LegAction.SELL_TO_OPEN), None)
    long = next((l for l in legs if l.action == dm.LegAction.BUY_TO_OPEN), None)
    if len(legs) != 2 or short is None or long is None:
        return PnLEstimate()

    size = _contracts(legs) * multiplier
    net = summarize_premiums(legs, multiplier).net
    width = abs(short.strike - long.strike) * size
    per_share = abs(net) / size

    if net > 0:
        # credit: short leg is the one closer to the money
        be = short.strike - per_share if short.is_put else short.strike + per_share
        estimate = dict(max_profit=net, max_loss=width - net)
        side = short
    else:
        debit = -net
        be = long.strike - per_share if long.is_put else long.strike + per_share
        estimate = dict(max_profit=width - debit, max_loss=debit)
        side = long

    if side.is_put:
        return PnLEstimate.rounded(break_even_low=be, **estimate)
    return PnLEstimate.rounded(break_even_high=be, **estimate)


def _iron_condor(legs: Sequence[dm.Leg], multiplier: int) -> PnLEstimate:
    puts = [l for l in legs if l.is_put]
    calls = [l for l in legs if l.is_call]
    if len(puts) != 2 or len(calls) != 2:
        return PnLEstimate()

    size = _contracts(legs) * multiplier
    net = summarize_premiums(legs, multiplier).net
    put_width = max(l.strike for l in puts) - min(l.strike for l in puts)
    call_width = max(l.strike for l in calls) - min(l.strike for l in calls)
    width = max(put_width, call_width) * size

    if net <= 0:
        return PnLEstimate.rounded(max_profit=width + net, max_loss=-net)

    short_put = next((l for l in puts if l.action == dm.LegAction.SELL_TO_OPEN), None)
    short_call = next((l for l in calls if l.action == dm.LegAction.SELL_TO_OPEN), None)
    per_share = net / size
    return PnLEstimate.rounded(
        max_profit=net,
        max_loss=width - net,
        break_even_low=short_put.strike - per_share if short_put else None,
        break_even_high=short_call.strike + per_share if short_call else None,
    )


def _cash_secured_put(legs: Sequence[dm.Leg], multiplier: int) -> PnLEstimate:
    put = next((l for l in legs if l.is_put and l.action == dm.LegAction.SELL_TO_OPEN), None)
    if put is None:
        return PnLEstimate()
    size = put.quantity * multiplier
    return PnLEstimate.rounded(
        max_profit=put.premium * size,
        max_loss=(put.strike - put.premium) * size,
        break_even_low=put.strike - put.premium,
    )


def _covered_call(
    legs: Sequence[dm.Leg],
    multiplier: int,
    entry_price: Optional[Decimal],
) -> PnLEstimate:
    call = next((l for l in legs if l.is_call and l.action == dm.LegAction.SELL_TO_OPEN), None)
    if call is None:
        return PnLEstimate()
    size = call.quantity * multiplier
    if entry_price is None:
        return PnLEstimate.rounded(max_profit=call.premium * size)
    return PnLEstimate.rounded(
        max_profit=(call.strike - entry_price + call.premium) * size,
        max_loss=(entry_price - call.premium) * size,
        break_even_low=entry_price - call.premium,
    )


def _straddle(legs: Sequence[dm.Leg], multiplier: int) -> PnLEstimate:
    puts = [l for l in legs if l.is_put]
    calls = [l for l in legs if l.is_call]
    if len(puts) != 1 or len(calls) != 1:
        return PnLEstimate()

    net = summarize_premiums(legs, multiplier).net
    per_share = abs(net) / (_contracts(legs) * multiplier)
    low = puts[0].strike - per_share
    high = calls[0].strike + per_share

    if net < 0:
        # long: loss capped at the debit, upside open
        return PnLEstimate.rounded(max_loss=-net, break_even_low=low, break_even_high=high)
    return PnLEstimate.rounded(max_profit=net, break_even_low=low, break_even_high=high)


def _stock(quantity: Optional[Decimal], entry_price: Optional[Decimal]) -> PnLEstimate:
    if quantity is None or entry_price is None:
        return PnLEstimate()
    return PnLEstimate.rounded(max_loss=entry_price * quantity, break_even_low=entry_price)


def calculate_pnl(
    strategy: Optional[str],
    legs: Sequence[dm.Leg],
    quantity: Optional[Decimal] = None,
    entry_price: Optional[Decimal] = None,
    multiplier: int = 100,
) -> PnLEstimate:
    """
    Estimate max profit, max loss and break-evens for a new position.

    Usage:
        est = calculate_pnl("put credit spread", legs)
        est.max_profit, est.max_loss, est.break_even_low
    """
    if not legs:
        return _stock(quantity, entry_price)

    kind = resolve_strategy(strategy)
    if kind is not None and get_template(kind).is_vertical:
        return _vertical(legs, multiplier)
    if kind == StrategyKind.IRON_CONDOR:
        return _iron_condor(legs, multiplier)
    if kind == StrategyKind.CASH_SECURED_PUT:
        return _cash_secured_put(legs, multiplier)
    if kind == StrategyKind.COVERED_CALL:
        return _covered_call(legs, multiplier, entry_price)
    if kind in (StrategyKind.STRADDLE, StrategyKind.STRANGLE):
        return _straddle(legs, multiplier)
    return PnLEstimate()


# ============================================================================
# PART 4: Close / roll arithmetic
# ============================================================================

def leg_quantity(legs: List[dm.Leg]) -> Optional[int]:
    """Common contract count across legs, None when the legs disagree."""
    quantities = {l.quantity for l in legs}
    if len(quantities) != 1:
        return None
    return quantities.pop()


def realized_return_pct(
    realized_pnl: Decimal,
    max_loss: Optional[Decimal],
    total_cost: Optional[Decimal],
) -> Optional[Decimal]:
    """Return on risk: by max loss when known, else by capital at open."""
    if max_loss is not None and max_loss > 0:
        return dm.to_money(realized_pnl / max_loss * 100)
    if total_cost:
        return dm.to_money(realized_pnl / abs(total_cost) * 100)
    return None
