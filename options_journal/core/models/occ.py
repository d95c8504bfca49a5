"""
OCC option symbols (compact form, no root padding).

    SPY + 260320 + P + 00100000  ->  SPY260320P00100000
"""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple

from options_journal.core.models.domain import Leg, OptionType, to_date


class OccParts(NamedTuple):
    underlying: str
    expiration: date
    option_type: OptionType
    strike: Decimal


def build_occ_symbol(underlying: str, expiration, strike, option_type) -> str:
    """Underlying, YYMMDD, C/P, strike * 1000 zero-padded to 8 digits."""
    if not underlying:
        raise ValueError("OCC symbol needs an underlying")
    exp = to_date(expiration, 'expiration')
    kind = OptionType.parse(option_type)
    milli = (Decimal(str(strike)) * 1000).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return (
        f"{underlying.strip().upper()}"
        f"{exp.strftime('%y%m%d')}"
        f"{'C' if kind == OptionType.CALL else 'P'}"
        f"{int(milli):08d}"
    )


def occ_symbol_for_leg(underlying: str, leg: Leg) -> str:
    return build_occ_symbol(underlying, leg.expiration, leg.strike, leg.option_type)


def parse_occ_symbol(symbol: str) -> OccParts:
    """Inverse of build_occ_symbol. Raises ValueError on malformed input."""
    text = (symbol or '').replace(' ', '')
    if len(text) < 16:
        raise ValueError(f"Invalid OCC symbol length: {symbol!r}")

    root, exp_str, type_char, strike_str = text[:-15], text[-15:-9], text[-9], text[-8:]
    if type_char not in ('C', 'P') or not strike_str.isdigit():
        raise ValueError(f"Invalid OCC symbol: {symbol!r}")

    return OccParts(
        underlying=root,
        expiration=datetime.strptime(exp_str, "%y%m%d").date(),
        option_type=OptionType.CALL if type_char == 'C' else OptionType.PUT,
        strike=Decimal(strike_str) / 1000,
    )
