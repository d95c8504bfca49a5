"""
Domain Models - Positions, Legs and Cash Flows

DESIGN PRINCIPLES:
1. Legs are value objects owned by a Position (no lifecycle of their own)
2. Cash flows reference a position by id only - the ledger outlives the position
3. Money is Decimal; every derived money field is rounded to cents
4. Position numeric fields are a projection of the ledger, never the source of truth

USAGE:
    leg = Leg.from_dict({
        'action': 'Sell to Open', 'optionType': 'Put',
        'strike': 100, 'expiration': '2026-03-20', 'premium': 1.20,
    })
    position = Position(symbol='SPY', strategy='put credit spread',
                        broker=Broker.FIDELITY, legs=[leg])
    position.to_dict()   # persisted camelCase shape
"""

from dataclasses import dataclass, field
from datetime import datetime, date, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Dict, Any
import uuid

from options_journal.core.exceptions import InvalidPayloadError


CENT = Decimal('0.01')


# ============================================================================
# Helpers
# ============================================================================

def utcnow() -> datetime:
    """Naive UTC timestamp (what the database columns store)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """
    Coerce user input (str/int/float/Decimal) to Decimal.

    Raises:
        InvalidPayloadError: value is missing or not a finite number
    """
    if value is None or isinstance(value, bool):
        raise InvalidPayloadError(f"{field_name} must be a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidPayloadError(f"{field_name} must be a number, got {value!r}")
    if not result.is_finite():
        raise InvalidPayloadError(f"{field_name} must be finite, got {value!r}")
    return result


def to_money(value: Any) -> Optional[Decimal]:
    """Round to cents (half-up). None stays None."""
    if value is None:
        return None
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_date(value: Any, field_name: str = "date") -> date:
    """Accept date, datetime or an ISO string ('2026-03-20' or '2026-03-20T00:00:00Z')."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value.strip()) >= 10:
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise InvalidPayloadError(f"{field_name} must be a date, got {value!r}")


def to_datetime(value: Any, field_name: str = "date") -> datetime:
    """Naive UTC datetime from a datetime, date or ISO string."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return to_datetime(datetime.fromisoformat(value.strip().replace('Z', '+00:00')), field_name)
        except ValueError:
            pass
    raise InvalidPayloadError(f"{field_name} must be a date/time, got {value!r}")


def _money_out(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


# ============================================================================
# Enumerations
# ============================================================================

class PositionType(Enum):
    STOCK = "stock"
    OPTION = "option"
    CRYPTO = "crypto"
    ETF = "etf"
    FUTURE = "future"
    BOND = "bond"


class Broker(Enum):
    FIDELITY = "Fidelity"
    SCHWAB = "Charles Schwab"
    WEBULL = "Webull"
    ROBINHOOD = "Robinhood"
    TRADIER = "Tradier"
    IBKR = "IBKR"
    ETRADE = "E*TRADE"
    TD_AMERITRADE = "TD Ameritrade"


class PositionStatus(Enum):
    """Position lifecycle status"""
    OPEN = "Open"          # Initial state, the only one that mutates
    CLOSED = "Closed"      # Terminal
    ROLLED = "Rolled"      # Terminal, spawned an Open successor


class ClosedStatus(Enum):
    """How a finished position turned out"""
    WIN = "win"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


class LegAction(Enum):
    BUY_TO_OPEN = "Buy to Open"
    SELL_TO_OPEN = "Sell to Open"
    BUY_TO_CLOSE = "Buy to Close"
    SELL_TO_CLOSE = "Sell to Close"

    @property
    def is_opening(self) -> bool:
        return self in (LegAction.BUY_TO_OPEN, LegAction.SELL_TO_OPEN)

    @property
    def is_closing(self) -> bool:
        return not self.is_opening

    @property
    def is_buy(self) -> bool:
        return self in (LegAction.BUY_TO_OPEN, LegAction.BUY_TO_CLOSE)

    @property
    def is_sell(self) -> bool:
        return not self.is_buy

    @classmethod
    def parse(cls, value: Any) -> 'LegAction':
        """Accepts 'Sell to Open', 'sell_to_open', 'STO' (any case)."""
        if isinstance(value, cls):
            return value
        key = str(value or '').strip().lower().replace('_', ' ').replace('-', ' ')
        key = ' '.join(key.split())
        for action in cls:
            if key == action.value.lower():
                return action
        short = _ACTION_ABBREVIATIONS.get(key)
        if short:
            return short
        raise InvalidPayloadError(f"Unknown leg action: {value!r}")


_ACTION_ABBREVIATIONS = {
    'bto': LegAction.BUY_TO_OPEN,
    'sto': LegAction.SELL_TO_OPEN,
    'btc': LegAction.BUY_TO_CLOSE,
    'stc': LegAction.SELL_TO_CLOSE,
}


class OptionType(Enum):
    CALL = "Call"
    PUT = "Put"

    @classmethod
    def parse(cls, value: Any) -> 'OptionType':
        if isinstance(value, cls):
            return value
        key = str(value or '').strip().lower()
        if key in ('call', 'c'):
            return cls.CALL
        if key in ('put', 'p'):
            return cls.PUT
        raise InvalidPayloadError(f"Unknown option type: {value!r}")


class CashFlowType(Enum):
    OPEN_PREMIUM = "OPEN_PREMIUM"
    CLOSE_PREMIUM = "CLOSE_PREMIUM"
    ROLL_OUT = "ROLL_OUT"
    ROLL_IN = "ROLL_IN"
    ASSIGNMENT = "ASSIGNMENT"
    EXERCISE = "EXERCISE"
    STOCK_BUY = "STOCK_BUY"
    STOCK_SELL = "STOCK_SELL"


def parse_enum(enum_cls, value: Any, field_name: str):
    """Match an Enum by value or name, ignoring case."""
    if isinstance(value, enum_cls):
        return value
    key = str(value or '').strip().lower()
    for member in enum_cls:
        if key in (str(member.value).lower(), member.name.lower()):
            return member
    choices = ', '.join(str(m.value) for m in enum_cls)
    raise InvalidPayloadError(f"{field_name} must be one of: {choices} (got {value!r})")


def classify_closed_status(realized_pnl: Decimal, band: Decimal = CENT) -> ClosedStatus:
    """win above +band, loss below -band, breakeven inside."""
    if realized_pnl > band:
        return ClosedStatus.WIN
    if realized_pnl < -band:
        return ClosedStatus.LOSS
    return ClosedStatus.BREAKEVEN


# ============================================================================
# Value Objects
# ============================================================================

@dataclass
class Leg:
    """
    One option contract line inside a position.

    premium is the per-contract option price (1.20 means $120 per contract).
    exit_price / market_value are stamped when the position closes.
    """
    action: LegAction
    option_type: OptionType
    strike: Decimal
    expiration: date
    premium: Decimal
    quantity: int = 1
    id: str = field(default_factory=new_id)

    # === EXIT STATE ===
    exit_price: Optional[Decimal] = None
    market_value: Optional[Decimal] = None

    @property
    def is_call(self) -> bool:
        return self.option_type == OptionType.CALL

    @property
    def is_put(self) -> bool:
        return self.option_type == OptionType.PUT

    def signed_cash(self, multiplier: int = 100) -> Decimal:
        """Cash of the opening fill: + for sells (received), - for buys (paid)."""
        cash = self.premium * self.quantity * multiplier
        return cash if self.action.is_sell else -cash

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Leg':
        """
        Build a Leg from request data (camelCase or snake_case keys).

        Coerces numbers; premium sanity is checked by the caller.
        """
        if isinstance(data, Leg):
            return data
        if not isinstance(data, dict):
            raise InvalidPayloadError(f"Leg must be an object, got {type(data).__name__}")

        option_type = data.get('optionType', data.get('option_type'))
        quantity_raw = data.get('quantity', 1)
        if quantity_raw in (None, ''):
            quantity_raw = 1
        quantity = to_decimal(quantity_raw, 'quantity')
        if quantity != quantity.to_integral_value() or quantity <= 0:
            raise InvalidPayloadError(f"Leg quantity must be a positive whole number, got {quantity_raw!r}")

        return cls(
            action=LegAction.parse(data.get('action')),
            option_type=OptionType.parse(option_type),
            strike=to_decimal(data.get('strike'), 'strike'),
            expiration=to_date(data.get('expiration'), 'expiration'),
            premium=to_decimal(data.get('premium'), 'premium'),
            quantity=int(quantity),
            id=data.get('id') or new_id(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'action': self.action.value,
            'optionType': self.option_type.value,
            'strike': float(self.strike),
            'expiration': self.expiration.isoformat(),
            'premium': float(self.premium),
            'quantity': self.quantity,
            'exitPrice': _money_out(self.exit_price),
            'marketValue': _money_out(self.market_value),
        }


# ============================================================================
# Core Entities
# ============================================================================

@dataclass
class Position:
    """
    A stock-style or multi-leg option position.

    Lifecycle:
        OPEN → CLOSED
        OPEN → ROLLED (archived, spawns a new OPEN successor)

    archived is an orthogonal soft-delete flag.
    """
    id: str = field(default_factory=new_id)
    symbol: str = ""
    type: PositionType = PositionType.OPTION
    strategy: str = ""
    broker: Broker = Broker.FIDELITY

    # === STATE ===
    status: PositionStatus = PositionStatus.OPEN
    archived: bool = False
    closed_status: Optional[ClosedStatus] = None
    version: int = 1

    # === SINGLE-INSTRUMENT FIELDS (required when there are no legs) ===
    quantity: Optional[Decimal] = None
    entry_price: Optional[Decimal] = None

    # === ACCOUNTING (projection of the ledger) ===
    total_cost: Optional[Decimal] = None
    net_premium: Optional[Decimal] = None
    premium_received: Optional[Decimal] = None
    premium_paid: Optional[Decimal] = None
    revenue: Optional[Decimal] = None
    fees: Optional[Decimal] = None
    exit_price: Optional[Decimal] = None
    market_value: Optional[Decimal] = None
    realized_pnl: Optional[Decimal] = None
    realized_return_pct: Optional[Decimal] = None

    # === DISPLAY METRICS (creation-time estimate) ===
    max_profit: Optional[Decimal] = None
    max_loss: Optional[Decimal] = None
    break_even_low: Optional[Decimal] = None
    break_even_high: Optional[Decimal] = None

    # === ROLL LINEAGE ===
    rolled_from: Optional[str] = None
    roll_group_id: Optional[str] = None
    cumulative_realized_pnl: Optional[Decimal] = None
    cumulative_net_premium: Optional[Decimal] = None
    cumulative_break_even: Optional[Decimal] = None

    # === DATES ===
    open_date: Optional[datetime] = None
    close_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    legs: List[Leg] = field(default_factory=list)
    notes: str = ""

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    @property
    def has_legs(self) -> bool:
        return len(self.legs) > 0

    def to_dict(self) -> Dict[str, Any]:
        """Persisted shape, field names kept for existing consumers."""
        return {
            'id': self.id,
            'symbol': self.symbol,
            'type': self.type.value,
            'strategy': self.strategy,
            'broker': self.broker.value,
            'status': self.status.value,
            'archived': self.archived,
            'closedStatus': self.closed_status.value if self.closed_status else None,
            'quantity': _money_out(self.quantity),
            'entryPrice': _money_out(self.entry_price),
            'exitPrice': _money_out(self.exit_price),
            'totalCost': _money_out(self.total_cost),
            'fees': _money_out(self.fees),
            'netPremium': _money_out(self.net_premium),
            'premiumReceived': _money_out(self.premium_received),
            'premiumPaid': _money_out(self.premium_paid),
            'revenue': _money_out(self.revenue),
            'marketValue': _money_out(self.market_value),
            'maxProfit': _money_out(self.max_profit),
            'maxLoss': _money_out(self.max_loss),
            'breakEvenLow': _money_out(self.break_even_low),
            'breakEvenHigh': _money_out(self.break_even_high),
            'realizedPnL': _money_out(self.realized_pnl),
            'realizedReturnPct': _money_out(self.realized_return_pct),
            'rolledFrom': self.rolled_from,
            'rollGroupId': self.roll_group_id,
            'cumulativeRealizedPnL': _money_out(self.cumulative_realized_pnl),
            'cumulativeNetPremium': _money_out(self.cumulative_net_premium),
            'cumulativeBreakEven': _money_out(self.cumulative_break_even),
            'openDate': self.open_date.isoformat() if self.open_date else None,
            'closeDate': self.close_date.isoformat() if self.close_date else None,
            'legs': [leg.to_dict() for leg in self.legs],
            'notes': self.notes,
        }


@dataclass
class CashFlowEntry:
    """
    One signed cash movement in the ledger.

    amount: + = cash received, - = cash paid. The only field summed for P&L.
    """
    position_id: str
    type: CashFlowType
    amount: Decimal
    symbol: str = ""
    strategy: str = ""
    date: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)
    related_position_id: Optional[str] = None
    roll_group_id: Optional[str] = None
    quantity: Optional[Decimal] = None
    description: str = ""
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'positionId': self.position_id,
            'relatedPositionId': self.related_position_id,
            'rollGroupId': self.roll_group_id,
            'symbol': self.symbol,
            'strategy': self.strategy,
            'date': self.date.isoformat() if self.date else None,
            'type': self.type.value,
            'amount': float(self.amount),
            'quantity': _money_out(self.quantity),
            'description': self.description,
        }
