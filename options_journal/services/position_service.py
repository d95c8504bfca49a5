"""
Position Service - lifecycle and cash accounting for positions

    create  -> Open            (OPEN_PREMIUM / STOCK_BUY)
    close   -> Closed          (CLOSE_PREMIUM / STOCK_SELL)
    roll    -> Rolled + Open   (CLOSE_PREMIUM on old, OPEN_PREMIUM on new, one roll group)
    archive / unarchive / delete / update

Sign convention everywhere: + = cash received, - = cash paid.
    total_cost  = -net_cash   (credit positions have negative total_cost)
    net_premium =  net_cash

The service flushes but never commits. Run it inside session_scope() so a
failed ledger write rolls back the position change with it.

Usage:
    with session_scope() as session:
        service = PositionService(session)
        position = service.create({...})
        service.close(position.id, '0.30')
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from sqlalchemy.orm import Session

import options_journal.core.models.domain as dm
from options_journal.config.settings import Settings, get_settings
from options_journal.core.exceptions import (
    ConcurrentModificationError,
    InvalidPayloadError,
    InvalidPremiumError,
    PositionNotFoundError,
    PositionNotOpenError,
    PremiumLooksLikeUSDError,
    ValidationFailedError,
)
from options_journal.core.models.calculations import (
    calculate_pnl,
    leg_quantity,
    realized_return_pct,
    summarize_premiums,
)
from options_journal.core.models.events import ChangeType
from options_journal.core.validation.strategy_validator import StrategyViolation, validate_strategy
from options_journal.repositories.position import PositionRepository
from options_journal.services.ledger import CashFlowLedger
from options_journal.services.notifier import (
    ChangeNotifier,
    LoggingNotifier,
    NullNotifier,
    safe_emit,
)

logger = logging.getLogger(__name__)


# Leg premium and strike columns are Numeric(12, 4)
PREMIUM_PLACES = Decimal("0.0001")

# Patchable through update(); everything else is state, lineage or a ledger projection
EDITABLE_FIELDS = {
    'symbol': 'symbol',
    'type': 'type',
    'strategy': 'strategy',
    'broker': 'broker',
    'notes': 'notes',
    'openDate': 'open_date',
    'open_date': 'open_date',
    'maxProfit': 'max_profit',
    'max_profit': 'max_profit',
    'maxLoss': 'max_loss',
    'max_loss': 'max_loss',
    'breakEvenLow': 'break_even_low',
    'break_even_low': 'break_even_low',
    'breakEvenHigh': 'break_even_high',
    'break_even_high': 'break_even_high',
}

_DISPLAY_METRICS = ('max_profit', 'max_loss', 'break_even_low', 'break_even_high')


def _get(data: Dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


# ============================================================================
# Request / result types
# ============================================================================

@dataclass(frozen=True)
class RollAdjustment:
    """Net cash of a roll ticket: credit is received, debit is paid."""
    amount: Decimal
    kind: str

    @property
    def signed(self) -> Decimal:
        if self.kind == 'credit':
            return dm.to_money(abs(self.amount))
        return dm.to_money(-abs(self.amount))

    @classmethod
    def coerce(cls, value: Union['RollAdjustment', Dict[str, Any]]) -> 'RollAdjustment':
        if isinstance(value, cls):
            return value
        if not isinstance(value, dict):
            raise InvalidPayloadError("adjustment must be an object with amount and type")
        kind = str(value.get('type', value.get('kind')) or '').strip().lower()
        if kind not in ('credit', 'debit'):
            raise InvalidPayloadError(f"adjustment type must be 'credit' or 'debit', got {kind!r}")
        return cls(amount=dm.to_decimal(value.get('amount'), 'adjustment amount'), kind=kind)


@dataclass
class RollResult:
    old_position: dm.Position
    new_position: dm.Position
    roll_group_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'oldPosition': self.old_position.to_dict(),
            'newPosition': self.new_position.to_dict(),
            'rollGroupId': self.roll_group_id,
        }


@dataclass
class ReconcileReport:
    """Stored realized P&L vs the figure re-derived from the ledger."""
    position_id: str
    status: dm.PositionStatus
    ledger_total: Decimal
    stored_realized_pnl: Optional[Decimal]
    ledger_realized_pnl: Optional[Decimal]

    @property
    def drift(self) -> Optional[Decimal]:
        if self.ledger_realized_pnl is None:
            return None
        return dm.to_money(self.ledger_realized_pnl - (self.stored_realized_pnl or Decimal('0')))

    @property
    def in_sync(self) -> bool:
        return not self.drift

    def to_dict(self) -> Dict[str, Any]:
        return {
            'positionId': self.position_id,
            'status': self.status.value,
            'ledgerTotal': float(self.ledger_total),
            'storedRealizedPnL': float(self.stored_realized_pnl) if self.stored_realized_pnl is not None else None,
            'ledgerRealizedPnL': float(self.ledger_realized_pnl) if self.ledger_realized_pnl is not None else None,
            'drift': float(self.drift) if self.drift is not None else None,
            'inSync': self.in_sync,
        }


# ============================================================================
# Service
# ============================================================================

class PositionService:
    """Open / close / roll positions and keep the ledger in step."""

    def __init__(
        self,
        session: Session,
        notifier: Optional[ChangeNotifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        if not self.settings.notify_changes:
            self.notifier: ChangeNotifier = NullNotifier()
        else:
            self.notifier = notifier or LoggingNotifier()
        self.positions = PositionRepository(session)
        self.ledger = CashFlowLedger(session)

    @property
    def multiplier(self) -> int:
        return self.settings.contract_multiplier

    # ------------------------------------------------------------------
    # Leg normalization
    # ------------------------------------------------------------------

    def check_premium(self, raw: Any, index: int = 0) -> Decimal:
        """
        Per-contract premium guard.

        Raises:
            InvalidPremiumError: not a finite number, zero, negative or finer than 4 places
            PremiumLooksLikeUSDError: above the ceiling (a dollar total typed as a price)
        """
        try:
            premium = dm.to_decimal(raw, 'premium')
        except InvalidPayloadError:
            raise InvalidPremiumError(f"Leg {index + 1}: premium must be a finite number, got {raw!r}") from None
        if premium <= 0:
            raise InvalidPremiumError(f"Leg {index + 1}: premium must be greater than 0, got {premium}")
        if premium > self.settings.max_leg_premium:
            raise PremiumLooksLikeUSDError(
                f"Leg {index + 1}: premium {premium} looks like a dollar amount. "
                f"Enter the per-contract price (e.g. 1.20, not 120)."
            )
        if premium != premium.quantize(PREMIUM_PLACES):
            raise InvalidPremiumError(f"Leg {index + 1}: premium {premium} has more than 4 decimal places")
        return premium

    def normalize_legs(self, raw_legs: Optional[Sequence[Any]]) -> List[dm.Leg]:
        """Coerce request legs into Leg objects, guarding premiums."""
        if raw_legs is None:
            return []
        if not isinstance(raw_legs, (list, tuple)):
            raise InvalidPayloadError("legs must be a list")

        legs = []
        for index, raw in enumerate(raw_legs):
            if isinstance(raw, dm.Leg):
                premium = raw.premium
            elif isinstance(raw, dict):
                premium = raw.get('premium')
            else:
                raise InvalidPayloadError(f"Leg {index + 1} must be an object")
            self.check_premium(premium, index)
            legs.append(dm.Leg.from_dict(raw))
        return legs

    def precheck(
        self,
        strategy: str,
        raw_legs: Sequence[Any],
        allow_close_or_roll: bool = False,
    ) -> Optional[StrategyViolation]:
        """Validate a ticket without storing anything."""
        return validate_strategy(strategy, self.normalize_legs(raw_legs), allow_close_or_roll)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any]) -> dm.Position:
        """
        Open a position.

        Args:
            data: symbol, type, strategy, broker, legs | (quantity, entryPrice),
                  optional openDate, notes, fees

        Raises:
            InvalidPayloadError, InvalidPremiumError, PremiumLooksLikeUSDError,
            ValidationFailedError, LedgerWriteError
        """
        if not isinstance(data, dict):
            raise InvalidPayloadError("Position payload must be an object")

        symbol = str(data.get('symbol') or '').strip().upper()
        if not symbol:
            raise InvalidPayloadError("symbol is required")
        if not data.get('broker'):
            raise InvalidPayloadError("broker is required")

        strategy = str(data.get('strategy') or '').strip()
        legs = self.normalize_legs(data.get('legs'))
        entry_price = self._optional_decimal(_get(data, 'entryPrice', 'entry_price'), 'entryPrice')
        quantity = self._optional_decimal(data.get('quantity'), 'quantity')
        open_date = _get(data, 'openDate', 'open_date')

        position = dm.Position(
            symbol=symbol,
            type=dm.parse_enum(dm.PositionType, data.get('type') or ('option' if legs else 'stock'), 'type'),
            strategy=strategy,
            broker=dm.parse_enum(dm.Broker, data.get('broker'), 'broker'),
            entry_price=entry_price,
            fees=dm.to_money(self._optional_decimal(data.get('fees'), 'fees')),
            open_date=dm.to_datetime(open_date, 'openDate') if open_date else dm.utcnow(),
            notes=str(data.get('notes') or ''),
            legs=legs,
        )

        if legs:
            violation = validate_strategy(strategy, legs, allow_close_or_roll=False)
            if violation:
                raise ValidationFailedError(violation.message, rule=violation.rule)
            self._price_legs(position)
            if quantity is None:
                common = leg_quantity(legs)
                quantity = Decimal(common) if common is not None else None
            position.quantity = quantity
        else:
            if quantity is None or quantity <= 0 or entry_price is None or entry_price <= 0:
                raise InvalidPayloadError("Positions without legs need a positive quantity and entryPrice")
            position.quantity = quantity
            position.total_cost = dm.to_money(entry_price * quantity)

        estimate = calculate_pnl(strategy, legs, position.quantity, entry_price, self.multiplier)
        self._apply_estimate(position, estimate)
        position.cumulative_realized_pnl = Decimal('0.00')
        position.cumulative_net_premium = position.net_premium

        stored = self.positions.create_from_domain(position)

        if legs:
            if position.net_premium:
                self.ledger.record_open_premium(stored, position.net_premium)
        else:
            self.ledger.record_stock_flow(stored, dm.CashFlowType.STOCK_BUY, -stored.total_cost)

        logger.info(
            f"Opened {stored.symbol} {stored.strategy or stored.type.value} "
            f"total_cost={stored.total_cost} id={stored.id}"
        )
        self._emit(ChangeType.CREATED, stored)
        return stored

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    def close(self, position_id: str, exit_price: Any) -> dm.Position:
        """
        Close an Open position at a per-contract (or per-share) exit price.

        final_market_value = |exit * qty * multiplier| * trade_sign
        realized_pnl       = final_market_value - total_cost

        Raises:
            PositionNotFoundError, PositionNotOpenError, InvalidPayloadError, LedgerWriteError
        """
        exit_value = dm.to_decimal(exit_price, 'exitPrice')
        if exit_value < 0:
            raise InvalidPayloadError(f"exitPrice cannot be negative, got {exit_value}")

        position = self._require(position_id)
        if not position.is_open:
            raise PositionNotOpenError(f"Position {position_id} is {position.status.value}, not Open")

        if position.has_legs:
            quantity = leg_quantity(position.legs)
            if quantity is None:
                raise InvalidPayloadError(
                    f"Position {position_id} has legs with different quantities; close them separately"
                )
            multiplier = self.multiplier
        else:
            if position.quantity is None:
                raise InvalidPayloadError(f"Position {position_id} has no quantity to close")
            quantity = position.quantity
            multiplier = 1

        total_cost = position.total_cost or Decimal('0')
        trade_sign = -1 if total_cost < 0 else 1
        final_market_value = dm.to_money(abs(exit_value * quantity * multiplier) * trade_sign)
        realized = dm.to_money(final_market_value - total_cost)

        self._claim(position, require_open=True, status=dm.PositionStatus.CLOSED.value)

        position.status = dm.PositionStatus.CLOSED
        position.exit_price = exit_value
        position.market_value = final_market_value
        position.realized_pnl = realized
        position.realized_return_pct = realized_return_pct(realized, position.max_loss, position.total_cost)
        position.closed_status = dm.classify_closed_status(realized, self.settings.breakeven_band)
        position.close_date = dm.utcnow()
        for leg in position.legs:
            leg.exit_price = exit_value
            leg.market_value = dm.to_money(exit_value * leg.quantity * multiplier)

        if position.has_legs:
            self.ledger.record_close_premium(position, final_market_value)
        else:
            self.ledger.record_stock_flow(position, dm.CashFlowType.STOCK_SELL, final_market_value)

        stored = self.positions.update_from_domain(position)
        logger.info(
            f"Closed {stored.symbol} {stored.strategy} at {exit_value}: "
            f"realized={stored.realized_pnl} ({stored.closed_status.value})"
        )
        self._emit(ChangeType.CLOSED, stored)
        return stored

    # ------------------------------------------------------------------
    # Roll
    # ------------------------------------------------------------------

    def roll(
        self,
        position_id: str,
        new_legs: Sequence[Any],
        roll_out_cost: Any,
        adjustment: Optional[Union[RollAdjustment, Dict[str, Any]]] = None,
        roll_in_credit: Any = None,
    ) -> RollResult:
        """
        Close an Open position into a new Open one under a shared roll group.

        Ledger:
            old: CLOSE_PREMIUM  -|roll_out_cost|
            new: OPEN_PREMIUM   signed adjustment (+credit / -debit, or legacy roll_in_credit)

        The old position's realized P&L is the ledger sum over (old id, roll group).

        Raises:
            PositionNotFoundError, PositionNotOpenError, InvalidPayloadError, LedgerWriteError
        """
        out_cost = dm.to_decimal(roll_out_cost, 'rollOutCost')
        if adjustment is not None:
            signed_adjustment = RollAdjustment.coerce(adjustment).signed
        elif roll_in_credit is not None:
            signed_adjustment = dm.to_money(dm.to_decimal(roll_in_credit, 'rollInCredit'))
        else:
            raise InvalidPayloadError("Roll needs an adjustment {amount, type} or a rollInCredit")

        legs = self.normalize_legs(new_legs)
        if not legs:
            raise InvalidPayloadError("Roll needs at least one new leg")

        old = self._require(position_id)
        if not old.is_open:
            raise PositionNotOpenError(f"Position {position_id} is {old.status.value}, not Open")

        self._claim(old, require_open=True, status=dm.PositionStatus.ROLLED.value)

        roll_group_id = dm.new_id()
        new = dm.Position(
            symbol=old.symbol,
            type=old.type,
            strategy=old.strategy,
            broker=old.broker,
            quantity=old.quantity,
            entry_price=old.entry_price,
            notes=old.notes,
            legs=legs,
            rolled_from=old.id,
            roll_group_id=roll_group_id,
            open_date=dm.utcnow(),
        )

        # old side
        self.ledger.record_close_premium(
            old,
            -abs(out_cost),
            roll_group_id=roll_group_id,
            related_position_id=new.id,
            description=f"Roll out {old.symbol} {old.strategy}",
        )
        realized = self.ledger.sum(old.id, roll_group_id)

        old.status = dm.PositionStatus.ROLLED
        old.archived = True
        old.roll_group_id = roll_group_id
        old.close_date = dm.utcnow()
        old.realized_pnl = realized
        old.realized_return_pct = realized_return_pct(realized, old.max_loss, old.total_cost)
        old.closed_status = dm.classify_closed_status(realized, self.settings.breakeven_band)
        old.exit_price = None
        old.market_value = None
        for leg in old.legs:
            leg.exit_price = None
            leg.market_value = None
        old = self.positions.update_from_domain(old)

        # new side
        self._price_legs(new)
        self._apply_estimate(new, calculate_pnl(new.strategy, legs, new.quantity, new.entry_price, self.multiplier))
        cumulative = dm.to_money((old.cumulative_realized_pnl or Decimal('0')) + realized)
        new.cumulative_realized_pnl = cumulative
        new.cumulative_break_even = abs(cumulative)
        previous_net = old.cumulative_net_premium if old.cumulative_net_premium is not None else (old.net_premium or Decimal('0'))
        new.cumulative_net_premium = dm.to_money(previous_net + signed_adjustment)

        new = self.positions.create_from_domain(new)
        self.ledger.record_open_premium(
            new,
            signed_adjustment,
            roll_group_id=roll_group_id,
            related_position_id=old.id,
            description=f"Roll in {new.symbol} {new.strategy}",
        )

        logger.info(
            f"Rolled {old.symbol} {old.strategy} {old.id[:8]} -> {new.id[:8]}: "
            f"realized={realized} cumulative={cumulative} group={roll_group_id}"
        )
        self._emit(ChangeType.ROLLED_OUT, old)
        self._emit(ChangeType.ROLLED_IN, new)
        return RollResult(old_position=old, new_position=new, roll_group_id=roll_group_id)

    # ------------------------------------------------------------------
    # Flags, delete, update
    # ------------------------------------------------------------------

    def archive(self, position_id: str) -> dm.Position:
        position = self._require(position_id)
        if position.archived:
            logger.debug(f"Position {position_id} already archived")
            return position
        self._claim(position, archived=True)
        position.archived = True
        stored = self.positions.update_from_domain(position)
        logger.info(f"Archived {stored.symbol} {stored.id}")
        self._emit(ChangeType.ARCHIVED, stored)
        return stored

    def unarchive(self, position_id: str) -> dm.Position:
        position = self._require(position_id)
        if position.status == dm.PositionStatus.ROLLED:
            raise InvalidPayloadError(f"Position {position_id} was rolled and stays archived")
        if not position.archived:
            logger.debug(f"Position {position_id} is not archived")
            return position
        self._claim(position, archived=False)
        position.archived = False
        stored = self.positions.update_from_domain(position)
        logger.info(f"Unarchived {stored.symbol} {stored.id}")
        self._emit(ChangeType.ARCHIVED, stored)
        return stored

    def delete(self, position_id: str) -> Dict[str, Any]:
        """
        Hard delete a position and its legs.

        Ledger rows survive unless cascade_delete_cashflows is set.
        """
        self._require(position_id)
        self.positions.delete(position_id)
        removed = 0
        if self.settings.cascade_delete_cashflows:
            removed = self.ledger.delete_for_position(position_id)
        logger.info(f"Deleted position {position_id} (ledger rows removed: {removed})")
        payload = {'id': position_id}
        safe_emit(self.notifier, ChangeType.DELETED, payload)
        return payload

    def update(self, position_id: str, patch: Dict[str, Any]) -> dm.Position:
        """
        Patch descriptive fields. No strategy re-validation, no ledger write.

        Raises:
            InvalidPayloadError: patch touches state, lineage or money fields
        """
        if not isinstance(patch, dict):
            raise InvalidPayloadError("Patch must be an object")
        rejected = sorted(key for key in patch if key not in EDITABLE_FIELDS)
        if rejected:
            raise InvalidPayloadError(f"Fields cannot be edited: {', '.join(rejected)}")

        position = self._require(position_id)
        for key, value in patch.items():
            name = EDITABLE_FIELDS[key]
            if name == 'symbol':
                value = str(value or '').strip().upper()
                if not value:
                    raise InvalidPayloadError("symbol cannot be empty")
            elif name == 'type':
                value = dm.parse_enum(dm.PositionType, value, 'type')
            elif name == 'broker':
                value = dm.parse_enum(dm.Broker, value, 'broker')
            elif name == 'open_date':
                value = dm.to_datetime(value, 'openDate')
            elif name in _DISPLAY_METRICS:
                value = dm.to_money(self._optional_decimal(value, key))
            elif name in ('notes', 'strategy'):
                value = str(value or '')
            setattr(position, name, value)

        self._claim(position)
        stored = self.positions.update_from_domain(position)
        logger.info(f"Updated {stored.id}: {', '.join(sorted(patch))}")
        self._emit(ChangeType.UPDATED, stored)
        return stored

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, position_id: str) -> dm.Position:
        return self._require(position_id)

    def list(
        self,
        status: Optional[Union[str, dm.PositionStatus]] = None,
        archived: Optional[bool] = None,
        symbol: Optional[str] = None,
        strategy: Optional[str] = None,
        broker: Optional[Union[str, dm.Broker]] = None,
    ) -> List[dm.Position]:
        return self.positions.find(
            status=dm.parse_enum(dm.PositionStatus, status, 'status') if status else None,
            archived=archived,
            symbol=symbol,
            strategy=strategy,
            broker=dm.parse_enum(dm.Broker, broker, 'broker') if broker else None,
        )

    def roll_chain(self, position_id: str) -> List[dm.Position]:
        """Predecessors through rolled_from, root first, ending with this position."""
        chain = [self._require(position_id)]
        seen = {position_id}
        while chain[0].rolled_from and chain[0].rolled_from not in seen:
            previous = self.positions.get(chain[0].rolled_from)
            if previous is None:
                logger.warning(f"Roll chain of {position_id} breaks at deleted {chain[0].rolled_from}")
                break
            seen.add(previous.id)
            chain.insert(0, previous)
        return chain

    def reconcile(self, position_id: str) -> ReconcileReport:
        """
        Re-derive realized P&L from the ledger and compare with the stored value.

        Rolled: sum of entries for (position, roll group).
        Closed: the close entry minus total_cost.
        Open:   nothing realized yet.
        """
        position = self._require(position_id)
        ledger_total = self.ledger.sum(position.id)

        ledger_realized = None
        if position.status == dm.PositionStatus.ROLLED:
            ledger_realized = self.ledger.sum(position.id, position.roll_group_id)
        elif position.status == dm.PositionStatus.CLOSED:
            close_type = dm.CashFlowType.CLOSE_PREMIUM if position.has_legs else dm.CashFlowType.STOCK_SELL
            close_entry = self.ledger.find_entry(position.id, close_type)
            if close_entry is not None:
                ledger_realized = dm.to_money(close_entry.amount - (position.total_cost or Decimal('0')))

        report = ReconcileReport(
            position_id=position.id,
            status=position.status,
            ledger_total=ledger_total,
            stored_realized_pnl=position.realized_pnl,
            ledger_realized_pnl=ledger_realized,
        )
        if not report.in_sync:
            logger.warning(f"Position {position.id} drifted from ledger by {report.drift}")
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, position_id: str) -> dm.Position:
        position = self.positions.get(position_id)
        if position is None:
            raise PositionNotFoundError(f"Position {position_id} not found")
        return position

    def _claim(self, position: dm.Position, require_open: bool = False, **values: Any) -> None:
        """Conditional write on (id, version); bumps the in-memory version on success."""
        if self.positions.compare_and_set(position.id, position.version, values, require_open=require_open):
            position.version += 1
            return

        current = self.positions.get(position.id, fresh=True)
        if current is None:
            raise PositionNotFoundError(f"Position {position.id} not found")
        if require_open and not current.is_open:
            raise PositionNotOpenError(f"Position {position.id} is {current.status.value}, not Open")
        raise ConcurrentModificationError(
            f"Position {position.id} changed concurrently (version {position.version} -> {current.version})"
        )

    def _price_legs(self, position: dm.Position) -> None:
        premiums = summarize_premiums(position.legs, self.multiplier)
        position.premium_received = premiums.received
        position.premium_paid = premiums.paid
        position.net_premium = premiums.net
        position.total_cost = Decimal('0') - premiums.net
        position.revenue = premiums.net

    @staticmethod
    def _apply_estimate(position: dm.Position, estimate) -> None:
        position.max_profit = estimate.max_profit
        position.max_loss = estimate.max_loss
        position.break_even_low = estimate.break_even_low
        position.break_even_high = estimate.break_even_high

    @staticmethod
    def _optional_decimal(value: Any, field_name: str) -> Optional[Decimal]:
        if value is None or value == '':
            return None
        return dm.to_decimal(value, field_name)

    def _emit(self, change_type: ChangeType, position: dm.Position) -> None:
        safe_emit(self.notifier, change_type, position.to_dict())
