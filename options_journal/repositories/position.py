"""
Position Repository - Data access for positions and their legs
"""

from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from options_journal.repositories.base import BaseRepository, RepositoryError
from options_journal.core.database.schema import PositionORM, LegORM
import options_journal.core.models.domain as dm

logger = logging.getLogger(__name__)


# Columns copied 1:1 between the domain Position and PositionORM
_PLAIN_FIELDS = (
    'symbol', 'strategy', 'archived', 'version',
    'quantity', 'entry_price', 'total_cost', 'net_premium',
    'premium_received', 'premium_paid', 'revenue', 'fees',
    'exit_price', 'market_value', 'realized_pnl', 'realized_return_pct',
    'max_profit', 'max_loss', 'break_even_low', 'break_even_high',
    'rolled_from', 'roll_group_id',
    'cumulative_realized_pnl', 'cumulative_net_premium', 'cumulative_break_even',
    'open_date', 'close_date', 'notes',
)


class PositionRepository(BaseRepository[dm.Position, PositionORM]):
    """Repository for Position entities"""

    def __init__(self, session: Session):
        super().__init__(session, PositionORM)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_from_domain(self, position: dm.Position) -> dm.Position:
        """
        Persist a new position with its legs.

        Returns:
            The stored position (re-read, so Decimal scales match the columns)
        """
        position_orm = PositionORM(id=position.id)
        self._copy_to_orm(position, position_orm)
        position_orm.legs = [self._leg_to_orm(leg, i) for i, leg in enumerate(position.legs)]

        created = self.create(position_orm)
        logger.debug(f"Stored position {created.id} ({created.symbol} {created.strategy})")
        return self.to_domain(created)

    def update_from_domain(self, position: dm.Position) -> dm.Position:
        """
        Write every mutable column and the legs' exit stamps.

        Status and version are written as-is; transitions go through
        compare_and_set() first so the in-memory values already match.
        """
        position_orm = self.get_by_id(position.id)
        if position_orm is None:
            raise RepositoryError(f"Position {position.id} not found for update")

        self._copy_to_orm(position, position_orm)

        by_id = {leg.id: leg for leg in position.legs}
        for leg_orm in position_orm.legs:
            leg = by_id.get(leg_orm.id)
            if leg is not None:
                leg_orm.exit_price = leg.exit_price
                leg_orm.market_value = leg.market_value

        self.flush()
        self.session.refresh(position_orm)
        return self.to_domain(position_orm)

    def compare_and_set(
        self,
        position_id: str,
        expected_version: int,
        values: Dict[str, Any],
        require_open: bool = False,
    ) -> bool:
        """
        Single conditional UPDATE ... WHERE id=? AND version=? [AND status='Open'].

        Bumps version on success. The row stays claimed by this transaction
        until the caller's session_scope() commits.

        Returns:
            True when exactly one row was updated
        """
        query = self.session.query(PositionORM).filter(
            PositionORM.id == position_id,
            PositionORM.version == expected_version,
        )
        if require_open:
            query = query.filter(PositionORM.status == dm.PositionStatus.OPEN.value)

        changes = {getattr(PositionORM, name): value for name, value in values.items()}
        changes[PositionORM.version] = PositionORM.version + 1
        changes[PositionORM.last_updated] = dm.utcnow()
        try:
            rows = query.update(changes, synchronize_session='fetch')
        except SQLAlchemyError as e:
            logger.error(f"Error updating position {position_id}: {e}")
            raise RepositoryError(str(e)) from e
        return rows == 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, position_id: str, fresh: bool = False) -> Optional[dm.Position]:
        """fresh=True re-reads the committed row over anything this session already loaded."""
        if fresh:
            position_orm = self.session.query(PositionORM).populate_existing().filter_by(id=position_id).first()
        else:
            position_orm = self.get_by_id(position_id)
        return self.to_domain(position_orm) if position_orm else None

    def find(
        self,
        status: Optional[dm.PositionStatus] = None,
        archived: Optional[bool] = None,
        symbol: Optional[str] = None,
        strategy: Optional[str] = None,
        broker: Optional[dm.Broker] = None,
    ) -> List[dm.Position]:
        """Filtered listing, newest open date first."""
        try:
            query = self.session.query(PositionORM)
            if status is not None:
                query = query.filter(PositionORM.status == status.value)
            if archived is not None:
                query = query.filter(PositionORM.archived == archived)
            if symbol:
                query = query.filter(PositionORM.symbol == symbol.upper())
            if strategy:
                query = query.filter(PositionORM.strategy == strategy)
            if broker is not None:
                query = query.filter(PositionORM.broker == broker.value)
            rows = query.order_by(PositionORM.open_date.desc(), PositionORM.created_at.desc()).all()
        except SQLAlchemyError as e:
            logger.error(f"Error listing positions: {e}")
            raise RepositoryError(str(e)) from e
        return [self.to_domain(p) for p in rows]

    def get_successor(self, position_id: str) -> Optional[dm.Position]:
        """Position that was rolled out of this one, if any"""
        position_orm = self.session.query(PositionORM).filter_by(rolled_from=position_id).first()
        return self.to_domain(position_orm) if position_orm else None

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def to_domain(self, position_orm: PositionORM) -> dm.Position:
        """Convert ORM to domain model"""
        position = dm.Position(
            id=position_orm.id,
            type=dm.PositionType(position_orm.type),
            broker=dm.Broker(position_orm.broker),
            status=dm.PositionStatus(position_orm.status),
            closed_status=dm.ClosedStatus(position_orm.closed_status) if position_orm.closed_status else None,
            created_at=position_orm.created_at,
            last_updated=position_orm.last_updated,
            legs=[self._leg_to_domain(l) for l in position_orm.legs],
        )
        for name in _PLAIN_FIELDS:
            setattr(position, name, getattr(position_orm, name))
        position.archived = bool(position.archived)
        position.notes = position.notes or ''
        return position

    @staticmethod
    def _copy_to_orm(position: dm.Position, position_orm: PositionORM) -> None:
        for name in _PLAIN_FIELDS:
            setattr(position_orm, name, getattr(position, name))
        position_orm.type = position.type.value
        position_orm.broker = position.broker.value
        position_orm.status = position.status.value
        position_orm.closed_status = position.closed_status.value if position.closed_status else None

    @staticmethod
    def _leg_to_orm(leg: dm.Leg, index: int) -> LegORM:
        return LegORM(
            id=leg.id,
            leg_index=index,
            action=leg.action.value,
            option_type=leg.option_type.value,
            strike=leg.strike,
            expiration=leg.expiration,
            premium=leg.premium,
            quantity=leg.quantity,
            exit_price=leg.exit_price,
            market_value=leg.market_value,
        )

    @staticmethod
    def _leg_to_domain(leg_orm: LegORM) -> dm.Leg:
        return dm.Leg(
            id=leg_orm.id,
            action=dm.LegAction(leg_orm.action),
            option_type=dm.OptionType(leg_orm.option_type),
            strike=leg_orm.strike,
            expiration=leg_orm.expiration,
            premium=leg_orm.premium,
            quantity=leg_orm.quantity,
            exit_price=leg_orm.exit_price,
            market_value=leg_orm.market_value,
        )
