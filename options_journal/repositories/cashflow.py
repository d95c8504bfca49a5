"""
Cash Flow Repository - Data access for the ledger
"""

from decimal import Decimal
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from options_journal.repositories.base import BaseRepository, RepositoryError
from options_journal.core.database.schema import CashFlowORM
import options_journal.core.models.domain as dm

logger = logging.getLogger(__name__)


class CashFlowRepository(BaseRepository[dm.CashFlowEntry, CashFlowORM]):
    """Repository for CashFlowEntry rows"""

    def __init__(self, session: Session):
        super().__init__(session, CashFlowORM)

    def create_from_domain(self, entry: dm.CashFlowEntry) -> dm.CashFlowEntry:
        """Append one entry; sequence continues the position's numbering."""
        entry_orm = CashFlowORM(
            id=entry.id,
            position_id=entry.position_id,
            related_position_id=entry.related_position_id,
            roll_group_id=entry.roll_group_id,
            sequence=self._next_sequence(entry.position_id),
            symbol=entry.symbol,
            strategy=entry.strategy,
            date=entry.date,
            type=entry.type.value,
            amount=dm.to_money(entry.amount),
            quantity=entry.quantity,
            description=entry.description,
        )
        created = self.create(entry_orm)
        return self.to_domain(created)

    def correct(self, entry_id: str, amount: Decimal, description: str) -> dm.CashFlowEntry:
        """In-place amount/description fix (CLOSE_PREMIUM only)."""
        entry_orm = self.get_by_id(entry_id)
        if entry_orm is None:
            raise RepositoryError(f"Cash flow {entry_id} not found")
        entry_orm.amount = dm.to_money(amount)
        entry_orm.description = description
        self.flush()
        return self.to_domain(entry_orm)

    def find_one(self, position_id: str, flow_type: dm.CashFlowType) -> Optional[dm.CashFlowEntry]:
        entry_orm = self._query(position_id).filter(CashFlowORM.type == flow_type.value).first()
        return self.to_domain(entry_orm) if entry_orm else None

    def get_by_position(self, position_id: str, roll_group_id: Optional[str] = None) -> List[dm.CashFlowEntry]:
        query = self._query(position_id)
        if roll_group_id is not None:
            query = query.filter(CashFlowORM.roll_group_id == roll_group_id)
        return [self.to_domain(e) for e in query.all()]

    def get_by_roll_group(self, roll_group_id: str) -> List[dm.CashFlowEntry]:
        rows = self.session.query(CashFlowORM).filter_by(
            roll_group_id=roll_group_id
        ).order_by(CashFlowORM.created_at, CashFlowORM.position_id, CashFlowORM.sequence).all()
        return [self.to_domain(e) for e in rows]

    def sum_amount(self, position_id: str, roll_group_id: Optional[str] = None) -> Decimal:
        """Exact Decimal sum (rows are summed here, not by the database)."""
        total = sum((e.amount for e in self.get_by_position(position_id, roll_group_id)), Decimal('0'))
        return dm.to_money(total)

    def delete_by_position(self, position_id: str) -> int:
        try:
            count = self.session.query(CashFlowORM).filter_by(position_id=position_id).delete(
                synchronize_session=False
            )
            self.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error deleting cash flows for {position_id}: {e}")
            raise RepositoryError(str(e)) from e
        logger.warning(f"Deleted {count} cash flow rows for position {position_id}")
        return count

    def to_domain(self, entry_orm: CashFlowORM) -> dm.CashFlowEntry:
        return dm.CashFlowEntry(
            id=entry_orm.id,
            position_id=entry_orm.position_id,
            related_position_id=entry_orm.related_position_id,
            roll_group_id=entry_orm.roll_group_id,
            symbol=entry_orm.symbol or '',
            strategy=entry_orm.strategy or '',
            date=entry_orm.date,
            type=dm.CashFlowType(entry_orm.type),
            amount=dm.to_money(entry_orm.amount),
            quantity=entry_orm.quantity,
            description=entry_orm.description or '',
            created_at=entry_orm.created_at,
        )

    def _query(self, position_id: str):
        return self.session.query(CashFlowORM).filter(
            CashFlowORM.position_id == position_id
        ).order_by(CashFlowORM.sequence)

    def _next_sequence(self, position_id: str) -> int:
        try:
            current = self.session.query(func.max(CashFlowORM.sequence)).filter(
                CashFlowORM.position_id == position_id
            ).scalar()
        except SQLAlchemyError as e:
            logger.error(f"Error reading ledger sequence for {position_id}: {e}")
            raise RepositoryError(str(e)) from e
        return (current or 0) + 1
