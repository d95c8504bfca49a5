"""
Cash Flow Ledger - the authoritative record of money in and out

Every realized P&L figure on a Position is a projection of these entries:
    realized_pnl (closed)  = sum(entries for the position)
    realized_pnl (rolled)  = sum(entries for (position, roll_group_id))

Entries are append-only. The one exception is a position's CLOSE_PREMIUM
entry, which a repeated close corrects in place instead of duplicating.

Usage:
    ledger = CashFlowLedger(session)
    ledger.record_open_premium(position)
    ledger.sum(position.id)
"""

from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

import options_journal.core.models.domain as dm
from options_journal.core.exceptions import LedgerWriteError
from options_journal.repositories.base import RepositoryError
from options_journal.repositories.cashflow import CashFlowRepository

logger = logging.getLogger(__name__)


class CashFlowLedger:
    """Append / sum / idempotent open-close writes over the cash_flows table."""

    def __init__(self, session: Session):
        self.repo = CashFlowRepository(session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, entry: dm.CashFlowEntry) -> str:
        """
        Append one entry.

        Returns:
            The entry id

        Raises:
            LedgerWriteError: the row could not be written
        """
        try:
            stored = self.repo.create_from_domain(entry)
        except RepositoryError as e:
            raise LedgerWriteError(f"Could not write {entry.type.value} for {entry.position_id}: {e}") from e
        logger.info(
            f"Ledger {stored.type.value} {stored.amount:+.2f} "
            f"position={stored.position_id} group={stored.roll_group_id}"
        )
        return stored.id

    def record_open_premium(
        self,
        position: dm.Position,
        amount: Decimal,
        roll_group_id: Optional[str] = None,
        related_position_id: Optional[str] = None,
        description: str = "",
    ) -> Optional[str]:
        """
        Write the position's OPEN_PREMIUM once.

        Returns:
            The new entry id, or None when one already exists
        """
        if self.has_entry(position.id, dm.CashFlowType.OPEN_PREMIUM):
            logger.debug(f"OPEN_PREMIUM already recorded for {position.id}, skipping")
            return None
        return self.append(dm.CashFlowEntry(
            position_id=position.id,
            type=dm.CashFlowType.OPEN_PREMIUM,
            amount=dm.to_money(amount),
            symbol=position.symbol,
            strategy=position.strategy,
            roll_group_id=roll_group_id,
            related_position_id=related_position_id,
            description=description or f"Open {position.strategy} {position.symbol}",
        ))

    def record_close_premium(
        self,
        position: dm.Position,
        amount: Decimal,
        roll_group_id: Optional[str] = None,
        related_position_id: Optional[str] = None,
        description: str = "",
    ) -> str:
        """
        Write the position's CLOSE_PREMIUM, or correct the existing one.

        Never yields two CLOSE_PREMIUM rows for one position.
        """
        amount = dm.to_money(amount)
        description = description or f"Close {position.strategy} {position.symbol}"
        existing = self.repo.find_one(position.id, dm.CashFlowType.CLOSE_PREMIUM)
        if existing is None:
            return self.append(dm.CashFlowEntry(
                position_id=position.id,
                type=dm.CashFlowType.CLOSE_PREMIUM,
                amount=amount,
                symbol=position.symbol,
                strategy=position.strategy,
                roll_group_id=roll_group_id,
                related_position_id=related_position_id,
                description=description,
            ))

        if existing.amount == amount and existing.description == description:
            logger.debug(f"CLOSE_PREMIUM for {position.id} already up to date")
            return existing.id

        try:
            self.repo.correct(existing.id, amount, description)
        except RepositoryError as e:
            raise LedgerWriteError(f"Could not correct CLOSE_PREMIUM for {position.id}: {e}") from e
        logger.info(f"Corrected CLOSE_PREMIUM for {position.id}: {existing.amount:+.2f} -> {amount:+.2f}")
        return existing.id

    def record_stock_flow(self, position: dm.Position, flow_type: dm.CashFlowType, amount: Decimal) -> Optional[str]:
        """STOCK_BUY / STOCK_SELL for legless positions, once per type."""
        if self.has_entry(position.id, flow_type):
            logger.debug(f"{flow_type.value} already recorded for {position.id}, skipping")
            return None
        return self.append(dm.CashFlowEntry(
            position_id=position.id,
            type=flow_type,
            amount=dm.to_money(amount),
            symbol=position.symbol,
            strategy=position.strategy,
            quantity=position.quantity,
            description=f"{flow_type.value.replace('_', ' ').title()} {position.symbol}",
        ))

    def delete_for_position(self, position_id: str) -> int:
        try:
            return self.repo.delete_by_position(position_id)
        except RepositoryError as e:
            raise LedgerWriteError(f"Could not delete ledger rows for {position_id}: {e}") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def sum(self, position_id: str, roll_group_id: Optional[str] = None) -> Decimal:
        """Sum of amounts for a position, optionally scoped to one roll group."""
        return self.repo.sum_amount(position_id, roll_group_id)

    def find_entry(self, position_id: str, flow_type: dm.CashFlowType) -> Optional[dm.CashFlowEntry]:
        return self.repo.find_one(position_id, flow_type)

    def has_entry(self, position_id: str, flow_type: dm.CashFlowType) -> bool:
        return self.find_entry(position_id, flow_type) is not None

    def entries_for(self, position_id: str) -> List[dm.CashFlowEntry]:
        return self.repo.get_by_position(position_id)

    def entries_for_group(self, roll_group_id: str) -> List[dm.CashFlowEntry]:
        return self.repo.get_by_roll_group(roll_group_id)
