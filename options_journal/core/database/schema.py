"""
Database Schema - SQLAlchemy ORM Models

TABLES:
1. positions   - one row per position, numeric fields are a ledger projection
2. legs        - owned by a position, deleted with it
3. cash_flows  - append-only ledger, references positions by id only

CRITICAL DESIGN DECISIONS:
1. cash_flows has NO foreign key to positions, so ledger rows outlive a deleted position
2. positions.version is bumped on every status transition (compare-and-set token)
3. Money columns are Numeric(15, 2); strikes and per-contract premiums keep 4 places
"""

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Boolean, Date,
    ForeignKey, Text, Index,
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PositionORM(Base):
    """
    Positions - stock-style or multi-leg option

    Status: Open -> Closed | Rolled. archived is an independent flag.
    """
    __tablename__ = 'positions'

    __table_args__ = (
        Index('idx_positions_status', 'status'),
        Index('idx_positions_symbol', 'symbol'),
        Index('idx_positions_strategy', 'strategy'),
        Index('idx_positions_roll_group', 'roll_group_id'),
        Index('idx_positions_rolled_from', 'rolled_from'),
        Index('idx_positions_close_date', 'close_date'),
    )

    id = Column(String(36), primary_key=True)
    symbol = Column(String(50), nullable=False)
    type = Column(String(20), nullable=False, default='option')
    strategy = Column(String(100), nullable=False, default='')
    broker = Column(String(50), nullable=False)

    # === STATE ===
    status = Column(String(20), nullable=False, default='Open')
    archived = Column(Boolean, nullable=False, default=False)
    closed_status = Column(String(20))
    version = Column(Integer, nullable=False, default=1)

    # === SINGLE-INSTRUMENT ===
    quantity = Column(Numeric(15, 4))
    entry_price = Column(Numeric(12, 4))

    # === ACCOUNTING ===
    total_cost = Column(Numeric(15, 2))
    net_premium = Column(Numeric(15, 2))
    premium_received = Column(Numeric(15, 2))
    premium_paid = Column(Numeric(15, 2))
    revenue = Column(Numeric(15, 2))
    fees = Column(Numeric(15, 2))
    exit_price = Column(Numeric(12, 4))
    market_value = Column(Numeric(15, 2))
    realized_pnl = Column(Numeric(15, 2))
    realized_return_pct = Column(Numeric(15, 2))

    # === DISPLAY METRICS ===
    max_profit = Column(Numeric(15, 2))
    max_loss = Column(Numeric(15, 2))
    break_even_low = Column(Numeric(12, 2))
    break_even_high = Column(Numeric(12, 2))

    # === ROLL LINEAGE ===
    rolled_from = Column(String(36))
    roll_group_id = Column(String(36))
    cumulative_realized_pnl = Column(Numeric(15, 2))
    cumulative_net_premium = Column(Numeric(15, 2))
    cumulative_break_even = Column(Numeric(15, 2))

    # === DATES ===
    open_date = Column(DateTime)
    close_date = Column(DateTime)

    notes = Column(Text, default='')

    # === AUDIT ===
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    last_updated = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    # Relationships
    legs = relationship(
        "LegORM",
        back_populates="position",
        cascade="all, delete-orphan",
        order_by="LegORM.leg_index",
    )


class LegORM(Base):
    """Individual option legs of a position"""
    __tablename__ = 'legs'

    __table_args__ = (
        Index('idx_position_legs', 'position_id'),
    )

    id = Column(String(36), primary_key=True)
    position_id = Column(String(36), ForeignKey('positions.id', ondelete='CASCADE'), nullable=False)
    leg_index = Column(Integer, nullable=False, default=0)

    # === LEG DETAILS ===
    action = Column(String(20), nullable=False)        # Sell to Open, ...
    option_type = Column(String(10), nullable=False)   # Call, Put
    strike = Column(Numeric(12, 4), nullable=False)
    expiration = Column(Date, nullable=False)
    premium = Column(Numeric(12, 4), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    # === EXIT STATE ===
    exit_price = Column(Numeric(12, 4))
    market_value = Column(Numeric(15, 2))

    # Relationships
    position = relationship("PositionORM", back_populates="legs")


class CashFlowORM(Base):
    """
    Cash-flow ledger

    amount is signed: + received, - paid. Rows are append-only apart from the
    in-place correction of a position's single CLOSE_PREMIUM entry.
    """
    __tablename__ = 'cash_flows'

    __table_args__ = (
        Index('idx_cash_flows_position', 'position_id'),
        Index('idx_cash_flows_position_type', 'position_id', 'type'),
        Index('idx_cash_flows_roll_group', 'roll_group_id'),
        Index('idx_cash_flows_date', 'date'),
    )

    id = Column(String(36), primary_key=True)
    position_id = Column(String(36), nullable=False)
    related_position_id = Column(String(36))
    roll_group_id = Column(String(36))
    sequence = Column(Integer, nullable=False, default=1)  # per position_id

    symbol = Column(String(50), default='')
    strategy = Column(String(100), default='')
    date = Column(DateTime, nullable=False, default=_utcnow)
    type = Column(String(20), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    quantity = Column(Numeric(15, 4))
    description = Column(String(255), default='')

    # === AUDIT ===
    created_at = Column(DateTime, default=_utcnow, nullable=False)
