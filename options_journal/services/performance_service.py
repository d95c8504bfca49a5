"""
Performance Service - realized-trade analytics over stored positions.

Read-only aggregations; Closed positions are the source of truth unless a
status filter says otherwise.

    - stats: totals, win rate, avg P&L / win / loss
    - summaries by strategy, symbol and close month
    - open summary: count and net premium per (strategy, symbol)
    - performance report: filtered rows + summary

Usage:
    from options_journal.services.performance_service import PerformanceService
    from options_journal.core.database.session import session_scope

    with session_scope() as session:
        svc = PerformanceService(session)
        stats = svc.stats()
        by_month = svc.summary_by_month()
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy.orm import Session

import options_journal.core.models.domain as dm
from options_journal.repositories.position import PositionRepository

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


@dataclass
class PerformanceStats:
    """Aggregate over a set of finished positions."""
    total_positions: int = 0
    net_profit: Decimal = ZERO
    win_rate: Decimal = ZERO           # percentage
    avg_pnl: Decimal = ZERO
    avg_win: Decimal = ZERO
    avg_loss: Decimal = ZERO
    wins: int = 0
    losses: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalPositions': self.total_positions,
            'netProfit': float(self.net_profit),
            'winRate': float(self.win_rate),
            'avgPnL': float(self.avg_pnl),
            'avgWin': float(self.avg_win),
            'avgLoss': float(self.avg_loss),
        }

    def to_summary_row(self) -> List:
        """Flat list for tabulate display."""
        return [
            self.total_positions,
            f"${float(self.net_profit):,.2f}",
            f"{float(self.win_rate):.2f}%",
            f"${float(self.avg_pnl):,.2f}",
            f"${float(self.avg_win):,.2f}" if self.wins else "-",
            f"${float(self.avg_loss):,.2f}" if self.losses else "-",
        ]


@dataclass
class GroupSummary:
    key: str
    count: int = 0
    net: Decimal = ZERO
    avg: Optional[Decimal] = None

    def to_dict(self, key_name: str, net_name: str = 'netProfit') -> Dict[str, Any]:
        data = {key_name: self.key, 'count': self.count, net_name: float(self.net)}
        if self.avg is not None:
            data['avgPnL'] = float(self.avg)
        return data


@dataclass
class OpenSummary:
    strategy: str
    symbol: str
    count: int = 0
    net_premium: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy': self.strategy,
            'symbol': self.symbol,
            'count': self.count,
            'netPremium': float(self.net_premium),
        }


@dataclass
class PerformanceReport:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'rows': self.rows, 'summary': self.summary}


def _avg(values: List[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return dm.to_money(sum(values, ZERO) / len(values))


def compute_stats(positions: Iterable[dm.Position]) -> PerformanceStats:
    """Pure aggregation; a missing realized P&L counts as zero."""
    pnls = [p.realized_pnl or ZERO for p in positions]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    total = len(pnls)
    return PerformanceStats(
        total_positions=total,
        net_profit=dm.to_money(sum(pnls, ZERO)),
        win_rate=dm.to_money(Decimal(len(wins)) / total * 100) if total else ZERO,
        avg_pnl=_avg(pnls),
        avg_win=_avg(wins),
        avg_loss=_avg(losses),
        wins=len(wins),
        losses=len(losses),
    )


class PerformanceService:

    def __init__(self, session: Session):
        self.positions = PositionRepository(session)

    def _closed(self, **filters) -> List[dm.Position]:
        return self.positions.find(status=dm.PositionStatus.CLOSED, **filters)

    # ------------------------------------------------------------------
    # Stats & summaries
    # ------------------------------------------------------------------

    def stats(
        self,
        status: Optional[dm.PositionStatus] = dm.PositionStatus.CLOSED,
        symbol: Optional[str] = None,
        strategy: Optional[str] = None,
        broker: Optional[dm.Broker] = None,
    ) -> PerformanceStats:
        positions = self.positions.find(status=status, symbol=symbol, strategy=strategy, broker=broker)
        result = compute_stats(positions)
        logger.debug(f"Stats over {result.total_positions} positions: net={result.net_profit}")
        return result

    def summary_by_strategy(self) -> List[GroupSummary]:
        return self._group_closed(lambda p: p.strategy)

    def summary_by_symbol(self) -> List[GroupSummary]:
        return self._group_closed(lambda p: p.symbol)

    def summary_by_month(self) -> List[GroupSummary]:
        """Closed positions per close month (YYYY-MM), oldest first."""
        groups: Dict[str, List[Decimal]] = {}
        for p in self._closed():
            if p.close_date is None:
                continue
            groups.setdefault(p.close_date.strftime('%Y-%m'), []).append(p.realized_pnl or ZERO)
        return [
            GroupSummary(key=month, count=len(pnls), net=dm.to_money(sum(pnls, ZERO)))
            for month, pnls in sorted(groups.items())
        ]

    def open_summary(self) -> List[OpenSummary]:
        """Open positions grouped by (strategy, symbol), largest net premium first."""
        groups: Dict[tuple, OpenSummary] = OrderedDict()
        for p in self.positions.find(status=dm.PositionStatus.OPEN):
            key = (p.strategy, p.symbol)
            entry = groups.setdefault(key, OpenSummary(strategy=p.strategy, symbol=p.symbol))
            entry.count += 1
            entry.net_premium = dm.to_money(entry.net_premium + (p.net_premium or ZERO))
        return sorted(groups.values(), key=lambda s: s.net_premium, reverse=True)

    def performance_report(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        symbol: Optional[str] = None,
        strategy: Optional[str] = None,
        broker: Optional[dm.Broker] = None,
    ) -> PerformanceReport:
        """Closed trades in a close-date window, newest first, plus a summary."""
        positions = [
            p for p in self._closed(symbol=symbol, strategy=strategy, broker=broker)
            if (date_from is None or (p.close_date and p.close_date >= date_from))
            and (date_to is None or (p.close_date and p.close_date <= date_to))
        ]
        positions.sort(key=lambda p: p.close_date or datetime.min, reverse=True)

        rows = []
        for p in positions:
            pnl = p.realized_pnl or ZERO
            rows.append({
                'date': p.close_date.isoformat() if p.close_date else None,
                'symbol': p.symbol,
                'strategy': p.strategy,
                'revenue': float(pnl),
                'result': 'WIN' if pnl > 0 else 'LOSS' if pnl < 0 else 'BREAKEVEN',
            })

        stats = compute_stats(positions)
        summary = {
            'totalTrades': stats.total_positions,
            'totalPnL': float(stats.net_profit),
            'winRate': float(stats.win_rate),
            'avgWin': float(stats.avg_win),
            'avgLoss': float(stats.avg_loss),
        }
        return PerformanceReport(rows=rows, summary=summary)

    def _group_closed(self, key_fn) -> List[GroupSummary]:
        groups: Dict[str, List[Decimal]] = {}
        for p in self._closed():
            groups.setdefault(key_fn(p), []).append(p.realized_pnl or ZERO)
        summaries = [
            GroupSummary(key=key, count=len(pnls), net=dm.to_money(sum(pnls, ZERO)), avg=_avg(pnls))
            for key, pnls in groups.items()
        ]
        return sorted(summaries, key=lambda s: s.net, reverse=True)
