"""
Tests for the performance aggregations over stored positions.
"""

import pytest
from datetime import datetime
from decimal import Decimal

import options_journal.core.models.domain as dm
from options_journal.repositories.position import PositionRepository
from options_journal.services.performance_service import PerformanceService, compute_stats


def closed(symbol, strategy, realized, close_date, broker=dm.Broker.FIDELITY):
    return dm.Position(
        symbol=symbol,
        strategy=strategy,
        broker=broker,
        status=dm.PositionStatus.CLOSED,
        realized_pnl=Decimal(realized),
        open_date=close_date,
        close_date=close_date,
    )


@pytest.fixture
def book(session):
    """Four closed trades across two months and one open spread."""
    repo = PositionRepository(session)
    for p in (
        closed('SPY', 'Put Credit Spread', '30', datetime(2026, 1, 10)),
        closed('SPY', 'Put Credit Spread', '-90', datetime(2026, 1, 20)),
        closed('QQQ', 'Iron Condor', '120', datetime(2026, 2, 5), broker=dm.Broker.SCHWAB),
        closed('QQQ', 'Iron Condor', '0', datetime(2026, 2, 25), broker=dm.Broker.SCHWAB),
        dm.Position(symbol='IWM', strategy='Strangle', net_premium=Decimal('250'), open_date=datetime(2026, 2, 1)),
        dm.Position(symbol='IWM', strategy='Strangle', net_premium=Decimal('100'), open_date=datetime(2026, 2, 2)),
    ):
        repo.create_from_domain(p)
    return PerformanceService(session)


class TestStats:

    def test_closed_stats(self, book):
        stats = book.stats()
        assert stats.total_positions == 4
        assert stats.net_profit == Decimal('60.00')
        assert stats.win_rate == Decimal('50.00')
        assert stats.avg_pnl == Decimal('15.00')
        assert stats.avg_win == Decimal('75.00')
        assert stats.avg_loss == Decimal('-90.00')

    def test_filtered_by_symbol(self, book):
        stats = book.stats(symbol='spy')
        assert stats.total_positions == 2
        assert stats.net_profit == Decimal('-60.00')

    def test_empty(self, session):
        stats = PerformanceService(session).stats()
        assert stats.total_positions == 0
        assert stats.win_rate == Decimal('0')
        assert stats.to_summary_row()[4] == '-'

    def test_compute_stats_is_pure(self):
        stats = compute_stats([closed('SPY', 'x', '10', datetime(2026, 1, 1))])
        assert stats.to_dict()['winRate'] == 100.0


class TestSummaries:

    def test_by_strategy_sorted_by_net(self, book):
        rows = book.summary_by_strategy()
        assert [(r.key, r.count, r.net) for r in rows] == [
            ('Iron Condor', 2, Decimal('120.00')),
            ('Put Credit Spread', 2, Decimal('-60.00')),
        ]
        assert rows[0].avg == Decimal('60.00')

    def test_by_symbol(self, book):
        rows = book.summary_by_symbol()
        assert rows[0].to_dict('symbol') == {'symbol': 'QQQ', 'count': 2, 'netProfit': 120.0, 'avgPnL': 60.0}

    def test_by_month_oldest_first(self, book):
        rows = book.summary_by_month()
        assert [(r.key, r.net) for r in rows] == [('2026-01', Decimal('-60.00')), ('2026-02', Decimal('120.00'))]

    def test_open_summary(self, book):
        rows = book.open_summary()
        assert len(rows) == 1
        assert rows[0].to_dict() == {'strategy': 'Strangle', 'symbol': 'IWM', 'count': 2, 'netPremium': 350.0}


class TestPerformanceReport:

    def test_window_and_rows(self, book):
        report = book.performance_report(date_from=datetime(2026, 2, 1), date_to=datetime(2026, 2, 28))
        assert [r['result'] for r in report.rows] == ['BREAKEVEN', 'WIN']
        assert report.summary['totalTrades'] == 2
        assert report.summary['totalPnL'] == 120.0

    def test_newest_first(self, book):
        dates = [r['date'] for r in book.performance_report().rows]
        assert dates == sorted(dates, reverse=True)

    def test_broker_filter(self, book):
        report = book.performance_report(broker=dm.Broker.FIDELITY)
        assert {r['symbol'] for r in report.rows} == {'SPY'}
        assert report.summary['winRate'] == 50.0
