"""
Tests for the cash flow ledger: append, sums, and the idempotent
open / close premium writes.
"""

import pytest
from decimal import Decimal

import options_journal.core.models.domain as dm
from options_journal.core.exceptions import LedgerWriteError
from options_journal.repositories.base import RepositoryError
from options_journal.repositories.cashflow import CashFlowRepository
from options_journal.services.ledger import CashFlowLedger


@pytest.fixture
def ledger(session):
    return CashFlowLedger(session)


@pytest.fixture
def position():
    """Unsaved position; the ledger only needs id, symbol and strategy."""
    return dm.Position(symbol='SPY', strategy='Put Credit Spread', net_premium=Decimal('60.00'))


class TestAppend:

    def test_append_returns_id(self, ledger, position):
        entry = dm.CashFlowEntry(position_id=position.id, type=dm.CashFlowType.ASSIGNMENT, amount=Decimal('-9500'))
        entry_id = ledger.append(entry)
        assert entry_id == entry.id
        assert ledger.entries_for(position.id)[0].amount == Decimal('-9500.00')

    def test_amounts_rounded_to_cents(self, ledger, position):
        ledger.append(dm.CashFlowEntry(position_id=position.id, type=dm.CashFlowType.EXERCISE, amount=Decimal('10.005')))
        assert ledger.sum(position.id) == Decimal('10.01')

    def test_sequence_keeps_insertion_order(self, ledger, position):
        for amount in ('3', '1', '2'):
            ledger.append(dm.CashFlowEntry(position_id=position.id, type=dm.CashFlowType.ROLL_IN, amount=Decimal(amount)))
        assert [e.amount for e in ledger.entries_for(position.id)] == [Decimal('3.00'), Decimal('1.00'), Decimal('2.00')]

    def test_repository_failure_surfaces_as_ledger_error(self, ledger, position, monkeypatch):
        def boom(entry):
            raise RepositoryError("disk full")
        monkeypatch.setattr(ledger.repo, 'create_from_domain', boom)
        with pytest.raises(LedgerWriteError) as exc_info:
            ledger.record_open_premium(position, Decimal('60'))
        assert exc_info.value.code == 'LedgerWriteFailed'


class TestOpenPremium:

    def test_written_once(self, ledger, position):
        """A repeated OPEN_PREMIUM for the same position is a no-op."""
        first = ledger.record_open_premium(position, Decimal('60'))
        second = ledger.record_open_premium(position, Decimal('60'))
        assert first is not None
        assert second is None
        assert len(ledger.entries_for(position.id)) == 1
        assert ledger.sum(position.id) == Decimal('60.00')

    def test_default_description(self, ledger, position):
        ledger.record_open_premium(position, Decimal('60'))
        assert ledger.entries_for(position.id)[0].description == 'Open Put Credit Spread SPY'


class TestClosePremium:

    def test_write_then_correct_in_place(self, ledger, position):
        """A second close corrects the single CLOSE_PREMIUM row."""
        first_id = ledger.record_close_premium(position, Decimal('-30'))
        second_id = ledger.record_close_premium(position, Decimal('-10'))
        assert first_id == second_id
        closes = [e for e in ledger.entries_for(position.id) if e.type == dm.CashFlowType.CLOSE_PREMIUM]
        assert len(closes) == 1
        assert closes[0].amount == Decimal('-10.00')

    def test_same_amount_is_noop(self, ledger, position):
        first_id = ledger.record_close_premium(position, Decimal('-30'))
        assert ledger.record_close_premium(position, Decimal('-30.00')) == first_id
        assert len(ledger.entries_for(position.id)) == 1


class TestSums:

    def test_sum_scoped_to_roll_group(self, ledger, position):
        ledger.record_open_premium(position, Decimal('60'))
        ledger.record_close_premium(position, Decimal('-125'), roll_group_id='group-1')
        assert ledger.sum(position.id) == Decimal('-65.00')
        assert ledger.sum(position.id, 'group-1') == Decimal('-125.00')

    def test_sum_of_unknown_position_is_zero(self, ledger):
        assert ledger.sum('nobody') == Decimal('0.00')

    def test_stock_flows_once_per_type(self, ledger, position):
        ledger.record_stock_flow(position, dm.CashFlowType.STOCK_BUY, Decimal('-1500'))
        assert ledger.record_stock_flow(position, dm.CashFlowType.STOCK_BUY, Decimal('-1500')) is None
        ledger.record_stock_flow(position, dm.CashFlowType.STOCK_SELL, Decimal('1600'))
        assert ledger.sum(position.id) == Decimal('100.00')

    def test_delete_by_position(self, session, ledger, position):
        ledger.record_open_premium(position, Decimal('60'))
        ledger.record_close_premium(position, Decimal('-30'))
        assert ledger.delete_for_position(position.id) == 2
        assert CashFlowRepository(session).get_by_position(position.id) == []

    def test_entry_to_dict(self, ledger, position):
        ledger.record_open_premium(position, Decimal('60'), roll_group_id='g', related_position_id='other')
        data = ledger.entries_for(position.id)[0].to_dict()
        assert data['type'] == 'OPEN_PREMIUM'
        assert data['amount'] == 60.0
        assert data['rollGroupId'] == 'g'
        assert data['relatedPositionId'] == 'other'
