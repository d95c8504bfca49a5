"""
Test Fixtures - Shared across all unit tests.

Provides:
- In-memory SQLite database (fresh per test)
- Position service wired to a recording notifier
- Ticket payloads for the common strategies
- Known Decimal constants for reproducibility
"""

import pytest
from datetime import date
from decimal import Decimal

from options_journal.config.settings import Settings
from options_journal.core.database.session import create_test_database
from options_journal.services.notifier import CallbackNotifier
from options_journal.services.position_service import PositionService
from options_journal.services.quotes import QuoteGateway, OptionQuote


# =============================================================================
# Known constants for deterministic tests
# =============================================================================

KNOWN_EXPIRATION = date(2026, 3, 20)
KNOWN_NEXT_EXPIRATION = date(2026, 4, 17)
KNOWN_SHORT_PREMIUM = Decimal('1.20')
KNOWN_LONG_PREMIUM = Decimal('0.60')
KNOWN_NET_CREDIT = Decimal('60.00')        # (1.20 - 0.60) * 100
KNOWN_EXIT_PRICE = Decimal('0.30')
KNOWN_ROLL_OUT_COST = Decimal('1.25')
KNOWN_ROLL_IN_CREDIT = Decimal('1.80')


def make_leg(action, option_type, strike, premium, expiration=KNOWN_EXPIRATION, quantity=1):
    """Request-shaped leg dict."""
    return {
        'action': action,
        'optionType': option_type,
        'strike': strike,
        'expiration': expiration.isoformat(),
        'premium': premium,
        'quantity': quantity,
    }


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
def db_manager():
    """Create a fresh in-memory SQLite database for each test."""
    return create_test_database()


@pytest.fixture
def session(db_manager):
    """Yield a session from the in-memory database, auto-commits on success."""
    with db_manager.session_scope() as s:
        yield s


@pytest.fixture
def settings():
    """Defaults, independent of any local .env."""
    return Settings(
        database_url="sqlite:///:memory:",
        notify_changes=True,
        contract_multiplier=100,
        max_leg_premium=Decimal('50'),
        breakeven_band=Decimal('0.01'),
        cascade_delete_cashflows=False,
    )


# =============================================================================
# Service fixtures
# =============================================================================

class RecordingSink:
    """Collects every ChangeEvent it is handed."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    @property
    def types(self):
        return [e.change_type.value for e in self.events]


@pytest.fixture
def recorder():
    return RecordingSink()


@pytest.fixture
def notifier(recorder):
    return CallbackNotifier(recorder)


@pytest.fixture
def service(session, notifier, settings):
    """PositionService over the test session."""
    return PositionService(session, notifier=notifier, settings=settings)


class FakeQuoteGateway(QuoteGateway):
    """Fixed quotes by OCC symbol; symbols in `failing` raise."""

    def __init__(self, quotes=None, failing=()):
        self.quotes = quotes or {}
        self.failing = set(failing)
        self.requested = []

    def get_quote(self, occ_symbol):
        self.requested.append(occ_symbol)
        if occ_symbol in self.failing:
            raise ConnectionError(f"quote feed down for {occ_symbol}")
        return self.quotes.get(occ_symbol)


@pytest.fixture
def quote_gateway():
    return FakeQuoteGateway(quotes={
        'SPY260320P00100000': OptionQuote(last=Decimal('0.35'), bid=Decimal('0.30'), ask=Decimal('0.40'),
                                          greeks={'delta': Decimal('-0.12')}),
    })


# =============================================================================
# Ticket payloads
# =============================================================================

@pytest.fixture
def put_credit_spread_payload():
    """STO PUT 100 @1.20 / BTO PUT 95 @0.60, net credit 60."""
    return {
        'symbol': 'spy',
        'broker': 'Fidelity',
        'strategy': 'Put Credit Spread',
        'legs': [
            make_leg('STO', 'Put', 100, KNOWN_SHORT_PREMIUM),
            make_leg('BTO', 'Put', 95, KNOWN_LONG_PREMIUM),
        ],
    }


@pytest.fixture
def iron_condor_legs():
    return [
        make_leg('Sell to Open', 'Put', 100, '1.20'),
        make_leg('Buy to Open', 'Put', 95, '0.60'),
        make_leg('Sell to Open', 'Call', 110, '1.10'),
        make_leg('Buy to Open', 'Call', 115, '0.50'),
    ]


@pytest.fixture
def roll_legs():
    """Same spread, next month."""
    return [
        make_leg('STO', 'Put', 100, '2.40', expiration=KNOWN_NEXT_EXPIRATION),
        make_leg('BTO', 'Put', 95, '0.60', expiration=KNOWN_NEXT_EXPIRATION),
    ]


@pytest.fixture
def open_spread(service, put_credit_spread_payload):
    """A stored, Open put credit spread."""
    return service.create(put_credit_spread_payload)
