"""
Live Quotes - read-only option quotes for a position's legs.

Display only: nothing here touches the ledger or any stored figure.

Provides:
    - QuoteGateway: ABC a market-data client implements
    - OptionQuote: last / bid / ask / greeks for one contract
    - LiveQuoteService: one quote row per leg of a position
    - StaticQuoteGateway: quotes from a mapping (files, tests)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from options_journal.core.exceptions import PositionNotFoundError
from options_journal.core.models.occ import occ_symbol_for_leg
from options_journal.repositories.position import PositionRepository

logger = logging.getLogger(__name__)


@dataclass
class OptionQuote:
    last: Optional[Decimal] = None
    bid: Optional[Decimal] = None
    ask: Optional[Decimal] = None
    greeks: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def mid(self) -> Optional[Decimal]:
        if self.bid is None or self.ask is None:
            return None
        return (self.bid + self.ask) / 2

    @property
    def is_empty(self) -> bool:
        return self.last is None and self.bid is None and self.ask is None

    def to_dict(self) -> Dict[str, Any]:
        def out(v):
            return float(v) if v is not None else None
        return {
            'last': out(self.last),
            'bid': out(self.bid),
            'ask': out(self.ask),
            'mid': out(self.mid),
            'greeks': {k: float(v) for k, v in self.greeks.items()},
        }


class QuoteGateway(ABC):
    """Interface all market-data clients implement."""

    @abstractmethod
    def get_quote(self, occ_symbol: str) -> Optional[OptionQuote]:
        """Quote for one OCC symbol, None when the contract is unknown."""
        ...


@dataclass
class LegQuote:
    leg_id: str
    occ_symbol: str
    quote: OptionQuote
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'legId': self.leg_id, 'occSymbol': self.occ_symbol, 'error': self.error}
        data.update(self.quote.to_dict())
        return data


class LiveQuoteService:

    def __init__(self, session: Session, gateway: QuoteGateway):
        self.positions = PositionRepository(session)
        self.gateway = gateway

    def quotes_for_position(self, position_id: str) -> List[LegQuote]:
        """
        One row per leg, in leg order.

        A gateway failure on one leg is logged and yields an empty quote
        for that leg only.
        """
        position = self.positions.get(position_id)
        if position is None:
            raise PositionNotFoundError(f"Position {position_id} not found")

        rows = []
        for leg in position.legs:
            occ_symbol = occ_symbol_for_leg(position.symbol, leg)
            try:
                quote = self.gateway.get_quote(occ_symbol) or OptionQuote()
                rows.append(LegQuote(leg_id=leg.id, occ_symbol=occ_symbol, quote=quote))
            except Exception as e:
                logger.warning(f"Quote lookup failed for {occ_symbol}: {e}")
                rows.append(LegQuote(leg_id=leg.id, occ_symbol=occ_symbol, quote=OptionQuote(), error=str(e)))
        return rows


class StaticQuoteGateway(QuoteGateway):
    """
    Quotes from a plain mapping of OCC symbol -> {last, bid, ask, greeks}.

    Lets the CLI and tests show quotes without a broker connection.
    """

    def __init__(self, quotes: Optional[Dict[str, Dict[str, Any]]] = None):
        self.quotes = {k.upper(): v for k, v in (quotes or {}).items()}

    def get_quote(self, occ_symbol: str) -> Optional[OptionQuote]:
        raw = self.quotes.get(occ_symbol.upper())
        if raw is None:
            return None

        def dec(value):
            return Decimal(str(value)) if value is not None else None

        return OptionQuote(
            last=dec(raw.get('last')),
            bid=dec(raw.get('bid')),
            ask=dec(raw.get('ask')),
            greeks={k: Decimal(str(v)) for k, v in (raw.get('greeks') or {}).items()},
        )
