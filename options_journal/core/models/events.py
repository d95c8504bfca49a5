"""
Change Events - what subscribers hear after a position mutates

Every successful mutating operation produces one ChangeEvent per affected
position. The payload is the position's persisted shape, or {"id": ...} for
a deletion.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any
import uuid

from options_journal.core.models.domain import utcnow


class ChangeType(Enum):
    """Types of position change events"""
    CREATED = "created"
    UPDATED = "updated"
    CLOSED = "closed"
    ROLLED_OUT = "rolled_out"
    ROLLED_IN = "rolled_in"
    ARCHIVED = "archived"
    DELETED = "deleted"


@dataclass
class ChangeEvent:
    change_type: ChangeType
    payload: Dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def position_id(self) -> str:
        return self.payload.get('id', '')

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for delivery"""
        return {
            'event_id': self.event_id,
            'event': self.change_type.value,
            'timestamp': self.timestamp.isoformat(),
            'payload': self.payload,
        }
