"""
Change Notifier - tells subscribers a position changed.

Fire-and-forget: a failing sink is logged and never undoes the mutation.

Provides:
    - ChangeNotifier: ABC every sink implements
    - LoggingNotifier: writes one INFO line per event (default)
    - CallbackNotifier: hands events to a callable (websocket bridge, tests)
    - NullNotifier: drops everything (notify_changes=False)
    - safe_emit(): the only way the service layer calls a notifier
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Any, List
import logging

from options_journal.core.models.events import ChangeEvent, ChangeType

logger = logging.getLogger(__name__)


class ChangeNotifier(ABC):
    """Interface all change sinks implement."""

    @abstractmethod
    def emit(self, change_type: ChangeType, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotifier(ChangeNotifier):

    def emit(self, change_type: ChangeType, payload: Dict[str, Any]) -> None:
        logger.info(
            f"[{change_type.value}] {payload.get('id', '?')[:8]} "
            f"{payload.get('symbol', '')} {payload.get('strategy', '')} "
            f"status={payload.get('status', '-')}"
        )


class CallbackNotifier(ChangeNotifier):
    """Forwards each event to every registered callback, in order."""

    def __init__(self, *callbacks: Callable[[ChangeEvent], None]):
        self.callbacks: List[Callable[[ChangeEvent], None]] = list(callbacks)

    def subscribe(self, callback: Callable[[ChangeEvent], None]) -> None:
        self.callbacks.append(callback)

    def emit(self, change_type: ChangeType, payload: Dict[str, Any]) -> None:
        event = ChangeEvent(change_type=change_type, payload=payload)
        for callback in self.callbacks:
            callback(event)


class NullNotifier(ChangeNotifier):

    def emit(self, change_type: ChangeType, payload: Dict[str, Any]) -> None:
        pass


def safe_emit(notifier: ChangeNotifier, change_type: ChangeType, payload: Dict[str, Any]) -> None:
    """Emit, logging and swallowing any sink failure."""
    try:
        notifier.emit(change_type, payload)
    except Exception:
        logger.exception(f"Notifier failed for {change_type.value} {payload.get('id', '?')}")
