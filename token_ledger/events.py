"""
Event System Module

Transfer and Approval events emitted by the token ledger, a synchronous
publish/subscribe dispatcher that delivers them to external sinks, and an
ordered in-memory recorder.
"""

from collections import deque
from enum import Enum
from typing import Callable, Deque, Dict, List, Any, Hashable, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging
from threading import RLock


class TokenEvent(Enum):
    """Observable event kinds"""
    TRANSFER = "token.transfer"
    APPROVAL = "token.approval"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_event_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class TransferEvent:
    """
    Balance movement between two accounts.
    A null sender marks a mint, a null receiver marks a burn.
    """
    sender: Hashable
    receiver: Hashable
    amount: int
    timestamp: datetime = field(default_factory=_utcnow)
    event_id: str = field(default_factory=_new_event_id)

    event_type = TokenEvent.TRANSFER

    def involves(self, account: Hashable) -> bool:
        return account in (self.sender, self.receiver)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'event_type': self.event_type.value,
            'sender': self.sender,
            'receiver': self.receiver,
            'amount': str(self.amount),
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransferEvent':
        """Create from dictionary"""
        return cls(
            sender=data['sender'],
            receiver=data['receiver'],
            amount=int(data['amount']),
            timestamp=_parse_timestamp(data['timestamp']),
            event_id=data['event_id']
        )


@dataclass(frozen=True)
class ApprovalEvent:
    """Allowance set for a spender, either explicitly or by spend-down"""
    owner: Hashable
    spender: Hashable
    amount: int
    timestamp: datetime = field(default_factory=_utcnow)
    event_id: str = field(default_factory=_new_event_id)

    event_type = TokenEvent.APPROVAL

    def involves(self, account: Hashable) -> bool:
        return account in (self.owner, self.spender)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'event_type': self.event_type.value,
            'owner': self.owner,
            'spender': self.spender,
            'amount': str(self.amount),
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApprovalEvent':
        """Create from dictionary"""
        return cls(
            owner=data['owner'],
            spender=data['spender'],
            amount=int(data['amount']),
            timestamp=_parse_timestamp(data['timestamp']),
            event_id=data['event_id']
        )


LedgerEvent = Union[TransferEvent, ApprovalEvent]


def _parse_timestamp(value: Union[str, datetime]) -> datetime:
    return datetime.fromisoformat(value) if isinstance(value, str) else value


def event_from_dict(data: Dict[str, Any]) -> LedgerEvent:
    """Rebuild a ledger event from its dictionary form"""
    event_type = TokenEvent(data['event_type'])
    if event_type == TokenEvent.TRANSFER:
        return TransferEvent.from_dict(data)
    return ApprovalEvent.from_dict(data)


class EventDispatcher:
    """Synchronous event dispatcher (publish/subscribe pattern)"""

    def __init__(self):
        self._handlers: Dict[TokenEvent, List[Callable]] = {}
        self._global_handlers: List[Callable] = []  # catch-all handlers
        self._lock = RLock()
        self.logger = logging.getLogger("token_ledger.events")

    def subscribe(self, event_type: TokenEvent, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {_handler_name(handler)} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to ALL events"""
        with self._lock:
            self._global_handlers.append(handler)
            self.logger.debug(f"Subscribed global handler {_handler_name(handler)}")

    def unsubscribe(self, event_type: TokenEvent, handler: Callable) -> None:
        """Unsubscribe from a specific event type"""
        with self._lock:
            try:
                self._handlers.get(event_type, []).remove(handler)
                self.logger.debug(f"Unsubscribed handler {_handler_name(handler)} from {event_type.value}")
            except ValueError:
                self.logger.warning(f"Handler {_handler_name(handler)} was not subscribed to {event_type.value}")

    def unsubscribe_all(self, handler: Callable) -> None:
        """Unsubscribe a catch-all handler"""
        with self._lock:
            try:
                self._global_handlers.remove(handler)
                self.logger.debug(f"Unsubscribed global handler {_handler_name(handler)}")
            except ValueError:
                self.logger.warning(f"Global handler {_handler_name(handler)} was not subscribed")

    def publish(self, event: LedgerEvent) -> None:
        """
        Deliver an event to every subscriber, in subscription order.

        Handler failures are logged and never propagate back into the
        ledger operation that emitted the event.
        """
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, []))
            handlers.extend(self._global_handlers)

        self.logger.debug(f"Publishing {event.event_type.value} event {event.event_id}")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(
                    f"Error in event handler {_handler_name(handler)} "
                    f"for {event.event_type.value}: {e}"
                )

    def clear(self) -> None:
        """Clear all handlers"""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()
            self.logger.info("All event handlers cleared")

    def get_handler_count(self, event_type: Optional[TokenEvent] = None) -> int:
        """Get count of handlers for a specific event type or all"""
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            total = sum(len(handlers) for handlers in self._handlers.values())
            return total + len(self._global_handlers)


class EventLog:
    """
    Ordered record of events published on a dispatcher

    With max_events set only the newest events are kept; older ones are
    discarded as new ones arrive. None keeps everything.
    """

    def __init__(
        self,
        dispatcher: Optional[EventDispatcher] = None,
        max_events: Optional[int] = None
    ):
        if max_events is not None and max_events < 1:
            raise ValueError("max_events must be positive")
        self.max_events = max_events
        self._events: Deque[LedgerEvent] = deque(maxlen=max_events)
        self._lock = RLock()
        if dispatcher is not None:
            self.attach(dispatcher)

    def attach(self, dispatcher: EventDispatcher) -> None:
        dispatcher.subscribe_all(self.record)

    def record(self, event: LedgerEvent) -> None:
        with self._lock:
            self._events.append(event)

    def events(
        self,
        event_type: Optional[TokenEvent] = None,
        account: Optional[Hashable] = None,
        offset: int = 0,
        limit: Optional[int] = None
    ) -> List[LedgerEvent]:
        """
        Get recorded events in emission order

        Args:
            event_type: Only return events of this kind
            account: Only return events in which this account takes part
            offset: Number of matching events to skip
            limit: Maximum number of events to return

        Returns:
            List of matching events
        """
        with self._lock:
            result = list(self._events)

        if event_type:
            result = [e for e in result if e.event_type == event_type]
        if account is not None:
            result = [e for e in result if e.involves(account)]
        end = None if limit is None else offset + limit
        return result[offset:end]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__name__", repr(handler))
