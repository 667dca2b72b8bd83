"""
Tests for the Event System

Tests event shapes, the synchronous dispatcher and the event log recorder.
"""

import pytest
from datetime import datetime
from unittest.mock import Mock

from token_ledger.events import (
    ApprovalEvent, EventDispatcher, EventLog, TokenEvent, TransferEvent,
    event_from_dict
)


class TestEventShapes:
    """Test Transfer and Approval event creation and serialization"""

    def test_transfer_event_creation(self):
        """Test creating a transfer event"""
        event = TransferEvent(sender="a", receiver="b", amount=10)

        assert event.event_type == TokenEvent.TRANSFER
        assert isinstance(event.timestamp, datetime)
        assert len(event.event_id) > 0
        assert event.involves("a")
        assert event.involves("b")
        assert not event.involves("c")

    def test_approval_event_creation(self):
        """Test creating an approval event"""
        event = ApprovalEvent(owner="a", spender="b", amount=10)

        assert event.event_type == TokenEvent.APPROVAL
        assert event.involves("b")

    def test_events_are_immutable(self):
        """Test that emitted events cannot be altered by sinks"""
        event = TransferEvent(sender="a", receiver="b", amount=10)
        with pytest.raises(AttributeError):
            event.amount = 11

    def test_transfer_event_serialization(self):
        """Test transfer event to/from dict keeps large amounts exact"""
        original = TransferEvent(sender="a", receiver="b", amount=2**256 - 1)

        data = original.to_dict()
        assert data["event_type"] == "token.transfer"
        assert data["amount"] == str(2**256 - 1)

        restored = event_from_dict(data)
        assert restored == original

    def test_approval_event_serialization(self):
        """Test approval event to/from dict"""
        original = ApprovalEvent(owner="a", spender="b", amount=5)

        restored = event_from_dict(original.to_dict())
        assert isinstance(restored, ApprovalEvent)
        assert restored == original


class TestEventDispatcher:
    """Test the event dispatcher"""

    def test_subscribe_and_publish_single_event(self):
        """Test subscribing to a single event type and publishing"""
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(TokenEvent.TRANSFER, handler)

        event = TransferEvent(sender="a", receiver="b", amount=1)
        dispatcher.publish(event)

        handler.assert_called_once_with(event)

    def test_handler_not_called_for_other_type(self):
        """Test that type-specific handlers only see their type"""
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(TokenEvent.APPROVAL, handler)

        dispatcher.publish(TransferEvent(sender="a", receiver="b", amount=1))

        handler.assert_not_called()

    def test_global_handler_receives_everything(self):
        """Test catch-all subscription"""
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe_all(handler)

        dispatcher.publish(TransferEvent(sender="a", receiver="b", amount=1))
        dispatcher.publish(ApprovalEvent(owner="a", spender="b", amount=1))

        assert handler.call_count == 2

    def test_unsubscribe(self):
        """Test removing handlers"""
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(TokenEvent.TRANSFER, handler)
        dispatcher.subscribe_all(handler)

        dispatcher.unsubscribe(TokenEvent.TRANSFER, handler)
        dispatcher.unsubscribe_all(handler)
        dispatcher.publish(TransferEvent(sender="a", receiver="b", amount=1))

        handler.assert_not_called()
        assert dispatcher.get_handler_count() == 0

    def test_unsubscribe_unknown_handler(self):
        """Test unsubscribing a handler that was never added is harmless"""
        dispatcher = EventDispatcher()
        dispatcher.unsubscribe(TokenEvent.TRANSFER, Mock())
        dispatcher.unsubscribe_all(Mock())

    def test_handler_error_isolated(self):
        """Test one failing handler does not stop the others"""
        dispatcher = EventDispatcher()
        failing = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        dispatcher.subscribe(TokenEvent.TRANSFER, failing)
        dispatcher.subscribe(TokenEvent.TRANSFER, healthy)

        dispatcher.publish(TransferEvent(sender="a", receiver="b", amount=1))

        failing.assert_called_once()
        healthy.assert_called_once()

    def test_handler_count_and_clear(self):
        """Test handler bookkeeping"""
        dispatcher = EventDispatcher()
        dispatcher.subscribe(TokenEvent.TRANSFER, Mock())
        dispatcher.subscribe(TokenEvent.APPROVAL, Mock())
        dispatcher.subscribe_all(Mock())

        assert dispatcher.get_handler_count(TokenEvent.TRANSFER) == 1
        assert dispatcher.get_handler_count() == 3

        dispatcher.clear()
        assert dispatcher.get_handler_count() == 0


class TestEventLog:
    """Test the ordered event recorder"""

    def test_records_in_order(self):
        """Test events are kept in publication order"""
        dispatcher = EventDispatcher()
        log = EventLog(dispatcher)

        first = TransferEvent(sender="a", receiver="b", amount=1)
        second = ApprovalEvent(owner="b", spender="c", amount=2)
        dispatcher.publish(first)
        dispatcher.publish(second)

        assert log.events() == [first, second]
        assert len(log) == 2

    def test_filter_by_type_and_account(self):
        """Test filtering recorded events"""
        log = EventLog()
        log.record(TransferEvent(sender="a", receiver="b", amount=1))
        log.record(ApprovalEvent(owner="b", spender="c", amount=2))
        log.record(TransferEvent(sender="c", receiver="d", amount=3))

        assert len(log.events(event_type=TokenEvent.TRANSFER)) == 2
        assert [e.amount for e in log.events(account="c")] == [2, 3]
        assert [e.amount for e in log.events(TokenEvent.TRANSFER, account="b")] == [1]

    def test_clear(self):
        """Test clearing the log"""
        log = EventLog()
        log.record(TransferEvent(sender="a", receiver="b", amount=1))
        log.clear()
        assert log.events() == []

    def test_bounded_log_keeps_newest(self):
        """Test a capped log discards the oldest events first"""
        log = EventLog(max_events=3)
        for amount in range(1, 6):
            log.record(TransferEvent(sender="a", receiver="b", amount=amount))

        assert len(log) == 3
        assert [e.amount for e in log.events()] == [3, 4, 5]

    def test_invalid_cap_rejected(self):
        """Test the cap must be positive"""
        with pytest.raises(ValueError):
            EventLog(max_events=0)

    def test_offset_and_limit(self):
        """Test paging over matching events"""
        log = EventLog()
        for amount in range(1, 6):
            log.record(TransferEvent(sender="a", receiver="b", amount=amount))

        assert [e.amount for e in log.events(offset=1, limit=2)] == [2, 3]
        assert [e.amount for e in log.events(offset=4)] == [5]
        assert log.events(offset=10) == []
