"""
Tests for the event dispatcher

Tests subscription, publishing and handler failure isolation.
"""

import pytest

from collection_desk.events import DomainEvent, EventDispatcher, EventPayload


@pytest.fixture
def dispatcher():
    return EventDispatcher()


class TestEventDispatcher:
    """Test publish/subscribe behaviour"""

    def test_subscriber_receives_event(self, dispatcher):
        received = []
        dispatcher.subscribe(DomainEvent.CHEQUES_UPDATED, received.append)

        event = dispatcher.emit(DomainEvent.CHEQUES_UPDATED, "collection", "c1", {"cheque_ids": ["q1"]})

        assert received == [event]
        assert event.data == {"cheque_ids": ["q1"]}

    def test_only_matching_type_delivered(self, dispatcher):
        received = []
        dispatcher.subscribe(DomainEvent.COLLECTION_DELETED, received.append)
        dispatcher.emit(DomainEvent.CHEQUES_UPDATED, "collection", "c1")
        assert received == []

    def test_global_handler_sees_everything(self, dispatcher):
        received = []
        dispatcher.subscribe_all(received.append)
        dispatcher.emit(DomainEvent.CHEQUES_UPDATED, "collection", "c1")
        dispatcher.emit(DomainEvent.COLLECTION_COMPLETED, "collection", "c1")
        assert [e.event_type for e in received] == [
            DomainEvent.CHEQUES_UPDATED, DomainEvent.COLLECTION_COMPLETED
        ]

    def test_failing_handler_does_not_block_others(self, dispatcher):
        received = []

        def broken(event):
            raise RuntimeError("listener down")

        dispatcher.subscribe(DomainEvent.CHEQUES_UPDATED, broken)
        dispatcher.subscribe(DomainEvent.CHEQUES_UPDATED, received.append)
        dispatcher.emit(DomainEvent.CHEQUES_UPDATED, "collection", "c1")

        assert len(received) == 1

    def test_disabled_dispatcher_is_silent(self):
        dispatcher = EventDispatcher(enabled=False)
        received = []
        dispatcher.subscribe_all(received.append)
        dispatcher.emit(DomainEvent.CHEQUES_UPDATED, "collection", "c1")
        assert received == []

    def test_unsubscribe_and_counts(self, dispatcher):
        handler = lambda event: None
        dispatcher.subscribe(DomainEvent.CHEQUES_UPDATED, handler)
        dispatcher.subscribe_all(handler)
        assert dispatcher.get_handler_count() == 2
        assert dispatcher.get_handler_count(DomainEvent.CHEQUES_UPDATED) == 1

        dispatcher.unsubscribe(DomainEvent.CHEQUES_UPDATED, handler)
        assert dispatcher.get_handler_count(DomainEvent.CHEQUES_UPDATED) == 0

        dispatcher.clear()
        assert dispatcher.get_handler_count() == 0


class TestEventPayload:
    """Test payload serialization"""

    def test_to_dict(self):
        payload = EventPayload(DomainEvent.COLLECTION_MERGED, "collection", "c1", {"merged_into": "c2"})
        data = payload.to_dict()
        assert data["event_type"] == "collection.merged"
        assert data["entity_id"] == "c1"
        assert data["data"] == {"merged_into": "c2"}
        assert "timestamp" in data and "event_id" in data
