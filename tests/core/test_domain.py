"""Tests for domain entities and events."""

from redmine_connector.core.domain.entities import (
    Attachment,
    CustomField,
    SimpleEntity,
    Task,
)
from redmine_connector.core.domain.events import (
    CacheFallbackUsed,
    DomainEvent,
    EventBus,
    TasksFetched,
)


class TestSimpleEntity:
    """Tests for SimpleEntity identity."""

    def test_equality_by_id(self):
        assert SimpleEntity(1, "Old name") == SimpleEntity(1, "New name")
        assert SimpleEntity(1, "Same") != SimpleEntity(2, "Same")

    def test_hash_by_id(self):
        assert len({SimpleEntity(1, "a"), SimpleEntity(1, "b"), SimpleEntity(2, "a")}) == 2

    def test_str(self):
        assert str(SimpleEntity(3, "Bug")) == "Bug"


class TestTask:
    """Tests for Task."""

    def test_copy_as_new(self):
        original = Task(
            id=42,
            subject="Original",
            status="Closed",
            status_id=5,
            is_closed=True,
            tracker_id=1,
            assigned_to_id=4,
            done_ratio=100,
            notes="note",
            attachments=[Attachment(id=1, filename="a.txt")],
            custom_fields=[CustomField(3, "Severity", "High")],
        )

        copy = original.copy_as_new()

        assert copy.id == 0
        assert copy.subject == "Original"
        assert copy.status_id == 0 and not copy.is_closed
        assert copy.done_ratio == 0
        assert copy.notes == ""
        assert copy.tracker_id == 1 and copy.assigned_to_id == 4
        assert copy.created_on is not None
        assert copy.custom_fields == original.custom_fields
        assert copy.custom_fields[0] is not original.custom_fields[0]
        assert copy.attachments == original.attachments


class TestEventBus:
    """Tests for EventBus."""

    def test_publish_to_type_and_catch_all(self):
        bus = EventBus()
        typed, everything = [], []
        bus.subscribe(TasksFetched, typed.append)
        bus.subscribe(DomainEvent, everything.append)

        bus.publish(TasksFetched(instance_key="x"))
        bus.publish(CacheFallbackUsed(cache_key="k"))

        assert len(typed) == 1
        assert [e.event_type for e in everything] == ["TasksFetched", "CacheFallbackUsed"]

    def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(TasksFetched, broken)
        bus.subscribe(TasksFetched, received.append)

        bus.publish(TasksFetched())

        assert len(received) == 1

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe(TasksFetched, received.append)

        assert bus.unsubscribe(TasksFetched, received.append)
        assert not bus.unsubscribe(TasksFetched, received.append)

        bus.publish(TasksFetched())
        assert received == []

    def test_history(self):
        bus = EventBus(keep_history=True)
        bus.publish(TasksFetched())
        bus.publish(CacheFallbackUsed())

        assert len(bus.get_history()) == 2
        assert len(bus.get_history(CacheFallbackUsed)) == 1

        bus.clear_history()
        assert bus.get_history() == []
