from typing import List

from boardsync.services.events import (
    Event,
    EventBus,
    MutationApplied,
    MutationEvent,
    MutationRolledBack,
    Notification,
)


def test_handlers_follow_the_class_hierarchy() -> None:
    bus = EventBus()
    specific: List[Event] = []
    generic: List[Event] = []
    everything: List[Event] = []
    bus.add_handler(MutationApplied, specific.append)
    bus.add_handler(MutationEvent, generic.append)
    bus.add_handler(None, everything.append)

    applied = MutationApplied(mutation_id="m1", operation="create_lane", entity_type="lane")
    bus.publish(applied)
    bus.publish(Notification(message="Lane created"))

    assert specific == [applied]
    assert generic == [applied]
    assert [event.event_type for event in everything] == ["MutationApplied", "Notification"]


def test_subscribe_decorator_and_remove() -> None:
    bus = EventBus()
    seen: List[str] = []

    @bus.subscribe(Notification)
    def on_notification(event: Notification) -> None:
        seen.append(event.message)

    bus.publish(Notification(message="first"))
    bus.remove_handler(Notification, on_notification)
    bus.publish(Notification(message="second"))
    assert seen == ["first"]


def test_failing_handler_does_not_stop_others() -> None:
    bus = EventBus()
    seen: List[Event] = []

    def broken(event: Event) -> None:
        raise ValueError("handler bug")

    bus.add_handler(MutationRolledBack, broken)
    bus.add_handler(MutationRolledBack, seen.append)
    bus.publish(MutationRolledBack(error="offline", retryable=True))
    assert len(seen) == 1


def test_clear_drops_every_handler() -> None:
    bus = EventBus()
    received: List[str] = []
    bus.add_handler(Notification, lambda event: received.append(event.message))
    bus.add_handler(None, lambda event: received.append("any"))

    bus.publish(Notification(message="before"))
    bus.clear()
    bus.publish(Notification(message="after clear"))
    assert received == ["before", "any"]


def test_events_are_timestamped_in_utc() -> None:
    event = Notification(message="x")
    assert event.timestamp.tzinfo is not None
    assert event.timestamp.utcoffset().total_seconds() == 0
