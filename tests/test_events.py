"""Tests for the event bus."""

import logging

from iterloop import ActionResult, EventBus, EventType, IterationEvent


def test_listeners_run_in_subscription_order():
    bus = EventBus()
    seen = []
    bus.subscribe(lambda event: seen.append("first"))
    bus.subscribe(lambda event: seen.append("second"))

    bus.emit(IterationEvent(EventType.START, input="x"))

    assert seen == ["first", "second"]


def test_failing_listener_is_isolated(caplog):
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("listener exploded")

    bus.subscribe(broken)
    bus.subscribe(lambda event: seen.append(event.type))

    with caplog.at_level(logging.ERROR, logger="iterloop.events"):
        bus.emit(IterationEvent(EventType.COMPLETE, result=1))

    assert seen == [EventType.COMPLETE]
    assert "Event listener error: listener exploded" in caplog.text


def test_custom_error_logger_receives_listener_faults(caplog):
    custom = logging.getLogger("tests.events.custom")
    bus = EventBus(error_logger=custom)

    def broken(event):
        raise ValueError("nope")

    bus.subscribe(broken)

    with caplog.at_level(logging.ERROR, logger="tests.events.custom"):
        bus.emit(IterationEvent(EventType.START))

    assert [r.name for r in caplog.records] == ["tests.events.custom"]


def test_unsubscribe_is_idempotent():
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    bus.emit(IterationEvent(EventType.START))

    assert seen == []
    assert len(bus) == 0


def test_same_listener_twice_is_delivered_twice():
    bus = EventBus()
    seen = []
    first = bus.subscribe(seen.append)
    bus.subscribe(seen.append)

    bus.emit(IterationEvent(EventType.START))
    first()
    bus.emit(IterationEvent(EventType.START))

    assert len(seen) == 3


def test_unsubscribing_during_emit_keeps_current_delivery():
    bus = EventBus()
    seen = []
    handles = {}

    def once(event):
        seen.append("once")
        handles["once"]()

    handles["once"] = bus.subscribe(once)
    bus.subscribe(lambda event: seen.append("other"))

    bus.emit(IterationEvent(EventType.START))
    bus.emit(IterationEvent(EventType.START))

    assert seen == ["once", "other", "other"]


def test_event_to_dict_skips_unset_fields():
    event = IterationEvent(EventType.ACTION_COMPLETE, iteration=2, action_result=ActionResult(data="d"))

    data = event.to_dict()

    assert data["type"] == "action_complete"
    assert data["iteration"] == 2
    assert data["action_result"] == {"data": "d", "metadata": None}
    assert "evaluation" not in data
    assert "error" not in data


def test_event_to_dict_stringifies_error():
    data = IterationEvent(EventType.ERROR, error=RuntimeError("boom"), iteration=0).to_dict()
    assert data["error"] == "boom"
    assert data["iteration"] == 0
