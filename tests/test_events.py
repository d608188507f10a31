"""Tests for the event bus."""

from tierstore.events import Event, EventBus, EventType


class TestEventBus:
    """Test subscription, ordering and unsubscription."""

    def test_dispatch_in_registration_order(self):
        bus = EventBus()
        calls = []
        bus.subscribe(EventType.CHANGE, lambda e: calls.append("first"))
        bus.subscribe(EventType.CHANGE, lambda e: calls.append("second"))
        bus.subscribe(EventType.DELETE, lambda e: calls.append("other"))

        bus.emit(EventType.CHANGE, key="k")

        assert calls == ["first", "second"]

    def test_subscribe_by_name(self):
        bus = EventBus()
        received: list[Event] = []
        bus.subscribe("clear", received.append)

        bus.emit(EventType.CLEAR, action="clear")

        assert received[0].type is EventType.CLEAR
        assert received[0].action == "clear"

    def test_unsubscribe_token(self):
        bus = EventBus()
        received = []
        token = bus.subscribe(EventType.CHANGE, received.append)

        token.unsubscribe()
        token.unsubscribe()
        bus.emit(EventType.CHANGE, key="k")

        assert received == []
        assert token.active is False
        assert bus.listener_count(EventType.CHANGE) == 0

    def test_handler_may_unsubscribe_during_dispatch(self):
        bus = EventBus()
        calls = []
        token = None

        def once(event):
            calls.append("once")
            token.unsubscribe()

        token = bus.subscribe(EventType.CHANGE, once)
        bus.subscribe(EventType.CHANGE, lambda e: calls.append("always"))

        bus.emit(EventType.CHANGE)
        bus.emit(EventType.CHANGE)

        assert calls == ["once", "always", "always"]

    def test_failing_handler_does_not_stop_others(self, caplog):
        bus = EventBus()
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(EventType.ERROR, broken)
        bus.subscribe(EventType.ERROR, lambda e: calls.append(e))

        bus.emit(EventType.ERROR, action="write")

        assert len(calls) == 1
        assert "failed" in caplog.text

    def test_event_properties(self):
        bus = EventBus()
        event = bus.emit(EventType.CHANGE, key="k", action="write", remote=True)

        assert event.key == "k"
        assert event.remote is True

    def test_history(self):
        bus = EventBus(history_limit=2)
        bus.emit(EventType.CHANGE, key="a")
        bus.emit(EventType.DELETE, key="b")
        bus.emit(EventType.CHANGE, key="c")

        assert [e.key for e in bus.get_history()] == ["b", "c"]
        assert [e.key for e in bus.get_history(EventType.CHANGE)] == ["c"]

        bus.clear_history()
        assert bus.get_history() == []
