"""
Unit tests for the notification channel.

Run: pytest tests/unit/test_events.py -v
"""

from cadence.core.events import ACTIVITY, ALL, SESSION_START, EventEmitter


class TestEventEmitter:
    def test_subscribe_and_emit(self):
        emitter = EventEmitter()
        received = []
        emitter.subscribe(SESSION_START, lambda name, payload: received.append((name, payload)))

        delivered = emitter.emit(SESSION_START, {"activity": "intervals"})

        assert delivered == 1
        assert received == [(SESSION_START, {"activity": "intervals"})]

    def test_failing_listener_does_not_block_others(self):
        emitter = EventEmitter()
        received = []

        def broken(name, payload):
            raise RuntimeError("ui crashed")

        emitter.subscribe(SESSION_START, broken)
        emitter.subscribe(SESSION_START, lambda name, payload: received.append(payload))

        assert emitter.emit(SESSION_START, {"n": 1}) == 1
        assert received == [{"n": 1}]

    def test_unsubscribe(self):
        emitter = EventEmitter()
        received = []
        listener = lambda name, payload: received.append(payload)

        off = emitter.subscribe(SESSION_START, listener)
        off()
        emitter.emit(SESSION_START, {})

        assert received == []
        assert emitter.unsubscribe(SESSION_START, listener) is False
        assert emitter.listener_count(SESSION_START) == 0

    def test_wildcard_receives_everything(self):
        emitter = EventEmitter()
        names = []
        emitter.subscribe(ALL, lambda name, payload: names.append(name))

        emitter.emit(SESSION_START)
        emitter.emit("event", {"type": "idle"})

        assert names == [SESSION_START, "event"]

    def test_track_emits_activity(self):
        emitter = EventEmitter()
        received = []
        emitter.subscribe(ACTIVITY, lambda name, payload: received.append(payload))

        emitter.track("difficulty", "adapt", {"skill": "intervals"})

        assert received == [{"category": "difficulty", "action": "adapt", "skill": "intervals"}]

    def test_clear(self):
        emitter = EventEmitter()
        emitter.subscribe(SESSION_START, lambda name, payload: None)
        emitter.clear()

        assert emitter.emit(SESSION_START) == 0
