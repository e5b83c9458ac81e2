import queue

import pytest

from chat_core.domain.models import ChatMessage, ChunkAppended, Completed, Failed, Started
from chat_core.streaming.pubsub import PubSub


def test_publish_reaches_every_subscriber_of_the_conversation():
    hub = PubSub()
    a = hub.subscribe("c1")
    b = hub.subscribe("c1")
    other = hub.subscribe("c2")
    assert hub.publish("c1", Started("c1", None)) == 2
    assert a.get(timeout=1) == Started("c1", None)
    assert b.get(timeout=1) == Started("c1", None)
    with pytest.raises(queue.Empty):
        other.get(timeout=0.05)


def test_publish_without_subscribers_records_last_event():
    hub = PubSub()
    assert hub.publish("c1", ChunkAppended("c1", "abc")) == 0
    assert hub.last_event("c1") == ChunkAppended("c1", "abc")
    hub.forget("c1")
    assert hub.last_event("c1") is None


def test_unsubscribe_stops_delivery():
    hub = PubSub()
    with hub.subscribe("c1") as sub:
        hub.publish("c1", ChunkAppended("c1", "a"))
        assert hub.subscriber_count("c1") == 1
    assert hub.subscriber_count("c1") == 0
    hub.publish("c1", ChunkAppended("c1", "ab"))
    assert sub.drain() == [ChunkAppended("c1", "a")]
    sub.close()


def test_replay_delivers_in_flight_state_once():
    hub = PubSub()
    hub.publish("c1", Started("c1", "u1"))
    hub.publish("c1", ChunkAppended("c1", "Hel"))
    late = hub.subscribe("c1", replay=True)
    plain = hub.subscribe("c1")
    assert late.drain() == [ChunkAppended("c1", "Hel")]
    assert plain.drain() == []


def test_terminal_events_clear_the_cache():
    hub = PubSub()
    hub.publish("c1", ChunkAppended("c1", "done"))
    hub.publish("c1", Completed("c1", ChatMessage(role="assistant", content="done", id="m1")))
    hub.publish("c2", ChunkAppended("c2", "x"))
    hub.publish("c2", Failed("c2", "boom"))
    assert hub.last_event("c1") is None
    assert hub.last_event("c2") is None
    assert hub.subscribe("c1", replay=True).drain() == []
