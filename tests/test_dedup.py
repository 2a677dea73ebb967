import fakeredis

from belt_indexer.constants import ENTRY_POINTS, V0_7, V0_8
from belt_indexer.services.notifications import (
    ConnectionState,
    NotificationStoreConfig,
    NotificationTracker,
    notification_scope,
)
from belt_indexer.services.notifications.dedup import EVENT_TTL_SECONDS

SCOPE = notification_scope(369, ENTRY_POINTS[V0_7])
OTHER_SCOPE = notification_scope(369, ENTRY_POINTS[V0_8])


def test_scope_is_chain_and_lowercase_contract():
    assert SCOPE == f"369:{ENTRY_POINTS[V0_7].lower()}"


def test_watermark_and_event_dedup(tracker):
    assert tracker.should_notify("e1", 100, SCOPE) is True
    assert tracker.get_watermark(SCOPE) == 100

    # Behind the watermark
    assert tracker.should_notify("e2", 50, SCOPE) is False
    # Already sent
    assert tracker.should_notify("e1", 100, SCOPE) is False
    assert tracker.get_watermark(SCOPE) == 100


def test_same_block_events_are_all_sent_in_any_order(tracker):
    assert tracker.should_notify("UserOperationEvent:0x02", 100, SCOPE) is True
    assert tracker.should_notify("UserOperationEvent:0x01", 100, SCOPE) is True
    assert tracker.should_notify("AccountDeployed:0x03", 100, SCOPE) is True

    assert tracker.should_notify("UserOperationEvent:0x01", 100, SCOPE) is False
    assert tracker.should_notify("UserOperationEvent:0x02", 100, SCOPE) is False


def test_newer_block_advances_watermark(tracker):
    tracker.should_notify("e1", 100, SCOPE)
    assert tracker.should_notify("e2", 101, SCOPE) is True
    assert tracker.get_watermark(SCOPE) == 101
    assert tracker.should_notify("e3", 100, SCOPE) is False


def test_scopes_are_independent(tracker):
    assert tracker.should_notify("e1", 500, SCOPE) is True
    assert tracker.should_notify("e1", 10, OTHER_SCOPE) is True
    assert tracker.get_watermark(SCOPE) == 500
    assert tracker.get_watermark(OTHER_SCOPE) == 10


def test_resync_from_genesis_sends_only_new_events(tracker):
    tracker.should_notify("live", 500, SCOPE)

    replayed = [tracker.should_notify(f"old-{block}", block, SCOPE) for block in range(1, 500)]
    assert not any(replayed)
    assert tracker.should_notify("live", 500, SCOPE) is False
    assert tracker.should_notify("fresh", 501, SCOPE) is True


def test_event_keys_expire(tracker, redis_server):
    tracker.should_notify("e1", 100, SCOPE)
    client = fakeredis.FakeRedis(server=redis_server, decode_responses=True)

    ttl = client.ttl(tracker.event_key(SCOPE, "e1"))
    assert 0 < ttl <= EVENT_TTL_SECONDS
    # The watermark itself never expires
    assert client.ttl(tracker.watermark_key(SCOPE)) == -1


def test_get_watermark_unknown_scope(tracker):
    assert tracker.get_watermark(SCOPE) is None


def test_fails_closed_when_redis_is_unreachable(tracker, redis_server, backoff_sleeps):
    redis_server.connected = False

    assert tracker.should_notify("e1", 100, SCOPE) is False
    assert tracker.state is ConnectionState.CIRCUIT_OPEN
    # Two pauses between three connection attempts
    assert backoff_sleeps == [0.2, 0.4]

    # The circuit stays open even after Redis comes back
    redis_server.connected = True
    assert tracker.should_notify("e1", 100, SCOPE) is False
    assert tracker.get_watermark(SCOPE) is None
    assert backoff_sleeps == [0.2, 0.4]


def test_connection_lost_after_connect(tracker, redis_server):
    assert tracker.should_notify("e1", 100, SCOPE) is True
    assert tracker.state is ConnectionState.CONNECTED

    redis_server.connected = False
    assert tracker.should_notify("e2", 101, SCOPE) is False
    assert tracker.state is ConnectionState.DISCONNECTED

    assert tracker.should_notify("e3", 102, SCOPE) is False
    assert tracker.state is ConnectionState.CIRCUIT_OPEN


def test_backoff_is_capped():
    tracker = NotificationTracker(NotificationStoreConfig())
    assert tracker._backoff(1) == 0.2
    assert tracker._backoff(5) == 1.0
    assert tracker._backoff(50) == 2.0


def test_successful_call_restores_full_retry_budget(tracker, redis_server):
    tracker.should_notify("e1", 100, SCOPE)
    redis_server.connected = False
    assert tracker.should_notify("e2", 101, SCOPE) is False

    redis_server.connected = True
    assert tracker.should_notify("e3", 102, SCOPE) is True
    assert tracker._consecutive_failures == 0

    # A later blip starts counting from zero again
    redis_server.connected = False
    assert tracker.should_notify("e4", 103, SCOPE) is False
    assert tracker.state is ConnectionState.DISCONNECTED


def test_malformed_redis_url_opens_circuit(backoff_sleeps):
    tracker = NotificationTracker(
        NotificationStoreConfig(redis_url="localhost:6379"),
        sleep=backoff_sleeps.append,
    )

    assert tracker.should_notify("e1", 100, SCOPE) is False
    assert tracker.state is ConnectionState.CIRCUIT_OPEN
    assert backoff_sleeps == [0.2, 0.4]
    assert tracker.get_watermark(SCOPE) is None


def test_corrupt_watermark_skips_without_raising(tracker, redis_server):
    client = fakeredis.FakeRedis(server=redis_server, decode_responses=True)
    client.set(tracker.watermark_key(SCOPE), "not-a-number")

    assert tracker.should_notify("e1", 100, SCOPE) is False
    assert tracker.get_watermark(SCOPE) is None
    # Bad data is not a connection problem
    assert tracker.state is ConnectionState.CONNECTED
    assert client.exists(tracker.event_key(SCOPE, "e1")) == 0

    # Other scopes are unaffected
    assert tracker.should_notify("e1", 100, OTHER_SCOPE) is True


def test_negative_watermark_is_treated_as_corrupt(tracker, redis_server):
    client = fakeredis.FakeRedis(server=redis_server, decode_responses=True)
    client.set(tracker.watermark_key(SCOPE), "-5")

    assert tracker.should_notify("e1", 100, SCOPE) is False
    assert tracker.get_watermark(SCOPE) is None


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_circuit_closes_again_after_reset_interval(redis_server, backoff_sleeps):
    clock = ManualClock()
    tracker = NotificationTracker(
        NotificationStoreConfig(key_prefix="test:notifications", circuit_reset_seconds=30.0),
        client_factory=lambda: fakeredis.FakeRedis(server=redis_server, decode_responses=True),
        sleep=backoff_sleeps.append,
        clock=clock,
    )
    redis_server.connected = False
    assert tracker.should_notify("e1", 100, SCOPE) is False
    assert tracker.state is ConnectionState.CIRCUIT_OPEN

    redis_server.connected = True
    clock.now = 29.0
    assert tracker.should_notify("e1", 100, SCOPE) is False
    assert tracker.state is ConnectionState.CIRCUIT_OPEN

    clock.now = 30.0
    assert tracker.should_notify("e1", 100, SCOPE) is True
    assert tracker.state is ConnectionState.CONNECTED
    tracker.close()


def test_reset_interval_gives_a_fresh_retry_budget(redis_server, backoff_sleeps):
    clock = ManualClock()
    tracker = NotificationTracker(
        NotificationStoreConfig(circuit_reset_seconds=10.0),
        client_factory=lambda: fakeredis.FakeRedis(server=redis_server, decode_responses=True),
        sleep=backoff_sleeps.append,
        clock=clock,
    )
    redis_server.connected = False
    tracker.should_notify("e1", 100, SCOPE)

    clock.now = 10.0
    assert tracker.should_notify("e1", 100, SCOPE) is False
    assert tracker.state is ConnectionState.CIRCUIT_OPEN
    assert backoff_sleeps == [0.2, 0.4, 0.2, 0.4]
