"""
Tests for subscriber fan-out and wake-signal scoping.
"""
from resource_cache import ResourceState, Status, SubscriptionManager


def test_fan_out_in_registration_order():
    """Subscribers of a key are notified in the order they subscribed"""
    manager = SubscriptionManager()
    received = []
    for name in ("first", "second", "third"):
        manager.subscribe("k", lambda state, name=name: received.append((name, state)))

    state = ResourceState.success("k", 1)
    assert manager.publish(state) == 3

    assert [name for name, _ in received] == ["first", "second", "third"]
    assert all(s is state for _, s in received)


def test_publish_only_reaches_matching_key():
    manager = SubscriptionManager()
    received = []
    manager.subscribe("a", received.append)
    manager.subscribe("b", received.append)

    manager.publish(ResourceState.loading("a"))
    assert [s.key for s in received] == ["a"]


def test_unsubscribe_stops_notifications():
    manager = SubscriptionManager()
    received = []
    unsubscribe = manager.subscribe("k", received.append)
    unsubscribe()
    unsubscribe()  # idempotent

    assert manager.publish(ResourceState.success("k", 1)) == 0
    assert received == []
    assert manager.active_keys() == set()


def test_unsubscribe_during_dispatch_skips_later_subscriber():
    manager = SubscriptionManager()
    received = []
    handles = {}

    def first(state):
        received.append("first")
        handles["second"]()

    manager.subscribe("k", first)
    handles["second"] = manager.subscribe("k", lambda s: received.append("second"))

    manager.publish(ResourceState.success("k", 1))
    assert received == ["first"]


def test_failing_subscriber_does_not_block_others():
    manager = SubscriptionManager()
    received = []

    def broken(state):
        raise RuntimeError("render failed")

    manager.subscribe("k", broken)
    manager.subscribe("k", received.append)

    manager.publish(ResourceState.failure("k", ValueError("x")))
    assert [s.status for s in received] == [Status.ERROR]


def test_active_keys_and_counts():
    manager = SubscriptionManager()
    manager.subscribe("a", lambda s: None)
    manager.subscribe("a", lambda s: None)
    unsubscribe_b = manager.subscribe("b", lambda s: None)
    unsubscribe_b()

    assert manager.active_keys() == {"a"}
    assert manager.subscriber_count("a") == 2
    assert manager.subscriber_count("b") == 0
    assert manager.get_stats() == {"observed_keys": 1, "subscribers": 2}


# =============================================================================
# Wake signal
# =============================================================================

def test_wake_refetches_only_observed_keys():
    refetched = []
    manager = SubscriptionManager(refetch=refetched.append)
    manager.subscribe("watched", lambda s: None)
    manager.subscribe("other", lambda s: None)()

    assert manager.on_wake_signal() == {"watched"}
    assert refetched == ["watched"]


def test_wake_respects_refetch_on_wake_flag():
    refetched = []
    manager = SubscriptionManager(refetch=refetched.append)
    manager.subscribe("quiet", lambda s: None, refetch_on_wake=False)
    manager.subscribe("mixed", lambda s: None, refetch_on_wake=False)
    manager.subscribe("mixed", lambda s: None)

    assert manager.on_wake_signal() == {"mixed"}
    assert refetched == ["mixed"]


def test_wake_without_subscribers_does_nothing():
    refetched = []
    manager = SubscriptionManager(refetch=refetched.append)
    assert manager.on_wake_signal() == set()
    assert refetched == []


def test_wake_without_handler_is_noop():
    manager = SubscriptionManager()
    manager.subscribe("k", lambda s: None)
    assert manager.on_wake_signal() == set()


# =============================================================================
# Published states
# =============================================================================

def test_state_to_dict():
    assert ResourceState.loading("k").to_dict() == {"key": "k", "status": "loading"}
    assert ResourceState.success("k", 1, optimistic=True).to_dict() == {
        "key": "k",
        "status": "success",
        "optimistic": True,
    }
    assert ResourceState.failure("k", ValueError("bad"), value=1).to_dict() == {
        "key": "k",
        "status": "error",
        "error": "ValueError: bad",
    }
