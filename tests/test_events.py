from nlu_studio.events import EventBus


def test_emit_reaches_topic_subscribers_only():
    bus = EventBus()
    received = []
    bus.on("a", received.append)
    bus.on("b", lambda event: received.append(("b", event)))

    assert bus.emit("a", {"n": 1}) == 1
    assert received == [{"n": 1}]


def test_release_detaches_handler():
    bus = EventBus()
    received = []
    subscription = bus.on("a", received.append)

    subscription.release()
    subscription.release()

    assert not subscription.active
    assert bus.subscriber_count("a") == 0
    assert bus.emit("a", {"n": 1}) == 0
    assert received == []


def test_subscription_as_context_manager():
    bus = EventBus()
    with bus.on("a", lambda event: None):
        assert bus.subscriber_count("a") == 1
    assert bus.subscriber_count("a") == 0


def test_failing_handler_does_not_stop_delivery():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("handler bug")

    bus.on("a", broken)
    bus.on("a", received.append)

    assert bus.emit("a", {"n": 1}) == 2
    assert received == [{"n": 1}]
