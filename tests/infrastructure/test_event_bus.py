import logging
from unittest.mock import Mock

from swipetriage.events import (
    BatchCompletedEvent,
    BatchPreparedEvent,
    DomainEvent,
    EventBus,
    PhotoSwipedEvent,
)


def test_publish_to_sync_subscriber():
    bus = EventBus()
    received = []
    bus.subscribe(PhotoSwipedEvent, received.append)

    event = PhotoSwipedEvent(asset_id="IMG_0001", direction="right")
    bus.publish(event)

    assert received == [event]


def test_base_class_subscriber_sees_every_event():
    bus = EventBus()
    received = []
    bus.subscribe(DomainEvent, received.append)

    bus.publish(BatchPreparedEvent(batch_size=3, library_size=9))
    bus.publish(BatchCompletedEvent(count=3, kept=1, archived=2))

    assert [type(event) for event in received] == [BatchPreparedEvent, BatchCompletedEvent]


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    handler = Mock()
    sub = bus.subscribe(PhotoSwipedEvent, handler)

    bus.unsubscribe(sub)
    bus.publish(PhotoSwipedEvent())

    handler.assert_not_called()
    assert not sub.active


def test_failing_handler_does_not_block_others():
    logger = Mock(spec=logging.Logger)
    bus = EventBus(logger=logger)
    received = []
    bus.subscribe(PhotoSwipedEvent, Mock(side_effect=RuntimeError("boom")))
    bus.subscribe(PhotoSwipedEvent, received.append)

    bus.publish(PhotoSwipedEvent())

    assert len(received) == 1
    logger.error.assert_called()


def test_async_handlers_run_on_the_pool():
    bus = EventBus()
    received = []
    bus.subscribe(BatchCompletedEvent, received.append, async_=True)

    futures = bus.publish(BatchCompletedEvent(count=1))
    for future in futures:
        future.result(timeout=2)
    bus.shutdown()

    assert len(futures) == 1
    assert received[0].count == 1


def test_events_are_stamped():
    first = PhotoSwipedEvent(source="session")
    second = PhotoSwipedEvent(source="session")

    assert first.event_id != second.event_id
    assert first.timestamp is not None
