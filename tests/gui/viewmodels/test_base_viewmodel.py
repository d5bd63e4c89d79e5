from swipetriage.events import EventBus, PhotoSwipedEvent
from swipetriage.gui.viewmodels.base import BaseViewModel


def test_dispose_drops_every_subscription():
    bus = EventBus()
    vm = BaseViewModel()
    received = []
    vm.subscribe_event(bus, PhotoSwipedEvent, received.append)
    vm.subscribe_event(bus, PhotoSwipedEvent, received.append)

    bus.publish(PhotoSwipedEvent())
    vm.dispose()
    bus.publish(PhotoSwipedEvent())

    assert len(received) == 2
