"""Tests for SessionViewModel: the full permission → batch → swipe loop."""

from __future__ import annotations

import asyncio
import random

from fakes import FakeAssetSource
from swipetriage.application.services.image_fetcher import default_tier_sizes
from swipetriage.application.state_machine import SessionPhase
from swipetriage.domain.models import AdvanceResult, PermissionStatus, SwipeDirection
from swipetriage.errors.handler import ErrorOccurredEvent
from swipetriage.events import BatchCompletedEvent, BatchPreparedEvent, EventBus, PhotoSwipedEvent
from swipetriage.gui.viewmodels.session_viewmodel import PERMISSION_DENIED_MESSAGE, SessionViewModel
from swipetriage.settings.manager import TriageSettings

P = SessionPhase


def make_settings(batch_size: int = 10) -> TriageSettings:
    return TriageSettings(
        batch_size=batch_size,
        cache_size_limit=15,
        max_prefetched_photos=5,
        prefetch_concurrency=2,
        fetch_timeout=10.0,
        tier_sizes=default_tier_sizes(),
    )


def make_session(source: FakeAssetSource, batch_size: int = 10, bus: EventBus | None = None):
    bus = bus or EventBus()
    session = SessionViewModel.create(source, bus, make_settings(batch_size), rng=random.Random(3))
    return session, bus


def record_phases(session: SessionViewModel) -> list:
    phases = []
    session.session_state.changed.connect(lambda new, _old: phases.append(new.phase))
    return phases


def test_small_library_runs_to_batch_complete():
    source = FakeAssetSource(3)
    bus = EventBus()
    completed_events = []
    bus.subscribe(BatchCompletedEvent, completed_events.append)

    async def scenario():
        session, _ = make_session(source, bus=bus)
        phases = record_phases(session)
        completed = []
        progress = []
        session.batch_completed.connect(completed.append)
        session.progress.changed.connect(lambda new, _old: progress.append(new))

        await session.request_permission_and_start()
        assert len(session.visible_stack.value) == 3
        assert len(session.stack.batch) == 3
        results = [
            await session.advance(SwipeDirection.RIGHT),
            await session.advance(SwipeDirection.LEFT),
            await session.advance(SwipeDirection.RIGHT),
        ]
        await session.stack.wait_for_background()
        return session, phases, completed, progress, results

    session, phases, completed, progress, results = asyncio.run(scenario())

    assert results == [AdvanceResult.ADVANCED, AdvanceResult.LAST_PHOTO, AdvanceResult.BATCH_COMPLETE]
    assert phases == [
        P.LOADING, P.LOADING, P.TRANSITIONING, P.IDLE,
        P.TRANSITIONING, P.IDLE,
        P.TRANSITIONING, P.LAST_PHOTO, P.IDLE,
        P.TRANSITIONING, P.BATCH_COMPLETE,
    ]
    assert session.visible_stack.value == ()
    assert session.is_batch_complete.value
    assert not session.is_loading.value
    assert completed == [3]
    assert progress[-3:] == ["1 of 3", "2 of 3", "3 of 3"]
    assert session.current_index.value == 3
    assert (completed_events[0].count, completed_events[0].kept, completed_events[0].archived) == (3, 2, 1)


def test_empty_library_goes_straight_to_no_photos():
    source = FakeAssetSource(0)

    async def scenario():
        session, _ = make_session(source)
        phases = record_phases(session)
        await session.request_permission_and_start()
        return session, phases

    session, phases = asyncio.run(scenario())

    assert phases[-1] is P.NO_PHOTOS
    assert session.visible_stack.value == ()
    assert session.error.value is None
    assert not session.is_loading.value
    assert source.calls == []
    assert session.progress.value == "No photos"


def test_denied_permission_is_a_session_error():
    source = FakeAssetSource(5, permission=PermissionStatus.DENIED)
    bus = EventBus()
    published = []
    bus.subscribe(ErrorOccurredEvent, published.append)

    async def scenario():
        session, _ = make_session(source, bus=bus)
        messages = []
        session.error_occurred.connect(messages.append)
        await session.request_permission_and_start()
        return session, messages

    session, messages = asyncio.run(scenario())

    assert session.state.phase is P.ERROR
    assert session.error.value == PERMISSION_DENIED_MESSAGE
    assert messages == [PERMISSION_DENIED_MESSAGE]
    assert not session.permission_granted.value
    assert source.list_calls == 0
    assert published[0].context == {"status": "denied"}


def test_undetermined_permission_is_requested():
    granted = FakeAssetSource(4, permission=PermissionStatus.NOT_DETERMINED)
    refused = FakeAssetSource(
        4,
        permission=PermissionStatus.NOT_DETERMINED,
        request_result=PermissionStatus.DENIED,
    )

    async def scenario(source):
        session, _ = make_session(source)
        await session.request_permission_and_start()
        await session.stack.wait_for_background()
        return session

    granted_session = asyncio.run(scenario(granted))
    refused_session = asyncio.run(scenario(refused))

    assert granted.permission_requests == 1
    assert granted_session.state.phase is P.IDLE
    assert granted_session.permission_granted.value
    assert refused.permission_requests == 1
    assert refused_session.state.phase is P.ERROR


def test_limited_access_is_enough():
    source = FakeAssetSource(2, permission=PermissionStatus.LIMITED)

    async def scenario():
        session, _ = make_session(source)
        await session.request_permission_and_start()
        await session.stack.wait_for_background()
        return session

    session = asyncio.run(scenario())

    assert session.state.phase is P.IDLE
    assert source.permission_requests == 0


def test_enumeration_failure_then_retry():
    source = FakeAssetSource(5)
    source.list_error = OSError("disk gone")

    async def scenario():
        session, _ = make_session(source)
        await session.request_permission_and_start()
        failed_state = session.state
        source.list_error = None
        await session.prepare_batch()
        await session.stack.wait_for_background()
        return session, failed_state

    session, failed_state = asyncio.run(scenario())

    assert failed_state.phase is P.ERROR
    assert "disk gone" in failed_state.message
    assert session.state.phase is P.IDLE
    assert session.error.value is None
    assert len(session.visible_stack.value) == 3


def test_swipe_is_recorded_and_published():
    source = FakeAssetSource(5)
    bus = EventBus()
    swiped_events = []
    prepared_events = []
    bus.subscribe(PhotoSwipedEvent, swiped_events.append)
    bus.subscribe(BatchPreparedEvent, prepared_events.append)

    async def scenario():
        session, _ = make_session(source, bus=bus)
        swipes = []
        session.swipe_recorded.connect(lambda asset, direction: swipes.append((asset, direction)))
        await session.request_permission_and_start()
        top = session.current_card
        await session.advance(SwipeDirection.RIGHT)
        await session.stack.wait_for_background()
        return session, swipes, top

    session, swipes, top = asyncio.run(scenario())

    assert swipes == [(top.asset, SwipeDirection.RIGHT)]
    assert [(event.asset_id, event.direction) for event in swiped_events] == [(top.asset_id, "right")]
    assert (prepared_events[0].batch_size, prepared_events[0].library_size) == (5, 5)
    assert session.kept_count == 1
    assert session.archived_count == 0
    assert session.progress.value == "2 of 5"


def test_swipe_without_a_card_is_ignored():
    source = FakeAssetSource(5)

    async def scenario():
        session, _ = make_session(source)
        swipes = []
        session.swipe_recorded.connect(lambda *args: swipes.append(args))
        result = await session.advance(SwipeDirection.LEFT)
        return session, result, swipes

    session, result, swipes = asyncio.run(scenario())

    assert result is None
    assert swipes == []
    assert session.state.phase is P.IDLE


def test_start_new_batch_after_completion():
    source = FakeAssetSource(2)

    async def scenario():
        session, _ = make_session(source)
        await session.request_permission_and_start()
        await session.advance(SwipeDirection.RIGHT)
        await session.advance(SwipeDirection.RIGHT)
        completed = session.state.phase
        await session.start_new_batch()
        await session.stack.wait_for_background()
        return session, completed

    session, completed = asyncio.run(scenario())

    assert completed is P.BATCH_COMPLETE
    assert session.state.phase is P.IDLE
    assert len(session.visible_stack.value) == 2
    assert session.kept_count == 0
    assert session.stack.cache.generation == 2
    assert session.progress.value == "1 of 2"


def test_single_photo_batch_passes_through_last_photo():
    source = FakeAssetSource(1)

    async def scenario():
        session, _ = make_session(source)
        phases = record_phases(session)
        await session.request_permission_and_start()
        return phases

    phases = asyncio.run(scenario())

    assert phases[-3:] == [P.TRANSITIONING, P.LAST_PHOTO, P.IDLE]


def test_preparing_flag_is_mirrored():
    source = FakeAssetSource(4)

    async def scenario():
        session, _ = make_session(source)
        flags = []
        session.is_preparing_stack.changed.connect(lambda new, _old: flags.append(new))
        await session.request_permission_and_start()
        await session.advance(SwipeDirection.LEFT)
        await session.stack.wait_for_background()
        return flags

    assert asyncio.run(scenario()) == [True, False, True, False]


def test_dispose_detaches_from_bus_and_stack():
    source = FakeAssetSource(3)
    bus = EventBus()

    async def scenario():
        session, _ = make_session(source, bus=bus)
        messages = []
        session.error_occurred.connect(messages.append)
        session.dispose()
        bus.publish(ErrorOccurredEvent(error=RuntimeError("late")))
        session.stack.load_batch(session.stack.batch)
        return session, messages

    session, messages = asyncio.run(scenario())

    assert messages == []
    assert session.stack.visible_stack.changed.handler_count == 0


def test_duplicate_asset_ids_fail_the_session():
    source = FakeAssetSource(3)
    source.assets.append(source.assets[0])

    async def scenario():
        session, bus = make_session(source)
        errors = []
        bus.subscribe(ErrorOccurredEvent, errors.append)
        await session.request_permission_and_start()
        return session, errors

    session, errors = asyncio.run(scenario())

    assert session.state.phase is P.ERROR
    assert "duplicate" in session.error.value
    assert session.visible_stack.value == ()
    assert source.calls == []
    assert len(errors) == 1
