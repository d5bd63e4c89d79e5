"""Tests for PrefetchScheduler: rolling thumbnail window and medium promotion."""

from __future__ import annotations

import asyncio

from fakes import FakeAssetSource, FakeImage
from swipetriage.application.services.image_fetcher import ImageFetchService
from swipetriage.application.services.prefetch_scheduler import PrefetchScheduler
from swipetriage.domain.models import Batch, ImageTier
from swipetriage.infrastructure.services.tiered_image_cache import TieredImageCache

THUMB = ImageTier.THUMBNAIL
MEDIUM = ImageTier.MEDIUM


def build(source: FakeAssetSource):
    cache = TieredImageCache()
    fetcher = ImageFetchService(source, cache)
    return cache, fetcher, PrefetchScheduler(fetcher, cache)


async def settle(scheduler: PrefetchScheduler, fetcher: ImageFetchService) -> None:
    await scheduler.drain()
    await fetcher.drain()


def test_window_sits_behind_the_stack():
    source = FakeAssetSource(10)
    batch = Batch.of(source.assets)
    cache = TieredImageCache()
    scheduler = PrefetchScheduler(ImageFetchService(source, cache), cache)

    assert scheduler.window(0, batch) == tuple(source.assets[3:8])
    assert scheduler.window(6, batch) == tuple(source.assets[9:10])
    assert scheduler.window(8, batch) == ()


def test_refresh_warms_window_and_promotes_next_card():
    source = FakeAssetSource(10)
    batch = Batch.of(source.assets)
    upcoming = source.assets[3]

    async def scenario():
        cache, fetcher, scheduler = build(source)
        scheduled = scheduler.refresh(0, batch)
        await settle(scheduler, fetcher)
        return cache, scheduled

    cache, scheduled = asyncio.run(scenario())

    assert scheduled == [(asset.id, THUMB) for asset in source.assets[3:8]]
    expected = {(asset.id, THUMB) for asset in source.assets[3:8]} | {(upcoming.id, MEDIUM)}
    assert set(source.calls) == expected
    assert len(source.calls) == len(expected)
    assert cache.peek(upcoming.id, MEDIUM) == FakeImage(upcoming.id, MEDIUM, (1500, 1500))
    assert cache.peek(source.assets[4].id, MEDIUM) is None


def test_refresh_twice_schedules_nothing_new():
    source = FakeAssetSource(10)
    batch = Batch.of(source.assets)

    async def scenario():
        cache, fetcher, scheduler = build(source)
        first = scheduler.refresh(0, batch)
        while_in_flight = scheduler.refresh(0, batch)
        await settle(scheduler, fetcher)
        calls_after_first = len(source.calls)
        after_settling = scheduler.refresh(0, batch)
        await settle(scheduler, fetcher)
        return first, while_in_flight, after_settling, calls_after_first

    first, while_in_flight, after_settling, calls_after_first = asyncio.run(scenario())

    assert first
    assert while_in_flight == []
    assert after_settling == []
    assert len(source.calls) == calls_after_first


def test_cached_thumbnail_gets_medium_directly():
    source = FakeAssetSource(10)
    batch = Batch.of(source.assets)
    upcoming = source.assets[3]

    async def scenario():
        cache, fetcher, scheduler = build(source)
        cache.put(upcoming.id, THUMB, FakeImage(upcoming.id, THUMB))
        scheduled = scheduler.refresh(0, batch)
        await settle(scheduler, fetcher)
        return scheduled

    scheduled = asyncio.run(scenario())

    assert (upcoming.id, MEDIUM) in scheduled
    assert (upcoming.id, THUMB) not in scheduled
    assert source.calls_for(upcoming.id) == 1


def test_medium_promotion_skipped_once_asset_is_behind_the_cursor():
    source = FakeAssetSource(10)
    batch = Batch.of(source.assets)
    upcoming = source.assets[3]

    async def scenario():
        cache, fetcher, scheduler = build(source)
        gate = source.gate(upcoming.id, THUMB)
        scheduler.refresh(0, batch)
        scheduler.refresh(4, batch)
        gate.set()
        await settle(scheduler, fetcher)
        return cache

    cache = asyncio.run(scenario())

    assert source.calls_for(upcoming.id, MEDIUM) == 0
    assert cache.peek(upcoming.id, THUMB) is not None


def test_failed_thumbnail_is_not_promoted():
    source = FakeAssetSource(10)
    batch = Batch.of(source.assets)
    upcoming = source.assets[3]
    source.missing.add((upcoming.id, THUMB))

    async def scenario():
        _cache, fetcher, scheduler = build(source)
        scheduler.refresh(0, batch)
        await settle(scheduler, fetcher)

    asyncio.run(scenario())

    assert source.calls_for(upcoming.id, MEDIUM) == 0


def test_small_batch_has_no_window():
    source = FakeAssetSource(3)
    batch = Batch.of(source.assets)

    async def scenario():
        _cache, fetcher, scheduler = build(source)
        scheduled = scheduler.refresh(0, batch)
        await settle(scheduler, fetcher)
        return scheduled

    assert asyncio.run(scenario()) == []
    assert source.calls == []


def test_card_sliding_in_with_thumbnail_in_flight_is_promoted():
    source = FakeAssetSource(10)
    batch = Batch.of(source.assets)
    late = source.assets[4]

    async def scenario():
        cache, fetcher, scheduler = build(source)
        gate = source.gate(late.id, THUMB)
        scheduler.refresh(0, batch)
        for _ in range(5):
            await asyncio.sleep(0)
        assert cache.is_in_flight(late.id, THUMB)

        scheduler.refresh(1, batch)
        chains = scheduler.pending
        scheduler.refresh(1, batch)
        assert scheduler.pending == chains

        gate.set()
        await settle(scheduler, fetcher)
        return cache

    cache = asyncio.run(scenario())

    assert cache.peek(late.id, MEDIUM) == FakeImage(late.id, MEDIUM, (1500, 1500))
    assert source.calls_for(late.id, MEDIUM) == 1
    assert source.calls_for(late.id, THUMB) == 1
