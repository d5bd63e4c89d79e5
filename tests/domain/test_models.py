import pytest

from swipetriage.domain.models import (
    AssetRef,
    Batch,
    FetchQuality,
    ImageTier,
    PermissionStatus,
    StackCard,
    SwipeDirection,
)
from swipetriage.errors import InvalidBatchError


def test_batch_rejects_duplicates():
    with pytest.raises(InvalidBatchError):
        Batch.of([AssetRef("a"), AssetRef("b"), AssetRef("a")])


def test_batch_window_is_clipped():
    batch = Batch.of([AssetRef(name) for name in "abcde"])

    assert [asset.id for asset in batch.window(3, 9)] == ["d", "e"]
    assert batch.window(-2, 1) == (AssetRef("a"),)
    assert batch.window(4, 2) == ()


def test_tier_ordering():
    assert ImageTier.HIGH.below() == (ImageTier.MEDIUM, ImageTier.THUMBNAIL)
    assert ImageTier.THUMBNAIL.below() == ()
    assert ImageTier.THUMBNAIL.quality is FetchQuality.FAST
    assert ImageTier.HIGH.quality is FetchQuality.EXACT


def test_card_upgrade_state():
    card = StackCard(
        asset=AssetRef("a"),
        image=object(),
        position=1,
        tier=ImageTier.THUMBNAIL,
        requested_tier=ImageTier.MEDIUM,
    )
    top = card.moved_to(0, ImageTier.HIGH)
    placeholder = StackCard(AssetRef("b"), None, 0, None, ImageTier.HIGH)

    assert card.needs_upgrade
    assert top.position == 0 and top.requested_tier is ImageTier.HIGH
    assert not top.with_image(object(), ImageTier.HIGH).needs_upgrade
    assert placeholder.is_placeholder and not placeholder.needs_upgrade


@pytest.mark.parametrize(
    "status, granted",
    [
        (PermissionStatus.AUTHORIZED, True),
        (PermissionStatus.LIMITED, True),
        (PermissionStatus.DENIED, False),
        (PermissionStatus.RESTRICTED, False),
        (PermissionStatus.NOT_DETERMINED, False),
    ],
)
def test_permission_grants(status, granted):
    assert status.is_granted is granted


def test_swipe_decisions():
    assert SwipeDirection.RIGHT.decision == "keep"
    assert SwipeDirection.LEFT.decision == "archive"
    assert SwipeDirection.NONE.decision is None


@pytest.mark.parametrize("tier", list(ImageTier))
def test_tier_for_quality(tier):
    assert ImageTier.for_quality(tier.quality) is tier
