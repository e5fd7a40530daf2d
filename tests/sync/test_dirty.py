"""Tests for per-note dirty tracking."""

import pytest

from lightnotes.sync.dirty import DirtyTracker


@pytest.fixture
def tracker(store):
    return DirtyTracker(store)


class TestDirtyTracker:
    @pytest.mark.asyncio
    async def test_new_note_is_clean(self, tracker):
        assert await tracker.is_dirty("a") is False

    @pytest.mark.asyncio
    async def test_set_dirty_and_clear(self, tracker):
        await tracker.set_dirty("a")
        assert await tracker.is_dirty("a") is True

        await tracker.set_dirty("a", False)
        assert await tracker.is_dirty("a") is False

    @pytest.mark.asyncio
    async def test_set_base_records_baseline_and_clears(self, tracker):
        await tracker.set_dirty("a")

        await tracker.set_base("a", "etag-1", "<p>a</p>")

        meta = await tracker.get("a")
        assert meta.dirty is False
        assert meta.base_etag == "etag-1"
        assert meta.base_body == "<p>a</p>"

    @pytest.mark.asyncio
    async def test_set_base_without_body_keeps_previous(self, tracker):
        await tracker.set_base("a", "etag-1", "<p>a</p>")
        await tracker.set_base("a", "etag-2", None)

        meta = await tracker.get("a")
        assert meta.base_etag == "etag-2"
        assert meta.base_body == "<p>a</p>"

    @pytest.mark.asyncio
    async def test_dirty_notes_only_lists_indexed(self, tracker, store):
        first = await store.create_note("first")
        second = await store.create_note("second")
        await tracker.set_dirty(first.id)
        await tracker.set_dirty("orphan")

        assert await tracker.dirty_notes() == [first.id]
        assert await tracker.is_dirty(second.id) is False

    @pytest.mark.asyncio
    async def test_state_survives_restart(self, tracker, store):
        """Dirty flags live in the store, not in the tracker."""
        await tracker.set_dirty("a")
        assert await DirtyTracker(store).is_dirty("a") is True
