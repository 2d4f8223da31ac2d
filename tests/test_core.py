"""Tests for the save flow tying fingerprinting, dedup and pools together."""

import asyncio
from dataclasses import replace

import pytest

from tagsaver import TagSaverCore
from tagsaver.config import Settings
from tagsaver.store.memory import MemoryRecordStore
from tests.helpers.media_factory import half_white_image, image_bytes, pool_layout, pool_record


@pytest.fixture
def core():
    return TagSaverCore(MemoryRecordStore(), Settings())


def draft(name="post", pool_id=None, index=None):
    record = pool_record(pool_id or "unused", index or 0, name)
    if pool_id is None:
        record = replace(record, pool_id=None, pool_index=None)
    return record


class TestSave:
    def test_save_unique_media(self, core, pattern_image):
        result = asyncio.run(core.save(draft(), media=pattern_image))
        assert result.saved
        assert not result.duplicate_found
        assert result.record.id is not None
        assert result.record.fingerprint == str(result.fingerprint)
        assert result.record.fingerprint.startswith("dct63:")

    def test_identical_media_is_rejected(self, core, pattern_image):
        async def run():
            first = await core.save(draft("first"), media=pattern_image)
            second = await core.save(draft("second"), media=image_bytes(pattern_image))
            return first, second, await core.store.scan_all()

        first, second, records = asyncio.run(run())
        assert first.saved
        assert not second.saved
        assert second.duplicate_found
        assert second.verdict.exact_match
        assert second.verdict.matched_record.id == first.record.id
        assert len(records) == 1

    def test_different_media_saved_with_zero_threshold(self, core, pattern_image):
        async def run():
            await core.save(draft("first"), media=pattern_image)
            return await core.save(draft("second"), media=half_white_image(), threshold=0)

        assert asyncio.run(run()).saved

    def test_unavailable_fingerprint_still_saves(self, core):
        result = asyncio.run(core.save(draft(), media=b"definitely not an image"))
        assert result.saved
        assert result.fingerprint is None
        assert result.verdict is None
        assert result.record.fingerprint is None

    def test_draft_without_media_saves_unhashed(self, core):
        record = replace(draft(), media_url=None)
        result = asyncio.run(core.save(record))
        assert result.saved
        assert result.record.fingerprint is None

    def test_detection_disabled_saves_duplicates(self, pattern_image):
        core = TagSaverCore(MemoryRecordStore(), Settings(duplicate_detection=False))

        async def run():
            await core.save(draft("first"), media=pattern_image)
            return await core.save(draft("second"), media=pattern_image)

        result = asyncio.run(run())
        assert result.saved
        assert result.verdict is None
        assert result.record.fingerprint is not None

    def test_draft_id_is_ignored(self, core):
        record = replace(draft(), media_url=None, id=99)
        result = asyncio.run(core.save(record))
        assert result.record.id != 99


class TestPools:
    def test_save_into_occupied_slot_shifts_pool(self):
        store = MemoryRecordStore([pool_record("p", i) for i in range(3)])
        core = TagSaverCore(store, Settings())

        async def run():
            await core.save(replace(draft("inserted", "p", 1), media_url=None))
            return await store.get_by_pool("p")

        layout = pool_layout(asyncio.run(run()))
        assert sorted(layout) == [0, 1, 2, 3]
        assert layout[1].endswith("/inserted")
        assert layout[3].endswith("/p-2")

    def test_highest_and_suggested_index(self):
        core = TagSaverCore(MemoryRecordStore([pool_record("p", i) for i in (0, 1, 5)]), Settings())

        async def run():
            return (
                await core.get_highest_pool_index("p"),
                await core.suggest_pool_index("p"),
                await core.get_highest_pool_index("empty"),
                await core.suggest_pool_index("empty"),
            )

        assert asyncio.run(run()) == (5, 6, None, 0)

    def test_assign_pool_index(self):
        store = MemoryRecordStore([pool_record("p", i) for i in range(2)])
        core = TagSaverCore(store, Settings())

        async def run():
            await core.assign_pool_index("p", 0)
            return await store.get_by_pool("p")

        assert sorted(pool_layout(asyncio.run(run()))) == [1, 2]


class TestCheckDuplicate:
    def test_uses_configured_threshold(self):
        base = "ab12cd34ef560789"
        near = format(int(base, 16) ^ 0b111, "016x")
        store = MemoryRecordStore([replace(draft(), fingerprint=base)])

        strict = TagSaverCore(store, Settings(similarity_threshold=2))
        loose = TagSaverCore(store, Settings(similarity_threshold=3))

        assert not asyncio.run(strict.check_duplicate(near)).is_duplicate
        assert asyncio.run(loose.check_duplicate(near)).distance == 3

    def test_sqlite_core_round_trip(self, tmp_path, pattern_image):
        settings = Settings(db_path=tmp_path / "records.db")

        async def run():
            core = TagSaverCore.from_settings(settings)
            try:
                saved = await core.save(draft(), media=pattern_image)
                verdict = await core.check_duplicate(saved.fingerprint)
            finally:
                await core.close()
            return saved, verdict

        saved, verdict = asyncio.run(run())
        assert saved.saved
        assert verdict.exact_match
        assert verdict.matched_record.id == saved.record.id

    def test_search_tags_through_core(self):
        store = MemoryRecordStore([replace(draft(), tags=("artist:Someone", "sky"))])
        core = TagSaverCore(store, Settings())
        assert asyncio.run(core.search_tags("ONE")) == ["artist:Someone"]
