"""
Tests for live link updates.
"""
import asyncio

from shortlink_app.services.change_watcher import ChangeWatcher
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.link_repository import LinkRepository


class TestChangeWatcher:
    """Test the update stream of a single link"""

    def test_one_update_per_click_in_commit_order(self, store):
        asyncio.run(LinkRepository(store).create("https://example.com", "abc1234", "user1"))
        recorder = ClickRecorder(store, base_delay=0, max_delay=0)
        watcher = ChangeWatcher(store)

        async def scenario():
            async with await watcher.watch("abc1234") as stream:
                await asyncio.gather(*(recorder.record_click("abc1234") for _ in range(3)))
                return [
                    (await asyncio.wait_for(stream.next(), timeout=5)).click_count
                    for _ in range(3)
                ]

        assert asyncio.run(scenario()) == [1, 2, 3]

    def test_other_links_do_not_notify(self, store):
        repository = LinkRepository(store)
        asyncio.run(repository.create("https://a.com", "aaa0000", "user1"))
        asyncio.run(repository.create("https://b.com", "bbb0000", "user1"))
        recorder = ClickRecorder(store)
        watcher = ChangeWatcher(store)

        async def scenario():
            stream = await watcher.watch("aaa0000")
            await recorder.record_click("bbb0000")
            await recorder.record_click("aaa0000")
            update = await asyncio.wait_for(stream.next(), timeout=5)
            await stream.aclose()
            return update

        update = asyncio.run(scenario())
        assert update.short_code == "aaa0000"
        assert update.click_count == 1

    def test_closed_stream_stops_iterating(self, store):
        asyncio.run(LinkRepository(store).create("https://example.com", "abc1234", "user1"))
        recorder = ClickRecorder(store)
        watcher = ChangeWatcher(store)

        async def scenario():
            stream = await watcher.watch("abc1234")
            await stream.aclose()
            await recorder.record_click("abc1234")
            seen = [link async for link in stream]
            return stream.closed, seen, await stream.next()

        closed, seen, after = asyncio.run(scenario())
        assert closed
        assert seen == []
        assert after is None

    def test_close_wakes_a_waiting_consumer(self, store):
        watcher = ChangeWatcher(store)

        async def scenario():
            stream = await watcher.watch("abc1234")

            async def consume():
                return [link async for link in stream]

            consumer = asyncio.ensure_future(consume())
            await asyncio.sleep(0)
            await stream.aclose()
            return await asyncio.wait_for(consumer, timeout=5)

        assert asyncio.run(scenario()) == []

    def test_sql_store_notifies_in_process(self, sql_store):
        asyncio.run(LinkRepository(sql_store).create("https://example.com", "abc1234", "user1"))
        recorder = ClickRecorder(sql_store)
        watcher = ChangeWatcher(sql_store)

        async def scenario():
            async with await watcher.watch("abc1234") as stream:
                await recorder.record_click("abc1234")
                await recorder.record_click("abc1234")
                first = await asyncio.wait_for(stream.next(), timeout=5)
                second = await asyncio.wait_for(stream.next(), timeout=5)
                return first.click_count, second.click_count

        assert asyncio.run(scenario()) == (1, 2)
