from typing import Optional

from shortlink_app.models.link import LinkRecord
from shortlink_app.store.keys import link_key
from shortlink_app.store.strategies import KeyValueStore, WatchSubscription


class LinkUpdateStream:
    """
    Async iterator of LinkRecord snapshots, one per committed write of a link.

        async with await watcher.watch(code) as stream:
            async for link in stream:
                ...

    Must be closed to release the store subscription. Once closed it stops
    iterating and cannot be restarted.
    """

    def __init__(self, short_code: str, subscription: WatchSubscription):
        self.short_code = short_code
        self._subscription = subscription

    @property
    def closed(self) -> bool:
        return self._subscription.closed

    def __aiter__(self) -> "LinkUpdateStream":
        return self

    async def __anext__(self) -> LinkRecord:
        entry = await self._subscription.next()
        if entry is None:
            raise StopAsyncIteration
        return LinkRecord.model_validate(entry.value)

    async def next(self) -> Optional[LinkRecord]:
        """Next snapshot, or None if the stream is closed"""
        try:
            return await self.__anext__()
        except StopAsyncIteration:
            return None

    async def aclose(self) -> None:
        await self._subscription.close()

    async def __aenter__(self) -> "LinkUpdateStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class ChangeWatcher:
    """Live updates of single link records for real-time counters"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def watch(self, short_code: str) -> LinkUpdateStream:
        """Subscribe to a link; updates committed after this returns are delivered"""
        subscription = await self.store.watch(link_key(short_code))
        return LinkUpdateStream(short_code, subscription)
