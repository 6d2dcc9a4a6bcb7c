from typing import List, Optional

from shortlink_app.models.link import LinkRecord
from shortlink_app.store.keys import (
    LINK_PREFIX,
    link_key,
    owner_index_key,
    owner_index_prefix,
)
from shortlink_app.store.strategies import CommitResult, KeyValueStore


class LinkRepository:
    """
    Link records and the owner -> link index.

    A record and its index entry are always written in the same commit, so
    one exists iff the other does.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def create(self, long_url: str, short_code: str, owner_id: str) -> CommitResult:
        """Create a link with click_count=0 and created_at=now"""
        return await self.save_new(LinkRecord.new(long_url, short_code, owner_id))

    async def save_new(self, record: LinkRecord) -> CommitResult:
        """
        Write a new record and its index entry atomically.

        Both keys are checked as absent in the same commit, so a short code
        taken since allocation makes the commit fail instead of overwriting
        the existing link. No retry here; the caller allocates a new code.
        """
        record_key = link_key(record.short_code)
        index_key = owner_index_key(record.owner_id, record.short_code)
        return await self.store.atomic() \
            .check(record_key, None) \
            .check(index_key, None) \
            .set(record_key, record.model_dump(mode="json")) \
            .set(index_key, record.short_code) \
            .commit()

    async def get_by_code(self, short_code: str) -> Optional[LinkRecord]:
        entry = await self.store.get(link_key(short_code))
        if entry.value is None:
            return None
        return LinkRecord.model_validate(entry.value)

    async def list_all(self) -> List[LinkRecord]:
        """Full scan of the link namespace, for admin/listing views"""
        entries = await self.store.list((LINK_PREFIX,))
        return [LinkRecord.model_validate(entry.value) for entry in entries]

    async def list_by_owner(self, owner_id: str) -> List[LinkRecord]:
        """
        Links created by one owner.

        Two reads: the owner's index entries give the short codes, then the
        records are fetched in one batch. Index entries without a record are
        skipped.
        """
        index_entries = await self.store.list(owner_index_prefix(owner_id))
        if not index_entries:
            return []

        entries = await self.store.get_many([link_key(entry.value) for entry in index_entries])
        return [LinkRecord.model_validate(entry.value) for entry in entries if entry.value is not None]
