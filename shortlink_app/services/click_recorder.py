"""
Click recording with optimistic concurrency.

A click is a read-modify-write of the link record plus a new ClickEvent,
committed atomically only if the record's versionstamp is unchanged since
the read. A conflicting commit writes nothing; the whole cycle is retried
with exponential backoff.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from shortlink_app.config import settings
from shortlink_app.exceptions import CommitConflictError, LinkNotFoundError
from shortlink_app.models.link import ClickEvent, ClickMetadata, LinkRecord
from shortlink_app.store.keys import click_key, click_prefix, link_key
from shortlink_app.store.strategies import KeyValueStore

logger = logging.getLogger(__name__)


class ClickStatus(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ClickResult:
    """Outcome of record_click; sequence is set when status is OK"""
    status: ClickStatus
    short_code: str
    attempts: int = 0
    sequence: Optional[int] = None
    versionstamp: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ClickStatus.OK

    def raise_for_status(self) -> "ClickResult":
        """
        Raise if the click was not recorded.

        Raises:
            LinkNotFoundError: If the short code does not exist
            CommitConflictError: If every attempt lost a concurrent race
        """
        if self.status == ClickStatus.NOT_FOUND:
            raise LinkNotFoundError(self.short_code)
        if self.status == ClickStatus.CONFLICT:
            raise CommitConflictError(self.short_code, self.attempts)
        return self


class ClickRecorder:
    """
    Records clicks and keeps the link's click_count in step with its events.

    Guarantees per successful call: exactly one new ClickEvent and one
    LinkRecord update. Per failed call: nothing written.

    max_attempts=1 gives single-shot behaviour (one losing racer reports
    CONFLICT and its click is dropped).
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None
    ):
        # Unset knobs follow the current settings
        if max_attempts is None:
            max_attempts = settings.click_max_attempts
        if base_delay is None:
            base_delay = settings.click_retry_base_delay
        if max_delay is None:
            max_delay = settings.click_retry_max_delay
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

    def _backoff(self, attempt: int) -> float:
        """Exponential backoff with full jitter"""
        ceiling = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return random.uniform(0, ceiling)

    async def _try_record(self, short_code: str, metadata: ClickMetadata, attempt: int) -> ClickResult:
        record_key = link_key(short_code)

        # Step 1: Read the record and its versionstamp
        entry = await self.store.get(record_key)
        if entry.value is None:
            return ClickResult(ClickStatus.NOT_FOUND, short_code, attempts=attempt)
        link = LinkRecord.model_validate(entry.value)

        # Step 2-3: Next sequence number and its event
        sequence = link.click_count + 1
        event = ClickEvent(short_code=short_code, sequence=sequence, **metadata.model_dump())
        updated = link.model_copy(update={
            "click_count": sequence,
            "last_click_event_id": event.event_id,
        })

        # Step 4: All-or-nothing commit guarded by the versionstamp
        event_key = click_key(short_code, sequence)
        result = await self.store.atomic() \
            .check(record_key, entry.versionstamp) \
            .check(event_key, None) \
            .set(record_key, updated.model_dump(mode="json")) \
            .set(event_key, event.model_dump(mode="json")) \
            .commit()

        if not result.ok:
            return ClickResult(ClickStatus.CONFLICT, short_code, attempts=attempt)
        return ClickResult(
            ClickStatus.OK,
            short_code,
            attempts=attempt,
            sequence=sequence,
            versionstamp=result.versionstamp,
        )

    async def record_click(self, short_code: str, metadata: Optional[ClickMetadata] = None) -> ClickResult:
        """
        Record one click for a short code.

        Returns:
            ClickResult with status OK, NOT_FOUND, or CONFLICT when all
            attempts lost the race (logged, not raised)
        """
        metadata = metadata or ClickMetadata()

        for attempt in range(1, self.max_attempts + 1):
            result = await self._try_record(short_code, metadata, attempt)
            if result.status != ClickStatus.CONFLICT:
                return result

            logger.warning("Click conflict on %s (attempt %d/%d)", short_code, attempt, self.max_attempts)
            if attempt < self.max_attempts:
                await asyncio.sleep(self._backoff(attempt))

        logger.error("Error recording click for %s: gave up after %d attempts", short_code, self.max_attempts)
        return result

    async def get_click_event(self, short_code: str, sequence: int) -> Optional[ClickEvent]:
        entry = await self.store.get(click_key(short_code, sequence))
        if entry.value is None:
            return None
        return ClickEvent.model_validate(entry.value)

    async def list_click_events(self, short_code: str) -> List[ClickEvent]:
        """All events for a short code in sequence order"""
        entries = await self.store.list(click_prefix(short_code))
        return [ClickEvent.model_validate(entry.value) for entry in entries]
