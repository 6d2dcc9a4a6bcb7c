"""
Key-value store strategies using Strategy Pattern.

Every backend offers the same primitives: get, get_many, set, list by
prefix, atomic compare-and-set commits keyed on a per-record versionstamp,
and a watch subscription that yields on change.

- InMemoryKeyValueStore: development/testing, single process
- SQLAlchemyKeyValueStore: durable, any SQLAlchemy database (SQLite default)
- RedisKeyValueStore: shared across processes, WATCH/MULTI for atomicity
"""

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from redis.exceptions import RedisError, WatchError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shortlink_app.database.connection import Base, make_engine, make_session_factory
from shortlink_app.exceptions import StoreUnavailableError
from shortlink_app.models.kv_entry import KvEntryRow, KvMetaRow
from shortlink_app.store.keys import KvKey, decode_key, encode_key, has_prefix, sort_key

logger = logging.getLogger(__name__)


def format_versionstamp(counter: int) -> str:
    """Fixed width so versionstamps compare the same as strings and as numbers"""
    return f"{counter:020d}"


@contextmanager
def driver_errors(backend: str, *errors):
    """Re-raise driver failures as StoreUnavailableError"""
    try:
        yield
    except errors as e:
        logger.error("%s store operation failed: %s", backend, e)
        raise StoreUnavailableError(f"{backend} store unavailable: {e}") from e


@dataclass(frozen=True)
class KvEntry:
    """A key with its value and the versionstamp of the write that produced it"""
    key: KvKey
    value: Any = None  # None when the key does not exist
    versionstamp: Optional[str] = None


@dataclass(frozen=True)
class CommitResult:
    """Outcome of a write; versionstamp is set only when ok is True"""
    ok: bool
    versionstamp: Optional[str] = None


class AtomicOperation:
    """
    Builder for an all-or-nothing commit.

        result = await store.atomic() \\
            .check(key, entry.versionstamp) \\
            .set(key, new_value) \\
            .commit()

    A check with versionstamp=None asserts that the key does not exist.
    """

    def __init__(self, store: "KeyValueStore"):
        self._store = store
        self.checks: List[Tuple[KvKey, Optional[str]]] = []
        self.mutations: List[Tuple[KvKey, Any]] = []

    def check(self, key: KvKey, versionstamp: Optional[str]) -> "AtomicOperation":
        self.checks.append((key, versionstamp))
        return self

    def set(self, key: KvKey, value: Any) -> "AtomicOperation":
        if value is None:
            raise ValueError("Cannot store None; absent keys are represented by None")
        self.mutations.append((key, value))
        return self

    async def commit(self) -> CommitResult:
        return await self._store._commit(self.checks, self.mutations)


class WatchSubscription(ABC):
    """
    Live subscription to one key.

    The subscription is active as soon as it is returned by
    KeyValueStore.watch(), so no write committed afterwards is missed.
    """

    def __init__(self, key: KvKey):
        self.key = key
        self.closed = False

    @abstractmethod
    async def next(self) -> Optional[KvEntry]:
        """
        Wait for the next committed write of the key.

        Returns:
            The new entry, or None once the subscription is closed
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the subscription (idempotent)"""
        pass


class KeyValueStore(ABC):
    """
    Abstract base class for key-value store strategies.

    Services only talk to this interface, so a store handle built once per
    process can be swapped for an in-memory one in tests.
    All methods are async because real backends involve network I/O.
    """

    @abstractmethod
    async def get(self, key: KvKey) -> KvEntry:
        """
        Read one key.

        Returns:
            KvEntry; value and versionstamp are None if the key is missing
        """
        pass

    @abstractmethod
    async def get_many(self, keys: List[KvKey]) -> List[KvEntry]:
        """Read several keys, results in input order"""
        pass

    @abstractmethod
    async def list(self, prefix: KvKey) -> List[KvEntry]:
        """
        List every entry whose key starts with prefix.

        Returns:
            Entries in key order (integers numerically, then strings)
        """
        pass

    @abstractmethod
    async def _commit(
        self,
        checks: List[Tuple[KvKey, Optional[str]]],
        mutations: List[Tuple[KvKey, Any]]
    ) -> CommitResult:
        """Apply mutations if and only if every check holds"""
        pass

    @abstractmethod
    async def watch(self, key: KvKey) -> WatchSubscription:
        """Subscribe to committed writes of a key"""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Check if the store is reachable"""
        pass

    async def close(self) -> None:
        """Release connections held by the store"""
        return None

    def atomic(self) -> AtomicOperation:
        return AtomicOperation(self)

    async def set(self, key: KvKey, value: Any) -> CommitResult:
        """Unconditional single-key write"""
        return await self.atomic().set(key, value).commit()


class LocalWatchSubscription(WatchSubscription):
    """Subscription fed by an in-process LocalWatchHub"""

    def __init__(self, key: KvKey, hub: "LocalWatchHub"):
        super().__init__(key)
        self._hub = hub
        self._queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, entry: Optional[KvEntry]) -> None:
        self._queue.put_nowait(entry)

    async def next(self) -> Optional[KvEntry]:
        if self.closed:
            return None
        return await self._queue.get()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._hub.unsubscribe(self)
        # Wake up a consumer blocked in next()
        self._queue.put_nowait(None)


class LocalWatchHub:
    """Fan-out of committed writes to subscribers in this process"""

    def __init__(self):
        self._subscribers: Dict[KvKey, Set[LocalWatchSubscription]] = defaultdict(set)

    def subscribe(self, key: KvKey) -> LocalWatchSubscription:
        subscription = LocalWatchSubscription(key, self)
        self._subscribers[key].add(subscription)
        return subscription

    def unsubscribe(self, subscription: LocalWatchSubscription) -> None:
        subscribers = self._subscribers.get(subscription.key)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.key]

    def publish(self, entry: KvEntry) -> None:
        for subscription in list(self._subscribers.get(entry.key, ())):
            subscription.deliver(entry)


class InMemoryKeyValueStore(KeyValueStore):
    """
    In-memory store implementation using a Python dict.

    Pros:
    - No external services, instant setup
    - Same commit/watch semantics as the real backends

    Cons:
    - Lost on restart
    - Not shared between processes

    Every call yields to the event loop once before touching data, standing
    in for the network round trip of a real store. Concurrent coroutines
    therefore interleave between a read and the following commit, which is
    what the optimistic-concurrency paths need to be exercised against.
    """

    def __init__(self):
        self._data: Dict[KvKey, KvEntry] = {}
        self._counter = 0
        self._hub = LocalWatchHub()

    def _snapshot(self, key: KvKey) -> KvEntry:
        entry = self._data.get(key)
        if entry is None:
            return KvEntry(key)
        return KvEntry(key, copy.deepcopy(entry.value), entry.versionstamp)

    async def get(self, key: KvKey) -> KvEntry:
        await asyncio.sleep(0)
        return self._snapshot(key)

    async def get_many(self, keys: List[KvKey]) -> List[KvEntry]:
        await asyncio.sleep(0)
        return [self._snapshot(key) for key in keys]

    async def list(self, prefix: KvKey) -> List[KvEntry]:
        await asyncio.sleep(0)
        keys = sorted((key for key in self._data if has_prefix(key, prefix)), key=sort_key)
        return [self._snapshot(key) for key in keys]

    async def _commit(self, checks, mutations) -> CommitResult:
        await asyncio.sleep(0)

        # No await below this point: checks and writes happen in one step
        for key, expected in checks:
            current = self._data.get(key)
            if (current.versionstamp if current else None) != expected:
                return CommitResult(ok=False)

        self._counter += 1
        versionstamp = format_versionstamp(self._counter)
        written = []
        for key, value in mutations:
            entry = KvEntry(key, copy.deepcopy(value), versionstamp)
            self._data[key] = entry
            written.append(entry)

        for entry in written:
            self._hub.publish(self._snapshot(entry.key))

        return CommitResult(ok=True, versionstamp=versionstamp)

    async def watch(self, key: KvKey) -> WatchSubscription:
        return self._hub.subscribe(key)

    async def ping(self) -> bool:
        return True


class _CheckFailed(Exception):
    """Internal: aborts a SQL transaction whose check did not hold"""


class SQLAlchemyKeyValueStore(KeyValueStore):
    """
    Store implementation on top of a relational database via SQLAlchemy.

    Pros:
    - Durable, zero setup with SQLite
    - Works with any database SQLAlchemy supports

    Cons:
    - Watch notifications only reach subscribers in the same process

    Each commit is one database transaction. Checked rows are read with
    SELECT ... FOR UPDATE so they stay locked until the transaction ends;
    an absent-key check relies on the primary key to reject a concurrent
    insert.

    Note: Async for interface consistency, database calls are sync.
    """

    VERSIONSTAMP_COUNTER = "versionstamp"

    def __init__(self, database_url: str = "sqlite:///./url_shortener.db"):
        self.database_url = database_url
        self._hub = LocalWatchHub()
        self._init_database()

    def _errors(self):
        return driver_errors("SQL", SQLAlchemyError)

    def _init_database(self):
        """Create the engine, tables and the versionstamp counter if they don't exist"""
        try:
            self.engine = make_engine(self.database_url)
            self.session_factory = make_session_factory(self.engine)
            Base.metadata.create_all(bind=self.engine)
            with self.session_factory() as session, session.begin():
                counter = session.get(KvMetaRow, self.VERSIONSTAMP_COUNTER)
                if counter is None:
                    session.add(KvMetaRow(name=self.VERSIONSTAMP_COUNTER, value=0))
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"SQL store initialization failed: {e}") from e
        logger.info("SQL key-value store initialized (%s)", self.engine.url.get_backend_name())

    @staticmethod
    def _to_entry(key: KvKey, row: Optional[KvEntryRow]) -> KvEntry:
        if row is None:
            return KvEntry(key)
        return KvEntry(key, json.loads(row.value), row.versionstamp)

    async def get(self, key: KvKey) -> KvEntry:
        with self._errors(), self.session_factory() as session:
            return self._to_entry(key, session.get(KvEntryRow, encode_key(key)))

    async def get_many(self, keys: List[KvKey]) -> List[KvEntry]:
        if not keys:
            return []
        encoded = [encode_key(key) for key in keys]
        with self._errors(), self.session_factory() as session:
            rows = session.scalars(select(KvEntryRow).where(KvEntryRow.key.in_(encoded))).all()
        by_key = {row.key: row for row in rows}
        return [self._to_entry(key, by_key.get(enc)) for key, enc in zip(keys, encoded)]

    async def list(self, prefix: KvKey) -> List[KvEntry]:
        pattern = encode_key(prefix) + ":"
        with self._errors(), self.session_factory() as session:
            rows = session.scalars(
                select(KvEntryRow).where(KvEntryRow.key.startswith(pattern, autoescape=True))
            ).all()
        entries = [self._to_entry(decode_key(row.key), row) for row in rows]
        return sorted(entries, key=lambda entry: sort_key(entry.key))

    def _next_versionstamp(self, session) -> str:
        session.execute(
            update(KvMetaRow)
            .where(KvMetaRow.name == self.VERSIONSTAMP_COUNTER)
            .values(value=KvMetaRow.value + 1)
        )
        counter = session.scalar(
            select(KvMetaRow.value).where(KvMetaRow.name == self.VERSIONSTAMP_COUNTER)
        )
        return format_versionstamp(counter)

    async def _commit(self, checks, mutations) -> CommitResult:
        written = []
        try:
            with self.session_factory() as session, session.begin():
                for key, expected in checks:
                    current = session.scalar(
                        select(KvEntryRow.versionstamp)
                        .where(KvEntryRow.key == encode_key(key))
                        .with_for_update()
                    )
                    if current != expected:
                        raise _CheckFailed(key)

                versionstamp = self._next_versionstamp(session)
                for key, value in mutations:
                    encoded = encode_key(key)
                    payload = json.dumps(value)
                    row = session.get(KvEntryRow, encoded)
                    if row is None:
                        session.add(KvEntryRow(key=encoded, value=payload, versionstamp=versionstamp))
                    else:
                        row.value = payload
                        row.versionstamp = versionstamp
                    written.append(KvEntry(key, copy.deepcopy(value), versionstamp))
        except _CheckFailed:
            return CommitResult(ok=False)
        except IntegrityError:
            # Lost an insert race on a key checked as absent
            return CommitResult(ok=False)
        except SQLAlchemyError as e:
            logger.error("SQL store operation failed: %s", e)
            raise StoreUnavailableError(f"SQL store unavailable: {e}") from e

        for entry in written:
            self._hub.publish(entry)
        return CommitResult(ok=True, versionstamp=versionstamp)

    async def watch(self, key: KvKey) -> WatchSubscription:
        return self._hub.subscribe(key)

    async def ping(self) -> bool:
        try:
            with self.engine.connect() as connection:
                connection.exec_driver_sql("SELECT 1")
            return True
        except SQLAlchemyError as e:
            logger.error("SQL store ping failed: %s", e)
            return False

    async def close(self) -> None:
        self.engine.dispose()


class RedisWatchSubscription(WatchSubscription):
    """Subscription backed by a Redis pub/sub channel"""

    def __init__(self, key: KvKey, pubsub):
        super().__init__(key)
        self._pubsub = pubsub

    async def next(self) -> Optional[KvEntry]:
        while not self.closed:
            with driver_errors("Redis", RedisError):
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message is None or message.get("type") != "message":
                continue
            data = json.loads(message["data"])
            return KvEntry(self.key, data["value"], data["versionstamp"])
        return None

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._pubsub.unsubscribe()
        await self._pubsub.aclose()


class RedisKeyValueStore(KeyValueStore):
    """
    Redis implementation of the key-value store.

    Production-ready store with:
    - Shared state for every app process
    - Optimistic locking with WATCH + MULTI/EXEC
    - Watch notifications over pub/sub, published inside the same
      MULTI block as the write so they follow commit order

    Each value is stored as a JSON document {"value": ..., "versionstamp": ...}
    under the encoded key. Versionstamps come from INCR on a counter key.
    """

    VERSIONSTAMP_KEY = "#versionstamp"  # Never produced by encode_key for our namespaces
    CHANNEL_PREFIX = "kv-watch|"

    def __init__(self, redis_client):
        """
        Initialize Redis store.

        Args:
            redis_client: redis.asyncio.Redis created with decode_responses=True
        """
        self.redis = redis_client

    def _errors(self):
        return driver_errors("Redis", RedisError)

    @classmethod
    def _channel(cls, encoded_key: str) -> str:
        return f"{cls.CHANNEL_PREFIX}{encoded_key}"

    @staticmethod
    def _to_entry(key: KvKey, raw: Optional[str]) -> KvEntry:
        if raw is None:
            return KvEntry(key)
        data = json.loads(raw)
        return KvEntry(key, data["value"], data["versionstamp"])

    async def get(self, key: KvKey) -> KvEntry:
        with self._errors():
            raw = await self.redis.get(encode_key(key))
        return self._to_entry(key, raw)

    async def get_many(self, keys: List[KvKey]) -> List[KvEntry]:
        if not keys:
            return []
        with self._errors():
            raws = await self.redis.mget([encode_key(key) for key in keys])
        return [self._to_entry(key, raw) for key, raw in zip(keys, raws)]

    async def list(self, prefix: KvKey) -> List[KvEntry]:
        # Quoted key parts contain no glob characters, so the prefix is literal
        pattern = encode_key(prefix) + ":*"
        with self._errors():
            encoded_keys = [k async for k in self.redis.scan_iter(match=pattern, count=500)]
            if not encoded_keys:
                return []
            raws = await self.redis.mget(encoded_keys)
        entries = [
            self._to_entry(decode_key(encoded), raw)
            for encoded, raw in zip(encoded_keys, raws)
            if raw is not None
        ]
        return sorted(entries, key=lambda entry: sort_key(entry.key))

    async def _commit(self, checks, mutations) -> CommitResult:
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                if checks:
                    check_keys = [encode_key(key) for key, _ in checks]
                    await pipe.watch(*check_keys)
                    raws = await pipe.mget(check_keys)
                    for (key, expected), raw in zip(checks, raws):
                        if self._to_entry(key, raw).versionstamp != expected:
                            await pipe.unwatch()
                            return CommitResult(ok=False)

                versionstamp = format_versionstamp(await self.redis.incr(self.VERSIONSTAMP_KEY))

                pipe.multi()
                for key, value in mutations:
                    encoded = encode_key(key)
                    payload = json.dumps({"value": value, "versionstamp": versionstamp})
                    pipe.set(encoded, payload)
                    pipe.publish(self._channel(encoded), payload)
                await pipe.execute()

            except WatchError:
                # A checked key changed between WATCH and EXEC
                return CommitResult(ok=False)
            except RedisError as e:
                logger.error("Redis store operation failed: %s", e)
                raise StoreUnavailableError(f"Redis store unavailable: {e}") from e

        return CommitResult(ok=True, versionstamp=versionstamp)

    async def watch(self, key: KvKey) -> WatchSubscription:
        pubsub = self.redis.pubsub()
        with self._errors():
            await pubsub.subscribe(self._channel(encode_key(key)))
        return RedisWatchSubscription(key, pubsub)

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.error("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        await self.redis.aclose()
