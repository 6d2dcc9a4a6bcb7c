import logging
from typing import List, Optional

from shortlink_app.config import settings
from shortlink_app.exceptions import CodeExhaustionError
from shortlink_app.models.link import ClickEvent, ClickMetadata, LinkRecord, SessionUser
from shortlink_app.services.change_watcher import ChangeWatcher, LinkUpdateStream
from shortlink_app.services.click_recorder import ClickRecorder, ClickResult
from shortlink_app.services.code_allocator import CodeAllocator
from shortlink_app.services.link_repository import LinkRepository
from shortlink_app.services.session_store import SessionStore
from shortlink_app.services.url_validation import normalize_url
from shortlink_app.store.strategies import CommitResult, KeyValueStore

logger = logging.getLogger(__name__)


class LinkService:
    """
    Link service with the store handle injected.

    This follows the Dependency Injection pattern:
    - One store handle per process, passed in (not created internally)
    - Easy to test (inject an in-memory store)
    - Components (allocator, repository, recorder, watcher) share the handle
    """

    def __init__(
        self,
        store: KeyValueStore,
        click_recorder: Optional[ClickRecorder] = None,
        create_max_attempts: Optional[int] = None
    ):
        """
        Initialize link service with dependencies.

        Args:
            store: Key-value store handle
            click_recorder: Recorder to use (default: one with settings' retry policy)
            create_max_attempts: Allocate + create cycles before giving up
        """
        self.store = store
        self.repository = LinkRepository(store)
        self.allocator = CodeAllocator(self.repository)
        self.click_recorder = click_recorder or ClickRecorder(store)
        self.watcher = ChangeWatcher(store)
        self.sessions = SessionStore(store)
        self.create_max_attempts = (
            create_max_attempts if create_max_attempts is not None else settings.create_max_attempts
        )

    async def create_short_link(self, long_url: str, owner_id: str) -> LinkRecord:
        """
        Create a new short link.

        Note: Always creates a new short link even if the long URL already
        exists; codes are random, not derived from the URL.

        Process:
        1. Normalize the URL (raises InvalidUrlError)
        2. Allocate a code that looks free
        3. Create record + owner index in one commit that fails if the code
           got taken in the meantime; then go back to step 2

        Raises:
            InvalidUrlError: If the URL is not valid
            CodeExhaustionError: If no code could be created
        """
        normalized = normalize_url(long_url)

        for attempt in range(1, self.create_max_attempts + 1):
            short_code = await self.allocator.allocate(normalized)
            record = LinkRecord.new(normalized, short_code, owner_id)
            result = await self.repository.save_new(record)
            if result.ok:
                logger.info("Created short link %s for %s", short_code, owner_id)
                return record
            logger.warning("Short code %s was taken before commit (attempt %d/%d)",
                           short_code, attempt, self.create_max_attempts)

        raise CodeExhaustionError(self.create_max_attempts)

    async def resolve_short_link(self, short_code: str) -> Optional[LinkRecord]:
        return await self.repository.get_by_code(short_code)

    async def list_all_links(self) -> List[LinkRecord]:
        return await self.repository.list_all()

    async def list_links_for_owner(self, owner_id: str) -> List[LinkRecord]:
        return await self.repository.list_by_owner(owner_id)

    async def record_click(self, short_code: str, metadata: Optional[ClickMetadata] = None) -> ClickResult:
        return await self.click_recorder.record_click(short_code, metadata)

    async def get_click_events(self, short_code: str) -> List[ClickEvent]:
        return await self.click_recorder.list_click_events(short_code)

    async def subscribe_to_link_updates(self, short_code: str) -> LinkUpdateStream:
        return await self.watcher.watch(short_code)

    async def store_session_user(self, session_id: str, user: SessionUser) -> CommitResult:
        return await self.sessions.store_user(session_id, user)

    async def get_session_user(self, session_id: str) -> Optional[SessionUser]:
        return await self.sessions.get_user(session_id)
