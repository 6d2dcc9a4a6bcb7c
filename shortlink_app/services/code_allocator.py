"""
Short code allocation.

Random codes with collision checking against the link repository.
"""

import logging
import random
import string
from typing import Optional

from shortlink_app.config import settings
from shortlink_app.exceptions import CodeExhaustionError
from shortlink_app.services.link_repository import LinkRepository
from shortlink_app.services.url_validation import normalize_url

logger = logging.getLogger(__name__)


class CodeAllocator:
    """
    Random generation strategy.
    Generates a random string and checks the store for uniqueness.

    62^7 (~3.5 trillion) codes make a collision rare. The existence check is
    advisory only: LinkRepository.create re-checks the key inside its commit,
    which is what actually guarantees uniqueness.
    """

    ALPHABET = string.ascii_letters + string.digits

    def __init__(
        self,
        repository: LinkRepository,
        length: Optional[int] = None,
        max_retries: Optional[int] = None
    ):
        self.repository = repository
        self.length = length if length is not None else settings.short_code_length
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self._random = random.SystemRandom()

    def generate_code(self) -> str:
        """Generate a random string of specified length"""
        return ''.join(self._random.choice(self.ALPHABET) for _ in range(self.length))

    async def allocate(self, long_url: str) -> str:
        """
        Pick an unused short code for a URL.

        The URL only gets validated here; the code does not depend on it,
        so shortening the same URL twice gives two codes.

        Raises:
            InvalidUrlError: If the URL is not valid
            CodeExhaustionError: If every attempt hit an existing code
        """
        normalize_url(long_url)

        for attempt in range(1, self.max_retries + 1):
            short_code = self.generate_code()
            if await self.repository.get_by_code(short_code) is None:
                return short_code
            logger.warning("Short code collision on %s (attempt %d/%d)", short_code, attempt, self.max_retries)

        raise CodeExhaustionError(self.max_retries)
