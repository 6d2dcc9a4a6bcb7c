"""
Errors raised by the URL shortener.

Lookups of missing data return None and store commits report their outcome
as a value (CommitResult / ClickResult). Exceptions cover the cases a caller
cannot continue from.
"""


class ShortLinkError(Exception):
    """Base class for all URL shortener errors"""


class InvalidUrlError(ShortLinkError):
    """Input could not be normalized into an absolute URL with a usable host"""

    def __init__(self, url: str):
        self.url = url
        super().__init__("Invalid URL provided. Please enter a valid web address.")


class CodeExhaustionError(ShortLinkError):
    """No free short code was found within the allowed attempts"""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Could not generate a unique short code after {attempts} attempts. Please try again."
        )


class CommitConflictError(ShortLinkError):
    """An optimistic-concurrency check failed on every attempt"""

    def __init__(self, short_code: str, attempts: int):
        self.short_code = short_code
        self.attempts = attempts
        super().__init__(
            f"Concurrent update conflict on '{short_code}' after {attempts} attempts"
        )


class LinkNotFoundError(ShortLinkError):
    """Short code does not exist"""

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Short URL '{short_code}' not found")


class StoreUnavailableError(ShortLinkError):
    """Key-value store could not be initialized or reached"""
