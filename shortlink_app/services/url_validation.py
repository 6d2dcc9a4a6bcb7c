"""
URL normalization shared by allocation and link creation.
"""

import re

from pydantic import HttpUrl, TypeAdapter, ValidationError

from shortlink_app.exceptions import InvalidUrlError

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_http_url = TypeAdapter(HttpUrl)

MIN_HOST_LENGTH = 3


def normalize_url(long_url: str) -> str:
    """
    Normalize user input into an absolute http(s) URL.

    Process:
    1. Trim surrounding whitespace
    2. Prepend https:// when there is no http/https scheme
    3. Parse; the host must exist and be at least 3 characters

    The returned string is the trimmed input (plus scheme), not the parser's
    canonical form, so "example.com" becomes "https://example.com".

    Raises:
        InvalidUrlError: If the URL cannot be parsed or has no usable host
    """
    url = (long_url or "").strip()
    if not _SCHEME_RE.match(url):
        url = "https://" + url

    try:
        parsed = _http_url.validate_python(url)
    except ValidationError as e:
        raise InvalidUrlError(long_url) from e

    if not parsed.host or len(parsed.host) < MIN_HOST_LENGTH:
        raise InvalidUrlError(long_url)

    return url
