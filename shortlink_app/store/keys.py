"""
Key layout for the key-value store.

Keys are tuples of str/int parts, ordered like Python tuples with integers
compared numerically. Namespaces:

    ("link", short_code)                      -> LinkRecord
    ("ownerIndex", owner_id, short_code)      -> short_code
    ("click", short_code, sequence)           -> ClickEvent
    ("session", session_id)                   -> SessionUser
"""

from typing import Tuple, Union
from urllib.parse import quote, unquote

KeyPart = Union[str, int]
KvKey = Tuple[KeyPart, ...]

LINK_PREFIX = "link"
OWNER_INDEX_PREFIX = "ownerIndex"
CLICK_PREFIX = "click"
SESSION_PREFIX = "session"

SEPARATOR = ":"


def link_key(short_code: str) -> KvKey:
    return (LINK_PREFIX, short_code)


def owner_index_key(owner_id: str, short_code: str) -> KvKey:
    return (OWNER_INDEX_PREFIX, owner_id, short_code)


def owner_index_prefix(owner_id: str) -> KvKey:
    return (OWNER_INDEX_PREFIX, owner_id)


def click_key(short_code: str, sequence: int) -> KvKey:
    return (CLICK_PREFIX, short_code, sequence)


def click_prefix(short_code: str) -> KvKey:
    return (CLICK_PREFIX, short_code)


def session_key(session_id: str) -> KvKey:
    return (SESSION_PREFIX, session_id)


def encode_key(key: KvKey) -> str:
    """
    Flatten a tuple key into a string for backends with string keys.

    Strings are percent-quoted (so they never contain the separator or glob
    characters) and integers are written as "#<n>", which a quoted string
    can never look like.
    """
    parts = []
    for part in key:
        if isinstance(part, bool) or not isinstance(part, (str, int)):
            raise TypeError(f"Unsupported key part: {part!r}")
        if isinstance(part, int):
            parts.append(f"#{part}")
        else:
            parts.append(quote(part, safe=""))
    return SEPARATOR.join(parts)


def decode_key(encoded: str) -> KvKey:
    """Inverse of encode_key"""
    parts = []
    for part in encoded.split(SEPARATOR):
        if part.startswith("#"):
            parts.append(int(part[1:]))
        else:
            parts.append(unquote(part))
    return tuple(parts)


def sort_key(key: KvKey) -> tuple:
    """Ordering key that compares integers numerically and ranks them before strings"""
    return tuple((0, part, "") if isinstance(part, int) else (1, 0, part) for part in key)


def has_prefix(key: KvKey, prefix: KvKey) -> bool:
    return len(key) > len(prefix) and key[:len(prefix)] == prefix
