"""
Data models for URL shortener.

LinkRecord, ClickEvent and SessionUser are the documents kept in the
key-value store. KvEntryRow/KvMetaRow are the tables of the SQL-backed store.
"""

from .link import LinkRecord, ClickEvent, ClickMetadata, SessionUser
from .kv_entry import KvEntryRow, KvMetaRow

__all__ = [
    "LinkRecord",
    "ClickEvent",
    "ClickMetadata",
    "SessionUser",
    "KvEntryRow",
    "KvMetaRow",
]
