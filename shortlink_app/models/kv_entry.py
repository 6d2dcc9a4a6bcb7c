from sqlalchemy import Column, Integer, String, Text
from shortlink_app.database.connection import Base


class KvEntryRow(Base):
    """
    One key-value pair of the SQL-backed store.

    The key is the encoded tuple key (see store.keys.encode_key), so a
    LIKE 'prefix:%' scan is a prefix scan over the logical key space.
    """
    __tablename__ = "kv_entries"

    key = Column(String(512), primary_key=True)
    value = Column(Text, nullable=False)  # JSON document
    versionstamp = Column(String(20), nullable=False, index=True)


class KvMetaRow(Base):
    """Named counters for the store (currently only the versionstamp sequence)"""
    __tablename__ = "kv_meta"

    name = Column(String(64), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
