"""Persistence adapters for submissions and the audit log."""

from presale.persistence.event_log import EventKind, EventLog, EventRecord
from presale.persistence.record_store import (
    DocumentNotFound,
    InMemoryRecordStore,
    JsonFileRecordStore,
    PreconditionFailed,
    RecordStore,
    StoreError,
    StoreQuery,
)

__all__ = [
    "EventKind",
    "EventLog",
    "EventRecord",
    "DocumentNotFound",
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    "PreconditionFailed",
    "RecordStore",
    "StoreError",
    "StoreQuery",
]
