from .record import DraftRecord, RestoredDraft, build_record, restore
from .store import DraftStore, InMemoryDraftStore, JsonFileDraftStore

__all__ = [
    "DraftRecord",
    "RestoredDraft",
    "build_record",
    "restore",
    "DraftStore",
    "InMemoryDraftStore",
    "JsonFileDraftStore",
]
