from spark.sessions.backends import JsonFileBackend, KeyValueBackend, MemoryBackend
from spark.sessions.store import SessionStore, derive_title

__all__ = [
    "JsonFileBackend",
    "KeyValueBackend",
    "MemoryBackend",
    "SessionStore",
    "derive_title",
]
