"""Persistence of chat sessions keyed by id.

Every mutation is a full read-modify-write of the backend blob under a lock.
Records that fail validation are left in place and skipped by readers.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from pydantic import ValidationError

from spark.errors import StoreError
from spark.models import Author, ChatMessage, ChatSession
from spark.sessions.backends import KeyValueBackend, MemoryBackend

logger = logging.getLogger(__name__)

TITLE_WORDS = 5
UNTITLED = "Untitled Chat"
IMAGE_TITLE = "Chat with an image"
NEW_CHAT = "New Chat"


def derive_title(messages: Iterable[ChatMessage]) -> str:
    first_user = next((m for m in messages if m.author == Author.USER), None)
    if first_user is None:
        return NEW_CHAT

    first_text = next((p.text for p in first_user.parts if p.text), None)
    if first_text:
        words = first_text.split()[:TITLE_WORDS]
        title = " ".join(words).replace("/", "").strip()
        return title or UNTITLED

    first_media = next(
        (p.inline_data for p in first_user.parts if p.inline_data is not None), None
    )
    if first_media is not None and first_media.is_image:
        return IMAGE_TITLE

    return NEW_CHAT


class SessionStore:
    def __init__(self, backend: KeyValueBackend | None = None):
        self.backend = backend if backend is not None else MemoryBackend()
        self._lock = threading.RLock()

    derive_title = staticmethod(derive_title)

    def _read(self) -> dict:
        return self.backend.load()

    def _write(self, mapping: dict) -> None:
        try:
            self.backend.save(mapping)
        except OSError as e:
            logger.error(f"Failed to write chat history via {self.backend!r}: {e}")
            raise StoreError(f"Failed to write chat history: {e}") from e

    def _parse(self, session_id: str, record: object) -> ChatSession | None:
        try:
            return ChatSession.model_validate(record)
        except ValidationError as e:
            logger.warning(f"Skipping unreadable session {session_id}: {e.error_count()} errors")
            return None

    def _sessions(self, mapping: dict) -> list[ChatSession]:
        out: list[ChatSession] = []
        for session_id, record in mapping.items():
            session = self._parse(session_id, record)
            if session is not None:
                out.append(session)
        return sorted(out, key=lambda s: s.timestamp, reverse=True)

    def get(self, session_id: str) -> ChatSession | None:
        with self._lock:
            record = self._read().get(session_id)
        if record is None:
            return None
        return self._parse(session_id, record)

    def list_by_model(self, model: str) -> list[ChatSession]:
        with self._lock:
            mapping = self._read()
        return [s for s in self._sessions(mapping) if s.model == model]

    def list_all(self) -> list[ChatSession]:
        with self._lock:
            mapping = self._read()
        return self._sessions(mapping)

    def upsert(self, session: ChatSession) -> None:
        with self._lock:
            mapping = self._read()
            existing = mapping.get(session.id)
            if isinstance(existing, dict) and existing.get("model") not in (None, session.model):
                raise StoreError(
                    f"Session {session.id} is bound to model {existing.get('model')}, "
                    f"not {session.model}"
                )
            mapping[session.id] = session.to_record()
            self._write(mapping)
        logger.debug(f"Saved session {session.id} ({len(session.messages)} messages)")

    def delete(self, session_id: str) -> None:
        with self._lock:
            mapping = self._read()
            if mapping.pop(session_id, None) is None:
                return
            self._write(mapping)
        logger.info(f"Deleted session {session_id}")
