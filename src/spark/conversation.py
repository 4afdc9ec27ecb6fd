from __future__ import annotations

import threading

from spark.models import ChatMessage, ChatSession


class Conversation:
    """In-memory view of one chat, persisted lazily after its first turn."""

    def __init__(
        self,
        model: str,
        *,
        system_instruction: str | None = None,
        api_key: str | None = None,
        session_id: str | None = None,
        title: str | None = None,
        messages: list[ChatMessage] | None = None,
    ):
        self._model = model
        self.system_instruction = system_instruction
        self.api_key = api_key
        self.session_id = session_id
        self.title = title
        self.messages: list[ChatMessage] = list(messages or [])
        self.turn_lock = threading.Lock()
        self.cancel_requested = threading.Event()

    @classmethod
    def from_session(
        cls,
        session: ChatSession,
        *,
        system_instruction: str | None = None,
        api_key: str | None = None,
    ) -> "Conversation":
        return cls(
            session.model,
            system_instruction=system_instruction,
            api_key=api_key,
            session_id=session.id,
            title=session.title,
            messages=[m.model_copy(deep=True) for m in session.messages],
        )

    @property
    def model(self) -> str:
        return self._model

    @property
    def is_persisted(self) -> bool:
        return self.session_id is not None

    @property
    def in_flight(self) -> bool:
        return self.turn_lock.locked()

    def cancel(self) -> None:
        self.cancel_requested.set()

    def to_session(self, timestamp: int) -> ChatSession:
        if self.session_id is None or self.title is None:
            raise ValueError("conversation has not been assigned a session id yet")
        return ChatSession(
            id=self.session_id,
            title=self.title,
            timestamp=timestamp,
            messages=[m.model_copy(deep=True) for m in self.messages],
            model=self._model,
        )
