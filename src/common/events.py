from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, TypeAlias


@dataclass(frozen=True, slots=True)
class TurnStartEvent:
    kind: str
    streaming: bool


@dataclass(frozen=True, slots=True)
class FragmentEvent:
    text: str
    index: int


@dataclass(frozen=True, slots=True)
class TurnFinalizedEvent:
    message: Any
    cancelled: bool = False


@dataclass(frozen=True, slots=True)
class TurnFailedEvent:
    message: str
    error_type: str


@dataclass(frozen=True, slots=True)
class SessionSavedEvent:
    session_id: str
    title: str
    created: bool


Event: TypeAlias = (
    TurnStartEvent
    | FragmentEvent
    | TurnFinalizedEvent
    | TurnFailedEvent
    | SessionSavedEvent
)
EventCallback: TypeAlias = Callable[[Event], None] | None


class EventEmitter:
    def __init__(self, callback: EventCallback = None):
        self._callback = callback

    def emit(self, event: Event) -> None:
        if self._callback is not None:
            self._callback(event)
