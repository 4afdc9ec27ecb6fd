from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable

from common.events import EventEmitter, FragmentEvent
from spark.models import Author, ChatMessage, Part

logger = logging.getLogger(__name__)


class StreamAccumulator:
    """Owns the single bot message that grows while a turn streams.

    The placeholder is appended to ``log`` on construction. Every other
    message in the log stays untouched; the accumulator refuses to write once
    its placeholder is no longer the last entry.
    """

    def __init__(self, log: list[ChatMessage]):
        self._log = log
        self.message = ChatMessage(author=Author.BOT, parts=[Part.from_text("")])
        log.append(self.message)
        self._slot = len(log) - 1
        self.fragments = 0
        self.closed = False

    @property
    def text(self) -> str:
        return self.message.parts[0].text or ""

    def owns_tail(self) -> bool:
        return len(self._log) == self._slot + 1 and self._log[self._slot] is self.message

    def apply(self, fragment: str) -> None:
        if self.closed:
            raise RuntimeError("stream accumulator is closed")
        if not self.owns_tail():
            raise RuntimeError("streaming placeholder is no longer the last message")
        self.message.parts[0].text = self.text + fragment
        self.fragments += 1

    def close(self) -> ChatMessage:
        self.closed = True
        return self.message


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    message: ChatMessage
    fragments: int
    cancelled: bool


class StreamingReconciler:
    """Fold an ordered fragment sequence into one placeholder bot message.

    The placeholder is anchored in ``log`` as soon as the reconciler is built,
    before the caller opens the fragment source. When ``cancel`` is set,
    consumption stops before the next fragment and the source is closed; the
    partial text stays in place.
    """

    def __init__(
        self,
        log: list[ChatMessage],
        *,
        cancel: threading.Event | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.accumulator = StreamAccumulator(log)
        self._cancel = cancel
        self._emitter = emitter

    @property
    def message(self) -> ChatMessage:
        return self.accumulator.message

    def _cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    def consume(self, fragments: Iterable[str]) -> ReconcileResult:
        iterator = iter(fragments)
        cancelled = False
        try:
            while True:
                if self._cancelled():
                    cancelled = True
                    break
                try:
                    fragment = next(iterator)
                except StopIteration:
                    break
                if self._cancelled():
                    cancelled = True
                    break
                if not fragment:
                    continue
                self.accumulator.apply(fragment)
                if self._emitter is not None:
                    self._emitter.emit(
                        FragmentEvent(text=fragment, index=self.accumulator.fragments - 1)
                    )
        except KeyboardInterrupt:
            cancelled = True
        finally:
            close = getattr(iterator, "close", None)
            if callable(close):
                close()

        if cancelled:
            logger.info(f"Stream cancelled after {self.accumulator.fragments} fragments")
        return ReconcileResult(
            message=self.accumulator.close(),
            fragments=self.accumulator.fragments,
            cancelled=cancelled,
        )
