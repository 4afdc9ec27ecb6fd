"""Run one conversational turn against the model-serving gateway.

A turn moves through Pending (user message appended), Dispatch (buffered,
streaming or image request), and ends Finalized (one bot message appended,
conversation persisted) or Failed (log truncated back to its pre-turn length,
nothing persisted). At most one turn runs per conversation.
"""

from __future__ import annotations

import logging

from common.events import (
    EventEmitter,
    SessionSavedEvent,
    TurnFailedEvent,
    TurnFinalizedEvent,
    TurnStartEvent,
)
from common.ids import generate_id, now_millis
from spark.conversation import Conversation
from spark.errors import NoMediaReturnedError, TurnInProgressError
from spark.gateway import Gateway, SessionContext
from spark.models import Author, ChatMessage, InlineData, Part
from spark.routing import ConversationalTurn, ImageGenerationRequest, Intent, classify
from spark.sessions.store import SessionStore, derive_title
from spark.streaming import StreamingReconciler

logger = logging.getLogger(__name__)


def build_user_message(intent: Intent) -> ChatMessage:
    parts: list[Part] = []
    if isinstance(intent, ImageGenerationRequest):
        parts.append(Part.from_text(intent.source_text or intent.prompt))
    else:
        if intent.attachment is not None:
            parts.append(Part(inline_data=intent.attachment))
        if intent.text:
            parts.append(Part.from_text(intent.text))
    return ChatMessage(author=Author.USER, parts=parts)


class TurnExecutor:
    def __init__(
        self,
        gateway: Gateway,
        store: SessionStore | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.gateway = gateway
        self.store = store
        self.emitter = emitter

    def _emit(self, event) -> None:
        if self.emitter is not None:
            self.emitter.emit(event)

    def send(
        self,
        conversation: Conversation,
        raw_text: str,
        attachment: InlineData | None = None,
        streaming_enabled: bool = False,
    ) -> ChatMessage:
        intent = classify(raw_text, attachment=attachment)
        return self.execute(conversation, intent, streaming_enabled)

    def execute(
        self,
        conversation: Conversation,
        intent: Intent,
        streaming_enabled: bool = False,
    ) -> ChatMessage:
        if not conversation.turn_lock.acquire(blocking=False):
            raise TurnInProgressError("A response is still being generated for this conversation.")
        try:
            return self._run(conversation, intent, streaming_enabled)
        finally:
            conversation.turn_lock.release()

    def _run(
        self,
        conversation: Conversation,
        intent: Intent,
        streaming_enabled: bool,
    ) -> ChatMessage:
        conversation.cancel_requested.clear()
        log = conversation.messages
        baseline = len(log)
        streaming = (
            isinstance(intent, ConversationalTurn)
            and streaming_enabled
            and not intent.has_attachment
        )
        kind = "image" if isinstance(intent, ImageGenerationRequest) else "chat"
        self._emit(TurnStartEvent(kind=kind, streaming=streaming))

        log.append(build_user_message(intent))
        context = SessionContext(
            model=conversation.model,
            history=list(log[:baseline]),
            system_instruction=conversation.system_instruction,
            api_key=conversation.api_key,
        )

        cancelled = False
        try:
            if isinstance(intent, ImageGenerationRequest):
                bot = self._generate_image(intent, conversation.api_key)
                log.append(bot)
            elif streaming:
                reconciler = StreamingReconciler(
                    log, cancel=conversation.cancel_requested, emitter=self.emitter
                )
                result = reconciler.consume(self.gateway.respond_streaming(context, intent))
                bot, cancelled = result.message, result.cancelled
            else:
                parts = self.gateway.respond(context, intent)
                bot = ChatMessage(author=Author.BOT, parts=list(parts))
                log.append(bot)
            created = self._persist(conversation)
        except (Exception, KeyboardInterrupt) as e:
            del log[baseline:]
            logger.warning(f"Turn failed on {conversation.model}: {e}")
            self._emit(TurnFailedEvent(message=str(e), error_type=type(e).__name__))
            raise

        self._emit(TurnFinalizedEvent(message=bot, cancelled=cancelled))
        if created is not None:
            self._emit(
                SessionSavedEvent(
                    session_id=conversation.session_id,
                    title=conversation.title,
                    created=created,
                )
            )
        return bot

    def _generate_image(self, intent: ImageGenerationRequest, api_key: str | None) -> ChatMessage:
        parts = self.gateway.generate_image(intent.prompt, api_key=api_key)
        media = [p for p in parts if p.is_media]
        if not media:
            raise NoMediaReturnedError("No image data returned from API.")
        if len(media) > 1:
            logger.debug(f"Image request returned {len(media)} images, keeping the first")
        return ChatMessage(author=Author.BOT, parts=[media[0]])

    def _persist(self, conversation: Conversation) -> bool | None:
        """Save the conversation; returns whether the session was created, or None without a store."""
        if self.store is None:
            return None
        created = not conversation.is_persisted
        if created:
            conversation.session_id = generate_id()
            conversation.title = derive_title(conversation.messages)
        try:
            self.store.upsert(conversation.to_session(now_millis()))
        except Exception:
            if created:
                conversation.session_id = None
                conversation.title = None
            raise
        if created:
            logger.info(f"Created session {conversation.session_id}: {conversation.title!r}")
        return created
