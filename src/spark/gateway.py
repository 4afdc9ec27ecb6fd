"""Model-serving boundary.

The turn executor only depends on the :class:`Gateway` protocol. The
:class:`LiteLLMGateway` implementation maps the three capabilities onto
litellm chat completions and image generation, and translates library
failures into :class:`~spark.errors.GatewayError` /
:class:`~spark.errors.AuthenticationError`.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Protocol

import httpx
import litellm

from common import llm
from spark.errors import AuthenticationError, GatewayError, NoMediaReturnedError
from spark.models import Author, ChatMessage, InlineData, Part
from spark.routing import ConversationalTurn

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/png"

_AUTH_MARKERS = (
    "api key not valid",
    "invalid api key",
    "incorrect api key",
    "api_key_invalid",
    "requested entity was not found",
    "missing api key",
    "no api key",
    "unauthorized",
    "permission denied",
)


@dataclass(frozen=True)
class SessionContext:
    model: str
    history: list[ChatMessage] = field(default_factory=list)
    system_instruction: str | None = None
    api_key: str | None = None


class Gateway(Protocol):
    def respond(self, context: SessionContext, turn: ConversationalTurn) -> list[Part]: ...

    def respond_streaming(
        self, context: SessionContext, turn: ConversationalTurn
    ) -> Iterator[str]: ...

    def generate_image(self, prompt: str, *, api_key: str | None = None) -> list[Part]: ...


def looks_like_auth_failure(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _AUTH_MARKERS)


def translate_error(exc: Exception, model: str | None = None) -> GatewayError:
    if isinstance(exc, GatewayError):
        return exc
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, litellm.exceptions.AuthenticationError) or looks_like_auth_failure(message):
        return AuthenticationError(
            "API key not valid or found. Please provide a valid API key and try again.",
            model=model,
        )
    return GatewayError(message, model=model)


def _media_url(media: InlineData) -> str:
    return f"data:{media.mime_type};base64,{media.data}"


def _user_content(parts: list[Part]) -> str | list[dict]:
    if all(p.is_text for p in parts):
        return "".join(p.text or "" for p in parts)
    content: list[dict] = []
    for part in parts:
        if part.text:
            content.append({"type": "text", "text": part.text})
        elif part.inline_data is not None:
            content.append({"type": "image_url", "image_url": {"url": _media_url(part.inline_data)}})
    return content


def build_messages(context: SessionContext, turn: ConversationalTurn) -> list[dict]:
    messages: list[dict] = []
    if context.system_instruction:
        messages.append({"role": "system", "content": context.system_instruction})

    for msg in context.history:
        if msg.author == Author.USER:
            content = _user_content(msg.parts)
            if content:
                messages.append({"role": "user", "content": content})
        else:
            # Assistant turns can only carry text back to the provider.
            text = msg.text
            if text:
                messages.append({"role": "assistant", "content": text})

    current: list[Part] = []
    if turn.text:
        current.append(Part.from_text(turn.text))
    if turn.attachment is not None:
        current.append(Part(inline_data=turn.attachment))
    messages.append({"role": "user", "content": _user_content(current)})
    return messages


class LiteLLMGateway:
    def __init__(
        self,
        image_model: str,
        *,
        edit_model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        completion_fn: Callable[..., Any] = llm.completion,
        image_fn: Callable[..., Any] = llm.image_generation,
        image_edit_fn: Callable[..., Any] = llm.image_edit,
        http_client: httpx.Client | None = None,
    ):
        self.image_model = image_model
        self.edit_model = edit_model or image_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._completion = completion_fn
        self._image = image_fn
        self._image_edit = image_edit_fn
        self._http = http_client

    def respond(self, context: SessionContext, turn: ConversationalTurn) -> list[Part]:
        messages = build_messages(context, turn)
        logger.debug(f"Buffered request to {context.model} with {len(messages)} messages")
        try:
            response = self._completion(
                model=context.model,
                messages=messages,
                stream=False,
                api_key=context.api_key,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            content = response.choices[0].message.content
        except Exception as e:
            raise translate_error(e, context.model) from e
        return [Part.from_text(content or "")]

    def respond_streaming(
        self, context: SessionContext, turn: ConversationalTurn
    ) -> Iterator[str]:
        messages = build_messages(context, turn)
        logger.debug(f"Streaming request to {context.model} with {len(messages)} messages")
        try:
            stream = self._completion(
                model=context.model,
                messages=messages,
                stream=True,
                api_key=context.api_key,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            raise translate_error(e, context.model) from e
        return self._fragments(stream, context.model)

    def _fragments(self, stream: Any, model: str) -> Iterator[str]:
        try:
            yield from llm.iter_stream_text(stream)
        except Exception as e:
            raise translate_error(e, model) from e
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()

    def generate_image(self, prompt: str, *, api_key: str | None = None) -> list[Part]:
        logger.info(f"Generating image with {self.image_model}")
        try:
            response = self._image(prompt=prompt, model=self.image_model, api_key=api_key)
        except Exception as e:
            raise translate_error(e, self.image_model) from e
        return self._image_parts(response, self.image_model)

    def edit_image(
        self, image: InlineData, prompt: str, *, api_key: str | None = None
    ) -> Part:
        logger.info(f"Editing image with {self.edit_model}")
        try:
            response = self._image_edit(
                image=base64.b64decode(image.data),
                prompt=prompt,
                model=self.edit_model,
                mime_type=image.mime_type,
                api_key=api_key,
            )
        except Exception as e:
            raise translate_error(e, self.edit_model) from e
        parts = self._image_parts(response, self.edit_model)
        if not parts:
            raise NoMediaReturnedError("No image data returned from API.")
        return parts[0]

    def _image_parts(self, response: Any, model: str) -> list[Part]:
        parts: list[Part] = []
        for item in getattr(response, "data", None) or []:
            b64 = getattr(item, "b64_json", None)
            if b64:
                parts.append(Part.from_media(b64, DEFAULT_IMAGE_MIME))
                continue
            url = getattr(item, "url", None)
            if url:
                parts.append(self._download(url, model))
        return parts

    def _download(self, url: str, model: str) -> Part:
        client = self._http or httpx.Client(timeout=30.0, follow_redirects=True)
        try:
            resp = client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise GatewayError(f"Failed to fetch generated image: {e}", model=model) from e
        finally:
            if self._http is None:
                client.close()
        mime_type = resp.headers.get("content-type", DEFAULT_IMAGE_MIME).split(";")[0].strip()
        return Part.from_media(base64.b64encode(resp.content).decode("ascii"), mime_type)
