"""Classify raw user input into a turn intent."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TypeAlias

from spark.errors import EmptyInputError, EmptyPromptError
from spark.models import InlineData

SLASH_GENERATE = "/generate"
GENERATE_IMAGE = "generate image"


@dataclass(frozen=True, slots=True)
class ImageGenerationRequest:
    prompt: str
    source_text: str = field(default="", compare=False)


@dataclass(frozen=True, slots=True)
class ConversationalTurn:
    text: str
    attachment: InlineData | None = None

    @property
    def has_attachment(self) -> bool:
        return self.attachment is not None


Intent: TypeAlias = ImageGenerationRequest | ConversationalTurn


def _image_prompt(text: str) -> str | None:
    lowered = text.lower()
    # The trailing space of "/generate " is lost to trimming on a bare command.
    if lowered == SLASH_GENERATE or lowered.startswith(SLASH_GENERATE + " "):
        return text[len(SLASH_GENERATE):].strip()
    if lowered.startswith(GENERATE_IMAGE):
        prompt = text[len(GENERATE_IMAGE):].strip()
        if prompt.lower().startswith("of "):
            prompt = prompt[3:].strip()
        return prompt
    return None


def classify(
    raw_text: str,
    has_attachment: bool = False,
    attachment: InlineData | None = None,
) -> Intent:
    text = (raw_text or "").strip()
    has_attachment = has_attachment or attachment is not None

    if not has_attachment:
        prompt = _image_prompt(text)
        if prompt is not None:
            if not prompt:
                raise EmptyPromptError("Please provide a prompt to generate an image.")
            return ImageGenerationRequest(prompt=prompt, source_text=text)
        if not text:
            raise EmptyInputError("Nothing to send: enter a message or attach a file.")

    return ConversationalTurn(text=text, attachment=attachment)
