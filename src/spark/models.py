from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Author(str, Enum):
    USER = "user"
    BOT = "bot"


class InlineData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: str
    mime_type: str = Field(alias="mimeType")

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


class Part(BaseModel):
    """One piece of message content: either text or inline base64 media."""

    model_config = ConfigDict(populate_by_name=True)

    text: str | None = None
    inline_data: InlineData | None = Field(default=None, alias="inlineData")

    @model_validator(mode="after")
    def _one_variant(self) -> "Part":
        if (self.text is None) == (self.inline_data is None):
            raise ValueError("Part must carry exactly one of text or inline_data")
        return self

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(text=text)

    @classmethod
    def from_media(cls, data: str, mime_type: str) -> "Part":
        return cls(inline_data=InlineData(data=data, mime_type=mime_type))

    @property
    def is_text(self) -> bool:
        return self.text is not None

    @property
    def is_media(self) -> bool:
        return self.inline_data is not None


class ChatMessage(BaseModel):
    author: Author
    parts: list[Part] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if p.text is not None)

    @property
    def media(self) -> list[InlineData]:
        return [p.inline_data for p in self.parts if p.inline_data is not None]


class ChatSession(BaseModel):
    id: str
    title: str
    timestamp: int
    messages: list[ChatMessage] = Field(default_factory=list)
    model: str

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
