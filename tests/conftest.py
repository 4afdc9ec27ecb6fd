import pytest

from spark.conversation import Conversation
from spark.errors import GatewayError
from spark.executor import TurnExecutor
from spark.models import Part
from spark.sessions import MemoryBackend, SessionStore


class FakeGateway:
    def __init__(
        self,
        reply: str = "ok",
        fragments: list[str] | None = None,
        image_parts: list[Part] | None = None,
        error: Exception | None = None,
        fail_after: int | None = None,
    ):
        self.reply = reply
        self.fragments = fragments if fragments is not None else ["o", "k"]
        self.image_parts = image_parts if image_parts is not None else [Part.from_media("aW1n", "image/png")]
        self.error = error
        self.fail_after = fail_after
        self.calls: list[tuple] = []
        self.stream_closed = False

    def respond(self, context, turn):
        self.calls.append(("respond", context, turn))
        if self.error:
            raise self.error
        return [Part.from_text(self.reply)]

    def respond_streaming(self, context, turn):
        self.calls.append(("stream", context, turn))
        if self.error:
            raise self.error
        return self._stream()

    def _stream(self):
        try:
            for i, fragment in enumerate(self.fragments):
                if self.fail_after is not None and i == self.fail_after:
                    raise GatewayError("connection reset")
                yield fragment
        finally:
            self.stream_closed = True

    def generate_image(self, prompt, *, api_key=None):
        self.calls.append(("image", prompt, api_key))
        if self.error:
            raise self.error
        return list(self.image_parts)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def store():
    return SessionStore(MemoryBackend())


@pytest.fixture
def conversation():
    return Conversation("gemini/gemini-2.5-flash", system_instruction="Be brief.", api_key="key-1")


@pytest.fixture
def executor(gateway, store):
    return TurnExecutor(gateway, store=store)
