import pytest

from common.events import EventEmitter
from spark.config import ChatConfig
from spark.errors import AuthenticationError
from spark.executor import TurnExecutor
from spark.models import Author, ChatMessage, ChatSession, Part
from spark.repl import ChatREPL, render_message
from spark.sessions import MemoryBackend, SessionStore

from conftest import FakeGateway


@pytest.fixture
def repl(tmp_path):
    config = ChatConfig(
        model="gemini/gemini-2.5-flash",
        api_key="key-1",
        history_path=str(tmp_path / "h.json"),
        media_dir=str(tmp_path / "media"),
    )
    store = SessionStore(MemoryBackend())
    executor = TurnExecutor(FakeGateway(reply="pong"), store=store)
    chat = ChatREPL(config, executor, store)
    executor.emitter = EventEmitter(chat.on_event)
    return chat


def test_send_prints_reply_and_persists(repl, capsys):
    repl.send("ping")
    assert "pong" in capsys.readouterr().out
    assert repl.conversation.is_persisted
    assert len(repl.store.list_by_model("gemini/gemini-2.5-flash")) == 1


def test_send_reports_errors_and_keeps_running(repl, capsys):
    repl.send("   ")
    assert "Nothing to send" in capsys.readouterr().out
    assert repl.conversation.messages == []


def test_authentication_failure_suggests_key(repl, capsys):
    repl.executor.gateway = FakeGateway(error=AuthenticationError("API key not valid"))
    repl.send("hi")
    assert "/key" in capsys.readouterr().out

    repl.commands.handle("key", "key-2")
    assert repl.conversation.api_key == "key-2"
    assert repl.config.api_key == "key-2"


def test_stream_toggle(repl):
    repl.commands.handle("stream", "on")
    assert repl.config.stream is True
    repl.commands.handle("stream", "")
    assert repl.config.stream is False


def test_attach_and_detach(repl, tmp_path, capsys):
    path = tmp_path / "a.png"
    path.write_bytes(b"png")
    repl.commands.handle("attach", str(path))
    assert repl.attachment.mime_type == "image/png"

    repl.commands.handle("detach", "")
    assert repl.attachment is None

    repl.commands.handle("attach", str(tmp_path / "missing.png"))
    assert "Attachment not found" in capsys.readouterr().out


def test_attachment_is_consumed_by_next_send(repl, tmp_path):
    path = tmp_path / "a.png"
    path.write_bytes(b"png")
    repl.commands.handle("attach", str(path))

    repl.send("what is it")

    assert repl.attachment is None
    assert repl.conversation.messages[0].parts[0].is_media


def test_load_only_matches_current_model(repl):
    repl.store.upsert(
        ChatSession(
            id="pro1",
            title="Pro chat",
            timestamp=1,
            model="gemini/gemini-2.5-pro",
            messages=[ChatMessage(author=Author.USER, parts=[Part.from_text("x")])],
        )
    )
    assert repl.load_session("pro1") is False

    repl.send("hello")
    saved = repl.conversation.session_id
    repl.new_conversation()
    assert repl.load_session(saved) is True
    assert repl.conversation.session_id == saved
    assert len(repl.conversation.messages) == 2


def test_delete_current_starts_fresh(repl):
    repl.send("hello")
    saved = repl.conversation.session_id
    repl.commands.handle("delete", saved)
    assert repl.store.get(saved) is None
    assert repl.conversation.session_id is None


def test_quit_stops_loop(repl):
    assert repl.commands.handle("quit", "") is False


def test_render_message_saves_media_only_when_asked(tmp_path):
    message = ChatMessage(author=Author.BOT, parts=[Part.from_media("aW1n", "image/png")])
    assert render_message(message) == ["[image/png]"]
    lines = render_message(message, tmp_path)
    assert "saved to" in lines[0]
    assert (tmp_path / "generated-image.png").exists()
