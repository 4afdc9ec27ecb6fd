import json

import pytest

from spark.errors import StoreError
from spark.models import Author, ChatMessage, ChatSession, Part
from spark.sessions import JsonFileBackend, MemoryBackend, SessionStore, derive_title


def _user(*parts):
    return ChatMessage(author=Author.USER, parts=list(parts))


def _bot(text):
    return ChatMessage(author=Author.BOT, parts=[Part.from_text(text)])


def _session(session_id="s1", model="gemini/gemini-2.5-flash", timestamp=1_000, title="Hello"):
    return ChatSession(
        id=session_id,
        title=title,
        timestamp=timestamp,
        model=model,
        messages=[
            _user(Part.from_media("aGk=", "image/png"), Part.from_text("what is this")),
            _bot("a picture"),
        ],
    )


class TestDeriveTitle:
    def test_first_five_words(self):
        messages = [_user(Part.from_text("Fix the bug in my code please"))]
        assert derive_title(messages) == "Fix the bug in my"

    def test_is_deterministic(self):
        messages = [_user(Part.from_text("Fix the bug in my code please"))]
        assert derive_title(messages) == derive_title(messages) == SessionStore.derive_title(messages)

    def test_slashes_removed(self):
        assert derive_title([_user(Part.from_text("/usr/bin is on my path"))]) == "usrbin is on my path"

    def test_only_slashes_is_untitled(self):
        assert derive_title([_user(Part.from_text("/ // /"))]) == "Untitled Chat"

    def test_uses_first_user_message(self):
        messages = [_bot("greetings"), _user(Part.from_text("short")), _user(Part.from_text("later"))]
        assert derive_title(messages) == "short"

    def test_image_only_message(self):
        assert derive_title([_user(Part.from_media("aGk=", "image/jpeg"))]) == "Chat with an image"

    def test_text_wins_over_image(self):
        messages = [_user(Part.from_media("aGk=", "image/png"), Part.from_text("describe it"))]
        assert derive_title(messages) == "describe it"

    def test_non_image_media_is_new_chat(self):
        assert derive_title([_user(Part.from_media("aGk=", "application/pdf"))]) == "New Chat"

    def test_no_user_message(self):
        assert derive_title([]) == "New Chat"
        assert derive_title([_bot("hi")]) == "New Chat"


@pytest.fixture(params=["memory", "file"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return SessionStore(MemoryBackend())
    return SessionStore(JsonFileBackend(tmp_path / "history.json"))


class TestSessionStore:
    def test_upsert_then_get_round_trips(self, any_store):
        session = _session()
        any_store.upsert(session)
        assert any_store.get("s1") == session

    def test_get_missing(self, any_store):
        assert any_store.get("nope") is None

    def test_delete_then_get(self, any_store):
        any_store.upsert(_session())
        any_store.delete("s1")
        assert any_store.get("s1") is None

    def test_delete_absent_is_noop(self, any_store):
        any_store.delete("ghost")
        assert any_store.list_all() == []

    def test_upsert_replaces_wholesale(self, any_store):
        any_store.upsert(_session())
        replacement = ChatSession(
            id="s1", title="Other", timestamp=5_000, model="gemini/gemini-2.5-flash", messages=[]
        )
        any_store.upsert(replacement)
        assert any_store.get("s1") == replacement

    def test_model_cannot_change(self, any_store):
        any_store.upsert(_session())
        with pytest.raises(StoreError):
            any_store.upsert(_session(model="gemini/gemini-2.5-pro"))
        assert any_store.get("s1").model == "gemini/gemini-2.5-flash"

    def test_list_by_model_filters_and_sorts(self, any_store):
        any_store.upsert(_session("old", timestamp=1_000))
        any_store.upsert(_session("new", timestamp=3_000))
        any_store.upsert(_session("mid", timestamp=2_000))
        any_store.upsert(_session("pro", model="gemini/gemini-2.5-pro", timestamp=9_000))

        assert [s.id for s in any_store.list_by_model("gemini/gemini-2.5-flash")] == ["new", "mid", "old"]
        assert [s.id for s in any_store.list_by_model("gemini/gemini-2.5-pro")] == ["pro"]
        assert [s.id for s in any_store.list_all()] == ["pro", "new", "mid", "old"]

    def test_stored_copy_is_isolated(self, any_store):
        session = _session()
        any_store.upsert(session)
        session.messages.append(_bot("mutated later"))
        assert len(any_store.get("s1").messages) == 2


class TestJsonFileBackend:
    def test_survives_restart(self, tmp_path):
        path = tmp_path / "history.json"
        SessionStore(JsonFileBackend(path)).upsert(_session())

        reopened = SessionStore(JsonFileBackend(path))
        assert reopened.get("s1") == _session()

    def test_file_uses_original_field_names(self, tmp_path):
        path = tmp_path / "history.json"
        SessionStore(JsonFileBackend(path)).upsert(_session())

        data = json.loads(path.read_text(encoding="utf-8"))
        first_part = data["s1"]["messages"][0]["parts"][0]
        assert first_part == {"inlineData": {"data": "aGk=", "mimeType": "image/png"}}
        assert data["s1"]["messages"][1]["author"] == "bot"

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("{not json", encoding="utf-8")
        store = SessionStore(JsonFileBackend(path))
        assert store.list_all() == []
        assert store.get("s1") is None

    def test_undecodable_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_bytes(b'{"a": "\xff\xfe"}')
        store = SessionStore(JsonFileBackend(path))
        assert store.list_all() == []

        store.upsert(_session())
        assert store.get("s1") == _session()

    def test_invalid_record_is_skipped_but_kept(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text(json.dumps({"bad": {"id": "bad"}}), encoding="utf-8")
        store = SessionStore(JsonFileBackend(path))

        store.upsert(_session())

        assert [s.id for s in store.list_all()] == ["s1"]
        assert store.get("bad") is None
        assert "bad" in json.loads(path.read_text(encoding="utf-8"))

    def test_no_temp_files_left_behind(self, tmp_path):
        store = SessionStore(JsonFileBackend(tmp_path / "history.json"))
        store.upsert(_session("a"))
        store.upsert(_session("b"))
        assert sorted(p.name for p in tmp_path.iterdir()) == ["history.json"]


class _BrokenBackend(MemoryBackend):
    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, mapping):
        if self.fail:
            raise OSError("disk full")
        super().save(mapping)


def test_failed_write_keeps_existing_mapping():
    backend = _BrokenBackend()
    store = SessionStore(backend)
    store.upsert(_session("keep"))

    backend.fail = True
    with pytest.raises(StoreError):
        store.upsert(_session("lost"))
    with pytest.raises(StoreError):
        store.delete("keep")

    assert [s.id for s in store.list_all()] == ["keep"]


def test_memory_backend_returns_fresh_copies():
    backend = MemoryBackend({"a": {"x": 1}})
    first = backend.load()
    first["a"]["x"] = 2
    assert backend.load() == {"a": {"x": 1}}
