from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from common.jsonio import atomic_write_json, load_json


class KeyValueBackend(Protocol):
    def load(self) -> dict: ...

    def save(self, mapping: dict) -> None: ...


class JsonFileBackend:
    """The whole history as one JSON object in a single file."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> dict:
        data = load_json(self.path)
        return data if data is not None else {}

    def save(self, mapping: dict) -> None:
        atomic_write_json(self.path, mapping)

    def __repr__(self) -> str:
        return f"JsonFileBackend({str(self.path)!r})"


class MemoryBackend:
    """Keeps the history as a serialized blob so readers never share objects with writers."""

    def __init__(self, initial: dict | None = None):
        self._blob = json.dumps(initial or {})

    def load(self) -> dict:
        return json.loads(self._blob)

    def save(self, mapping: dict) -> None:
        self._blob = json.dumps(mapping)
