import os
from dataclasses import dataclass, field
from pathlib import Path

from spark.errors import ConfigError

MODEL_ALIASES = {
    "flash": "gemini/gemini-2.5-flash",
    "lite": "gemini/gemini-flash-lite-latest",
    "pro": "gemini/gemini-2.5-pro",
    "imagen": "gemini/imagen-4.0-generate-001",
    "4o": "gpt-4o",
    "4o-mini": "gpt-4o-mini",
    "dall-e": "dall-e-3",
}

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


def resolve_model_alias(name: str) -> str:
    return MODEL_ALIASES.get(name.lower(), name)


def get_optional_env(name: str, default: str) -> str:
    return os.environ.get(name, default)


def api_key_from_env(names: tuple[str, ...] = API_KEY_ENV_VARS) -> str | None:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def _default_history_path() -> str:
    return str(Path.home() / ".spark" / "chat_history.json")


def _default_media_dir() -> str:
    return str(Path.home() / ".spark" / "media")


@dataclass
class ChatConfig:
    model: str = "gemini/gemini-2.5-flash"
    stream: bool = False
    system_instruction: str | None = None
    image_model: str = field(
        default_factory=lambda: resolve_model_alias(
            get_optional_env("SPARK_IMAGE_MODEL", "imagen")
        )
    )
    history_path: str = field(
        default_factory=lambda: get_optional_env("SPARK_HISTORY_PATH", _default_history_path())
    )
    media_dir: str = field(
        default_factory=lambda: get_optional_env("SPARK_MEDIA_DIR", _default_media_dir())
    )
    api_key: str | None = field(default_factory=api_key_from_env)
    temperature: float | None = None
    max_tokens: int | None = None

    def validate(self) -> None:
        if not self.model.strip():
            raise ConfigError("model must not be empty")
        if not self.image_model.strip():
            raise ConfigError("image model must not be empty")
        if self.temperature is not None and not 0.0 <= self.temperature <= 2.0:
            raise ConfigError(f"temperature must be between 0 and 2, got {self.temperature}")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ConfigError(f"max_tokens must be positive, got {self.max_tokens}")
