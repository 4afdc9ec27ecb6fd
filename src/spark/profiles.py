from __future__ import annotations

from dataclasses import dataclass, replace

from spark.config import ChatConfig
from spark.errors import ConfigError

DEFAULT_SYSTEM_INSTRUCTION = (
    "When any user asks who developed you or who created you, you must answer "
    "'I am developed by Santosh Pandey'. For all other questions, be a helpful AI assistant."
)


@dataclass(frozen=True)
class ChatProfile:
    name: str
    label: str
    description: str
    model: str
    stream: bool = False
    system_instruction: str | None = DEFAULT_SYSTEM_INSTRUCTION

    def apply(self, config: ChatConfig) -> ChatConfig:
        return replace(
            config,
            model=self.model,
            stream=self.stream,
            system_instruction=self.system_instruction,
        )


PROFILES: dict[str, ChatProfile] = {
    "flash": ChatProfile(
        name="flash",
        label="Spark Flash",
        description="Quick and efficient for everyday tasks.",
        model="gemini/gemini-2.5-flash",
    ),
    "lite": ChatProfile(
        name="lite",
        label="Spark Lite",
        description="For low-latency, streaming responses.",
        model="gemini/gemini-flash-lite-latest",
        stream=True,
    ),
    "pro": ChatProfile(
        name="pro",
        label="Spark 2.5 Pro",
        description="The most capable model for complex reasoning.",
        model="gemini/gemini-2.5-pro",
    ),
}

DEFAULT_PROFILE = "flash"


def list_profiles() -> list[str]:
    return sorted(PROFILES.keys())


def get_profile(name: str) -> ChatProfile:
    if name not in PROFILES:
        available = ", ".join(list_profiles())
        raise ConfigError(f"Unknown profile: {name}. Available: {available}")
    return PROFILES[name]
