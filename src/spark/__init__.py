"""Spark: multi-turn chat with generative models, with persistent sessions."""

from spark.conversation import Conversation
from spark.errors import (
    AuthenticationError,
    EmptyPromptError,
    GatewayError,
    NoMediaReturnedError,
    SparkError,
    TurnInProgressError,
)
from spark.executor import TurnExecutor
from spark.gateway import Gateway, LiteLLMGateway, SessionContext
from spark.models import Author, ChatMessage, ChatSession, InlineData, Part
from spark.routing import ConversationalTurn, ImageGenerationRequest, classify
from spark.sessions import JsonFileBackend, MemoryBackend, SessionStore, derive_title

__all__ = [
    "Author",
    "AuthenticationError",
    "ChatMessage",
    "ChatSession",
    "Conversation",
    "ConversationalTurn",
    "EmptyPromptError",
    "Gateway",
    "GatewayError",
    "ImageGenerationRequest",
    "InlineData",
    "JsonFileBackend",
    "LiteLLMGateway",
    "MemoryBackend",
    "NoMediaReturnedError",
    "Part",
    "SessionContext",
    "SessionStore",
    "SparkError",
    "TurnExecutor",
    "TurnInProgressError",
    "classify",
    "derive_title",
]
