"""Core building blocks: conversation state, truncation, config and errors."""

from polybrain.core.conversations import ConversationStore
from polybrain.core.errors import (
    BackendError,
    ConfigError,
    ConversationNotFound,
    ModelNotConfigured,
    PolybrainError,
    PortReclaimError,
    StartupTimeout,
)
from polybrain.core.truncation import TRUNCATION_MARKER, truncate
from polybrain.core.types import Conversation, Message

__all__ = [
    "BackendError",
    "ConfigError",
    "Conversation",
    "ConversationNotFound",
    "ConversationStore",
    "Message",
    "ModelNotConfigured",
    "PolybrainError",
    "PortReclaimError",
    "StartupTimeout",
    "TRUNCATION_MARKER",
    "truncate",
]
