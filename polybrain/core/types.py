"""Value types for conversations and their messages."""

import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Literal

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class Message:
    """A single role-tagged chat message."""
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class Conversation:
    """
    A growing message history bound to one model.

    ``messages`` is only mutated through ConversationStore while ``lock`` is
    held. Readers that need a consistent copy go through the store as well.
    """
    id: str
    model_id: str
    messages: List[Message] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )
