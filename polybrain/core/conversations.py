"""In-memory conversation storage for the Polybrain server.

Conversations live only as long as the serving process. There is no
persistence and no delete operation.

Concurrency:
- The registry dict is read without locking; inserts take a short
  registry lock so concurrent creates never race on the same slot.
- Each Conversation carries its own lock. append() and the snapshot taken
  by clone() and history() hold it, so a clone sees either all of an
  append or none of it. Unrelated conversations never contend.
"""

import logging
import threading
import time
import uuid
from typing import Dict, List

from polybrain.core.configs import DEFAULT_TRUNCATE_LIMIT
from polybrain.core.errors import ConversationNotFound
from polybrain.core.truncation import truncate
from polybrain.core.types import Conversation, Message, Role

logger = logging.getLogger(__name__)


class ConversationStore:
    """
    Registry of conversations keyed by an opaque uuid4 identifier.

    Example:
        >>> store = ConversationStore(truncate_limit=500)
        >>> cid = store.create("gpt-4o")
        >>> store.append(cid, "user", "hi")
        >>> [m.content for m in store.history(cid)]
        ['hi']
    """

    def __init__(self, truncate_limit: int = DEFAULT_TRUNCATE_LIMIT):
        self.truncate_limit = truncate_limit
        self._conversations: Dict[str, Conversation] = {}
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._conversations)

    def create(self, model_id: str) -> str:
        """Create an empty conversation bound to ``model_id`` and return its id."""
        conversation = self._insert(model_id, [])
        logger.debug("Created conversation %s for model %s", conversation.id, model_id)
        return conversation.id

    def get(self, conversation_id: str) -> Conversation:
        """
        Return the conversation for ``conversation_id``.

        Raises:
            ConversationNotFound: If the id is unknown
        """
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation

    def append(self, conversation_id: str, role: Role, content: str) -> None:
        """
        Append a message and advance ``updated_at``.

        No size limit is enforced here; bounding happens at read time.

        Raises:
            ConversationNotFound: If the id is unknown
        """
        conversation = self.get(conversation_id)
        message = Message(role=role, content=content)
        with conversation.lock:
            conversation.messages.append(message)
            conversation.updated_at = max(conversation.updated_at, time.time())
            count = len(conversation.messages)

        logger.debug(
            "Appended %s message to %s (%d chars, %d total)",
            role, conversation_id, len(content), count,
        )

    def messages(self, conversation_id: str) -> List[Message]:
        """Return a consistent copy of the full, untruncated message list."""
        conversation = self.get(conversation_id)
        with conversation.lock:
            return list(conversation.messages)

    def history(self, conversation_id: str) -> List[Message]:
        """
        Return the truncated view of a conversation's messages.

        The view is recomputed on every call and never written back.

        Raises:
            ConversationNotFound: If the id is unknown
        """
        return truncate(self.messages(conversation_id), self.truncate_limit)

    def clone(self, source_id: str, new_model_id: str) -> str:
        """
        Copy a conversation's full history into a new conversation.

        The copy is taken under the source's lock, so it matches the history
        at one instant. The source conversation is left untouched.

        Raises:
            ConversationNotFound: If ``source_id`` is unknown
        """
        source = self.get(source_id)
        with source.lock:
            snapshot = list(source.messages)
            old_model_id = source.model_id

        # Messages are frozen dataclasses, so a shallow list copy is a value copy.
        conversation = self._insert(new_model_id, snapshot)

        logger.info(
            "Cloned conversation %s -> %s (%s -> %s, %d messages)",
            source_id, conversation.id, old_model_id, new_model_id, len(snapshot),
        )
        return conversation.id

    def _insert(self, model_id: str, messages: List[Message]) -> Conversation:
        with self._registry_lock:
            conversation_id = str(uuid.uuid4())
            while conversation_id in self._conversations:
                conversation_id = str(uuid.uuid4())
            conversation = Conversation(
                id=conversation_id,
                model_id=model_id,
                messages=messages,
            )
            self._conversations[conversation_id] = conversation
        return conversation
