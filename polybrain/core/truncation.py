"""Read-time truncation of conversation history."""

from typing import List, Sequence

from polybrain.core.types import Message

# Clients may pattern-match on this text; keep it stable.
TRUNCATION_MARKER = "[... conversation history truncated to save context ...]"


def truncate(messages: Sequence[Message], limit: int) -> List[Message]:
    """
    Reduce a message sequence to a bounded view.

    Keeps the first and last ``limit // 2`` messages with a single assistant
    marker between them. A ``limit`` of zero or less disables truncation.

    The result is a new list; the input is never modified.
    """
    if limit <= 0 or len(messages) <= limit:
        return list(messages)

    kept = limit // 2
    marker = Message(role="assistant", content=TRUNCATION_MARKER)
    head = list(messages[:kept])
    tail = list(messages[len(messages) - kept:])
    return head + [marker] + tail
