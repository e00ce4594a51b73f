"""Text payloads returned by the MCP tools.

Tool results travel as a single text content block holding JSON:

    chat:                 {"conversationId", "response", "reasoning"?, "modelId"}
    list_models:          {"models": [{"id", "modelName", "baseUrl"}]}
    conversation_history: {"conversationId", "modelId", "messages": [{"role", "content"}]}

Failures are plain text starting with "Error: " so the calling agent can
read them without parsing.
"""

import json
from typing import Any, Dict

ERROR_PREFIX = "Error: "


def serialize_result(result: Dict[str, Any]) -> str:
    """
    Serialize a tool result to JSON text.

    Keys whose value is None are dropped, so an absent reasoning trace is
    omitted rather than sent as null.
    """
    payload = {key: value for key, value in result.items() if value is not None}
    return json.dumps(payload, ensure_ascii=False)


def serialize_error(error: Any) -> str:
    """Render an exception or message as an error string."""
    return f"{ERROR_PREFIX}{error}"


def is_error(text: str) -> bool:
    return text.startswith(ERROR_PREFIX)


def deserialize_result(text: str) -> Dict[str, Any]:
    """
    Parse a tool result produced by serialize_result().

    Raises:
        ValueError: If ``text`` is an error string
        json.JSONDecodeError: If ``text`` is not valid JSON
    """
    if is_error(text):
        raise ValueError(text[len(ERROR_PREFIX):])
    return json.loads(text)
