"""Chat completion client for OpenAI-compatible endpoints."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, TYPE_CHECKING

from polybrain.core.client_cache import get_cached_client
from polybrain.core.configs import DEFAULT_TIMEOUT, ModelConfig
from polybrain.core.errors import BackendError
from polybrain.core.types import Message

if TYPE_CHECKING:
    from openai import OpenAI

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    content: str
    reasoning: Optional[str] = None


def reasoning_params(provider: Optional[str]) -> Dict[str, Any]:
    """
    Request parameters asking a provider for an extended-thinking trace.

    - openrouter: unified ``reasoning`` object
    - openai: ``reasoning_effort`` for o-series models
    - unset: generic ``reasoning: "enabled"`` flag understood by most proxies
    """
    if provider == "openrouter":
        return {"extra_body": {"reasoning": {"enabled": True}}}
    if provider == "openai":
        return {"reasoning_effort": "medium"}
    return {"extra_body": {"reasoning": "enabled"}}


def _extract_reasoning(message: Any) -> Optional[str]:
    # Reasoning fields are not part of the SDK schema; they show up as extras
    for attr in ("reasoning", "reasoning_content"):
        value = getattr(message, attr, None)
        if value is None:
            extra = getattr(message, "model_extra", None) or {}
            value = extra.get(attr)
        if value:
            return str(value)
    return None


class BackendClient:
    """
    Stateless wrapper issuing one chat completion per call.

    There is no retry logic here: any transport failure, non-2xx response or
    empty completion is raised as BackendError straight away.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        provider: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional["OpenAI"] = None,
    ):
        """
        Initialize the backend client.

        Args:
            api_key: API key (not needed if client is provided)
            base_url: OpenAI-compatible endpoint base URL
            provider: "openai", "openrouter" or None; selects the reasoning convention
            timeout: Per-request timeout in seconds
            client: Pre-initialized OpenAI client (tests)
        """
        if client is not None:
            self.client = client
        elif api_key:
            self.client = get_cached_client(api_key, base_url, timeout)
        else:
            raise ValueError("Either api_key or client must be provided")

        self.base_url = base_url
        self.provider = provider

    @classmethod
    def from_config(cls, model: ModelConfig) -> "BackendClient":
        return cls(
            api_key=model.api_key,
            base_url=model.base_url,
            provider=model.provider,
            timeout=model.timeout,
        )

    def send(
        self,
        model_name: str,
        messages: Sequence[Message],
        reasoning: bool = False,
    ) -> ChatResult:
        """
        Send the conversation to the backend and return its reply.

        Args:
            model_name: Backend model name (not the config id)
            messages: Conversation history, oldest first
            reasoning: Ask for an extended-thinking trace when supported

        Returns:
            ChatResult; ``reasoning`` is None when the backend sent no trace

        Raises:
            BackendError: On transport/HTTP failure or empty content
        """
        from openai import OpenAIError

        logger.debug(
            "Sending chat request model=%s messages=%d reasoning=%s",
            model_name, len(messages), reasoning,
        )

        kwargs: Dict[str, Any] = {
            "model": model_name,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if reasoning:
            kwargs.update(reasoning_params(self.provider))

        try:
            response = self.client.chat.completions.create(**kwargs)
        except OpenAIError as e:
            logger.error("Backend request failed for %s: %s", model_name, e)
            raise BackendError(f"Failed to get response from {model_name}: {e}") from e

        choices = getattr(response, "choices", None) or []
        message = choices[0].message if choices else None
        content = getattr(message, "content", None) if message is not None else None
        if not content:
            raise BackendError(f"No content in response from {model_name}")

        usage = getattr(response, "usage", None)
        logger.debug(
            "Received response model=%s tokens=%s",
            model_name, getattr(usage, "total_tokens", None),
        )

        trace = _extract_reasoning(message) if reasoning else None
        return ChatResult(content=content, reasoning=trace)

    def validate_model(self, model_name: str) -> bool:
        """Probe a model with a one-token request; False if it is unreachable."""
        from openai import OpenAIError

        try:
            self.client.chat.completions.create(
                model=model_name,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=1,
            )
            return True
        except OpenAIError as e:
            logger.warning("Model validation failed for %s: %s", model_name, e)
            return False
