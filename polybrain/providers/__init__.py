"""Model provider clients."""

from polybrain.providers.openai_compat import BackendClient, ChatResult

__all__ = ["BackendClient", "ChatResult"]
