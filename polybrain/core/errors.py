"""Exception types shared across Polybrain.

Tool handlers catch PolybrainError and render it back to the caller;
the CLI maps StartupTimeout, PortReclaimError and ConfigError to exit codes.
"""


class PolybrainError(Exception):
    """Base class for all Polybrain errors."""


class ConversationNotFound(PolybrainError):
    """Raised when a conversation id is unknown to the store."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class ModelNotConfigured(PolybrainError):
    """Raised when a tool call names a model id missing from the config."""

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Model not configured: {model_id}")


class BackendError(PolybrainError):
    """Transport, HTTP status or empty-content failure from a model provider."""


class StartupTimeout(PolybrainError):
    """The supervised server never answered its health probe."""

    def __init__(self, port: int, attempts: int):
        self.port = port
        self.attempts = attempts
        super().__init__(
            f"Server on port {port} did not become healthy after {attempts} attempts"
        )


class PortReclaimError(PolybrainError):
    """Listeners on a port could not be determined or terminated."""


class ConfigError(PolybrainError):
    """Configuration is missing or invalid."""
