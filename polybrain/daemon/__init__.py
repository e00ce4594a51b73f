"""Background server for Polybrain.

Architecture:
- ProcessSupervisor: makes sure one server listens on the configured port,
  spawning a detached one if needed, and can reclaim the port
- PolybrainServer: long-running MCP server holding conversation state,
  with a /health route for liveness probes
- ToolRouter: chat, list_models and conversation_history tool logic

Heavy imports (mcp, uvicorn) are deferred to PolybrainServer so the
launcher's probe path stays light.
"""

from polybrain.daemon.supervisor import ProcessSupervisor, SupervisorState
from polybrain.daemon.protocol import (
    serialize_result,
    serialize_error,
    deserialize_result,
)

__all__ = [
    "ProcessSupervisor",
    "SupervisorState",
    "serialize_result",
    "serialize_error",
    "deserialize_result",
]
