"""Polybrain MCP server.

This module implements the long-running server process that:
1. Holds conversation state in memory for its whole lifetime
2. Serves the MCP tools over streamable HTTP at /mcp
3. Answers GET /health for the launcher's liveness probe

Usage:
    python -m polybrain.daemon.server [--port PORT] [--host HOST]

    Or use the CLI:
    polybrain serve
"""

import logging
import socket
import sys
import time
from typing import Any, Dict, Optional

from polybrain.core.configs import ServerConfig
from polybrain.core.conversations import ConversationStore
from polybrain.daemon.supervisor import DEFAULT_HOST, HEALTH_PATH
from polybrain.daemon.tools import ToolRouter, register_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "polybrain"
MCP_PATH = "/mcp"


def is_port_in_use(port: int, host: str = DEFAULT_HOST) -> bool:
    """True if something is already bound to ``host:port``."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return True
    return False


class PolybrainServer:
    """
    Owns the conversation store and the MCP server built around it.

    The same object backs both transports: streamable HTTP for the
    supervised background server and stdio for the launcher.
    """

    def __init__(
        self,
        config: ServerConfig,
        port: Optional[int] = None,
        host: str = DEFAULT_HOST,
        router: Optional[ToolRouter] = None,
    ):
        """
        Initialize server.

        Args:
            config: Loaded server configuration
            port: Port override (default: config.http_port)
            host: Interface to bind for HTTP
            router: Pre-built tool router (tests)
        """
        self.config = config
        self.port = port or config.http_port
        self.host = host
        self.start_time = time.time()
        self.store = router.store if router else ConversationStore(config.truncate_limit)
        self.router = router or ToolRouter(config, self.store)
        self._mcp = None

    def get_stats(self) -> Dict[str, Any]:
        """Health payload; only the 200 status is part of the liveness contract."""
        return {
            "status": "ok",
            "uptime_seconds": time.time() - self.start_time,
            "conversations": len(self.store),
            "models": len(self.config.models),
        }

    @property
    def mcp(self):
        if self._mcp is None:
            self._mcp = self._build_mcp()
        return self._mcp

    def _build_mcp(self):
        from mcp.server.fastmcp import FastMCP
        from starlette.requests import Request
        from starlette.responses import JSONResponse

        mcp = FastMCP(
            SERVER_NAME,
            host=self.host,
            port=self.port,
            streamable_http_path=MCP_PATH,
            stateless_http=True,
            json_response=True,
            log_level=_fastmcp_level(self.config.log_level),
        )
        register_tools(mcp, self.router)

        @mcp.custom_route(HEALTH_PATH, methods=["GET"])
        async def health(request: Request) -> JSONResponse:
            logger.debug("Health check request")
            return JSONResponse(self.get_stats())

        return mcp

    def serve_http(self) -> int:
        """
        Serve MCP over HTTP until interrupted.

        Returns 0 without serving when the port is already taken; another
        launcher won the startup race.
        """
        if is_port_in_use(self.port, self.host):
            logger.info("Polybrain server is already running on port %d", self.port)
            return 0

        logger.info(
            "Starting Polybrain server on %s:%d with %d model(s)",
            self.host, self.port, len(self.config.models),
        )
        # uvicorn installs SIGTERM/SIGINT handlers and shuts down gracefully
        self.mcp.run(transport="streamable-http")
        logger.info("Polybrain server stopped")
        return 0

    def serve_stdio(self) -> None:
        """Serve MCP over stdin/stdout until the client disconnects."""
        logger.debug("Serving MCP over stdio")
        self.mcp.run(transport="stdio")


def _fastmcp_level(level: str) -> str:
    return {"warn": "WARNING"}.get(level, level.upper())


def run_server(port: Optional[int] = None, host: str = DEFAULT_HOST) -> int:
    """
    Load config and run the HTTP server in the foreground.

    Returns the process exit code.
    """
    from polybrain.core.configs import load_config
    from polybrain.core.errors import ConfigError
    from polybrain.core.logs import configure_logging

    try:
        config = load_config()
    except ConfigError as e:
        # Always reported, whatever the log level
        print(f"Failed to load config: {e}", file=sys.stderr)
        return 1

    configure_logging(config.log_level)
    server = PolybrainServer(config, port=port, host=host)
    return server.serve_http()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Polybrain MCP server")
    parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (default: httpPort from config)",
    )
    parser.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help="Interface to bind",
    )

    args = parser.parse_args()
    sys.exit(run_server(port=args.port, host=args.host))
