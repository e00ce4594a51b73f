"""Polybrain - let a coding agent talk to other LLMs over MCP."""

__version__ = "1.0.0"
