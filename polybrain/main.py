#!/usr/bin/env python3
"""
Main entry point for the Typer-based Polybrain CLI.

This delegates to the UI layer in polybrain.ui.cli to keep the
console script mapping stable.
"""

from polybrain.ui.cli import run as polybrain


if __name__ == "__main__":
    polybrain()
