#!/usr/bin/env python
"""
Simple test runner for Polybrain unit tests.

Usage:
    python scripts/run_tests.py               # all tests
    python scripts/run_tests.py conversations # tests/test_conversations.py
"""

import sys
import subprocess
import os
from pathlib import Path


def run_tests(test_pattern="", verbose=True):
    """
    Run pytest with the specified test pattern.

    Args:
        test_pattern: Test file to run (default: the whole tests/ tree)
        verbose: Whether to run with verbose output
    """
    project_root = Path(__file__).resolve().parent.parent
    os.chdir(project_root)

    cmd = [sys.executable, "-m", "pytest", f"tests/{test_pattern}"]
    if verbose:
        cmd.append("-v")
    cmd.append("--tb=short")

    print(f"Running: {' '.join(cmd)}")
    print("=" * 60)

    try:
        result = subprocess.run(cmd, check=False)
        return result.returncode == 0
    except FileNotFoundError:
        print("Error: pytest not found. Install with: pip install -e .[test]")
        return False


def main():
    """Main entry point for test runner."""
    if len(sys.argv) > 1:
        test_module = sys.argv[1]
        if not test_module.startswith("test_"):
            test_module = f"test_{test_module}"
        if not test_module.endswith(".py"):
            test_module = f"{test_module}.py"

        print(f"Running tests for module: {test_module}")
        success = run_tests(test_module)
    else:
        print("Running all unit tests...")
        success = run_tests()

    if success:
        print("\nAll tests passed!")
    else:
        print("\nSome tests failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
