"""CLI entry point for agentmirror.

Usage:
    python -m agentmirror status
    python -m agentmirror --server-path ./build/server.js watch
"""

import sys


def main() -> int:
    """Main entry point for the agentmirror CLI."""
    from agentmirror.cli import run_cli

    return run_cli(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
