"""Entry point for running lean-intel as a module.

Usage:
    python -m lean_intel [command] [options]

Example:
    python -m lean_intel analyze --repo . --security
    python -m lean_intel docs --tier standard
"""

from lean_intel.cli import app

if __name__ == "__main__":
    app()
