"""
CLI module for Trust Debt.

The command-line interface providing run, stage, status, history and
explain commands.
"""

from cli.main import app

__all__ = ["app"]
