"""CLI Module - Typer command-line interface."""

from ziyuanbao.cli.main import app, cli

__all__ = ["app", "cli"]
