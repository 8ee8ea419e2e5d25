"""gitops-squared CLI — Typer-based command-line interface.

Provides the ``gitops-squared`` command with subcommands for applying and
retracting resources, inspecting their version history, and restoring or
building the catalog.

All output uses Rich for formatted terminal display.
"""
