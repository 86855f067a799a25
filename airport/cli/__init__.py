"""Airport CLI - Typer-based command-line interface.

Provides the ``airport`` command with subcommands for migrating an account,
verifying individual steps, and checking whether migrations are accepted.

All output uses Rich for formatted terminal display.
"""
