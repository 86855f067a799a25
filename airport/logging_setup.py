"""Logging configuration for the command-line entry point."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

from airport.config import AirportConfig


def configure_logging(cfg: AirportConfig, console: Console | None = None) -> None:
    """Install a Rich handler on the ``airport`` logger at ``cfg.log_level``.

    Library code only ever calls ``logging.getLogger(__name__)``; handlers
    are attached here, once, by the CLI.
    """
    level = logging.DEBUG if cfg.debug else cfg.log_level.upper()
    root = logging.getLogger("airport")
    root.setLevel(level)
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.addHandler(
        RichHandler(
            console=console or Console(stderr=True),
            show_path=cfg.debug,
            rich_tracebacks=True,
        )
    )
    root.propagate = False
