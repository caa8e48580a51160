"""Process-wide logging setup."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a rich handler on the root logger. Later calls are no-ops."""
    global _configured
    if _configured:
        return

    handler = RichHandler(show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers.clear()
    root.addHandler(handler)

    # SDK request logs are noisy at INFO
    for name in ("httpx", "anthropic", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
