from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_HANDLER: RichHandler | None = None


def setup_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Install the process-wide diagnostics sink on the ``dircontxt`` logger.

    Calling it again replaces the previous handler, so the CLI can be invoked
    repeatedly in one process (tests do this).
    """
    global _HANDLER
    logger = logging.getLogger("dircontxt")
    if _HANDLER is not None:
        logger.removeHandler(_HANDLER)
    _HANDLER = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        show_time=False,
        markup=False,
    )
    _HANDLER.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(_HANDLER)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def flush_logging() -> None:
    if _HANDLER is not None:
        _HANDLER.flush()
