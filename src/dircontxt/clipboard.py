from __future__ import annotations

import logging

import pyperclip

from .errors import ClipboardError

logger = logging.getLogger(__name__)


def copy_to_clipboard(text: str) -> None:
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as exc:
        raise ClipboardError(f"Cannot copy to clipboard: {exc}") from exc
    logger.info("Copied %d characters to the clipboard", len(text))
