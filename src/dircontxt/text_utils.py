from __future__ import annotations

import unicodedata


def normalize_text(value: str) -> str:
    """Return UTF-8 safe text by collapsing surrogate-escaped bytes.

    Archived paths keep undecodable filename bytes as lone surrogates so they
    round-trip; text output cannot carry those, so they become replacement
    characters here. Also canonicalize to NFC so macOS/Linux path forms match.
    """
    safe = value.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
    return unicodedata.normalize("NFC", safe)


def decode_content(data: bytes) -> str:
    return data.decode("utf-8", "replace")
