"""Text helpers."""

from __future__ import annotations

import re
from typing import Any

from unidecode import unidecode


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace and trim."""
    return re.sub(r"\s+", " ", text).strip()


def as_text(value: Any) -> str:
    """Stringify a loosely typed payload value; None becomes an empty string."""
    if value is None:
        return ""
    return str(value)


def lookup_key(value: Any) -> str:
    """Fold a free-form name into an accent-free, punctuation-free lookup key.

    ``"Côte d'Ivoire"`` and ``"cote d ivoire"`` share the key ``"cote d ivoire"``.
    """
    text = unidecode(as_text(value))
    text = text.replace("&", " and ")
    text = re.sub(r"[^a-zA-Z0-9]+", " ", text)
    return text.strip().lower()
