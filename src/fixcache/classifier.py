from __future__ import annotations

from typing import Iterable


def is_fix_message(message: str, keywords: Iterable[str]) -> bool:
    """True when any keyword occurs in the message, ignoring case."""
    if not message:
        return False
    lowered = message.lower()
    return any(keyword and keyword.lower() in lowered for keyword in keywords)
