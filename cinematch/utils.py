"""
Utility functions for Cinematch.
"""

import os
import re
import secrets
from typing import Optional, Tuple

# No 0/O or 1/I: codes are read aloud and typed on phones
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = int(os.getenv("ROOM_CODE_LENGTH", "4"))

_TRAILING_YEAR = re.compile(r"^(.*\S)\s*\((\d{4})\)\s*$")


def generate_room_code(length: Optional[int] = None) -> str:
    """
    Draw a random room code.

    Uniqueness is not guaranteed here; callers must check against storage
    and retry.
    """
    length = length or ROOM_CODE_LENGTH
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def normalize_room_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def split_title_year(raw: str) -> Tuple[str, Optional[int]]:
    """
    Split a trailing release year off a list entry.

    Args:
        raw: e.g. "Heat (1995)" or "Heat"

    Returns:
        ("Heat", 1995) or ("Heat", None)
    """
    text = raw.strip()
    match = _TRAILING_YEAR.match(text)
    if match:
        return match.group(1).strip(), int(match.group(2))
    return text, None
