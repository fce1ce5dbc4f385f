# parkingmate/services/plate_normalizer.py
"""
License plate normalization.
Turns raw plate strings ("B-AB 1234", "b ab1234") into one comparison key
("BAB1234"). Every lookup and every stored plate goes through here.
"""

import re
from functools import lru_cache
from typing import Optional

from parkingmate.config import settings
from parkingmate.errors import InvalidLicensePlateError


@lru_cache(maxsize=8)
def _compiled(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def strip_separators(raw: str, separators: Optional[str] = None) -> str:
    """Upper-case and drop separator characters, without validating."""
    separators = settings.PLATE_SEPARATORS if separators is None else separators
    table = {ord(ch): None for ch in separators}
    return raw.strip().upper().translate(table)


def normalize_plate(raw: str) -> str:
    """
    Return the canonical plate key, or raise InvalidLicensePlateError.
    Idempotent: normalize_plate(normalize_plate(x)) == normalize_plate(x).
    """
    if raw is None:
        raise InvalidLicensePlateError("", "License plate is required")

    key = strip_separators(raw)
    if not (settings.PLATE_MIN_LENGTH <= len(key) <= settings.PLATE_MAX_LENGTH):
        raise InvalidLicensePlateError(
            raw,
            f"License plate must be {settings.PLATE_MIN_LENGTH}-{settings.PLATE_MAX_LENGTH} characters",
        )
    if not _compiled(settings.PLATE_ALLOWED_PATTERN).match(key):
        raise InvalidLicensePlateError(raw)
    return key


def is_valid_plate(raw: str) -> bool:
    try:
        normalize_plate(raw)
    except InvalidLicensePlateError:
        return False
    return True
