"""Case-insensitive name disambiguation."""

from __future__ import annotations

import string
from typing import Iterable

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def fold_case(name: str) -> str:
    """
    Lower-case ASCII letters only, the same folding as SQLite's ``NOCASE``
    collation and ``LOWER()``: ``"Éclair"`` and ``"éclair"`` stay distinct.
    """
    return name.translate(_ASCII_LOWER)


def unique_name(base: str, taken: Iterable[str], start: int = 2) -> str:
    """
    Return ``base`` if no name in ``taken`` matches it under ``fold_case``,
    otherwise ``"<base> (n)"`` with the lowest free ``n >= start``.
    """
    used = {fold_case(name) for name in taken}
    if fold_case(base) not in used:
        return base
    suffix = start
    while fold_case(f"{base} ({suffix})") in used:
        suffix += 1
    return f"{base} ({suffix})"
