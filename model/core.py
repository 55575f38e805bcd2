"""
Numeric and row utilities shared by every engine.

:func:`safe_number` is the one place where an untrusted cell value becomes
a trustworthy float.  Everything else routes through it, so missing,
blank, ``NaN`` or infinite inputs degrade to ``0.0`` instead of raising.
"""

import re

import numpy as np

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


# ---------------------------------------------------------------------------
# Number safety
# ---------------------------------------------------------------------------

def safe_number(value) -> float:
    """Return the finite float interpretation of *value*, else ``0.0``."""
    if value is None:
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        # float() accepts "1_000"; digit separators are not numbers here
        if not value or "_" in value:
            return 0.0
    try:
        n = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return n if np.isfinite(n) else 0.0


def clean_numeric_text(value) -> str:
    """Strip every character that is not a digit, ``.`` or ``-``.

    ``"$1,200.50"`` -> ``"1200.50"``.  ``None`` becomes ``""``.
    """
    if value is None:
        return ""
    return _NON_NUMERIC.sub("", str(value))


def parse_edit_value(text):
    """Sanitise user-typed text for a raw cell.

    Returns a float when the cleaned text parses to a finite number,
    otherwise the cleaned string itself (``safe_number`` later reads it
    as 0).
    """
    clean = clean_numeric_text(text)
    try:
        n = float(clean)
    except ValueError:
        return clean
    return n if np.isfinite(n) else clean


def sanitized(value) -> float:
    """``safe_number`` after :func:`clean_numeric_text` for string input."""
    if isinstance(value, str):
        return safe_number(clean_numeric_text(value))
    return safe_number(value)


# ---------------------------------------------------------------------------
# Row utilities
# ---------------------------------------------------------------------------

def pick(row, key: str) -> float:
    if not isinstance(row, dict):
        return 0.0
    return safe_number(row.get(key))


def sum_column(rows: list[dict] | None, key: str) -> float:
    return float(sum(pick(r, key) for r in rows or []))


def average(rows: list[dict] | None, key: str) -> float:
    if not rows:
        return 0.0
    return sum_column(rows, key) / len(rows)


def latest(rows: list[dict] | None, key: str) -> float:
    if not rows:
        return 0.0
    return pick(rows[-1], key)


# ---------------------------------------------------------------------------
# Series builders
# ---------------------------------------------------------------------------

def series(rows, builder) -> list:
    """Apply ``builder(row, i, rows)`` to every row, eagerly.

    Non-list input yields an empty list.
    """
    if not isinstance(rows, (list, tuple)):
        return []
    return [builder(row, i, rows) for i, row in enumerate(rows)]


def column_series(rows: list[dict] | None, key: str) -> list[float]:
    return [pick(r, key) for r in rows or []]


def labels(rows: list[dict] | None, key: str = "Month") -> list:
    return [(r.get(key) if isinstance(r, dict) else None) or "" for r in rows or []]


# ---------------------------------------------------------------------------
# Financial math
# ---------------------------------------------------------------------------

def growth_rate(current, previous) -> float:
    """``(current - previous) / |previous|``, or 0 when previous is 0."""
    c = safe_number(current)
    p = safe_number(previous)
    if p == 0:
        return 0.0
    return (c - p) / abs(p)


def margin(part, total) -> float:
    """``part / total``, or 0 when total is 0."""
    t = safe_number(total)
    if t == 0:
        return 0.0
    return safe_number(part) / t


def delta_series(rows: list[dict] | None, key: str) -> list[float]:
    rows = rows or []
    return [
        0.0 if i == 0 else pick(r, key) - pick(rows[i - 1], key)
        for i, r in enumerate(rows)
    ]


def growth_series(rows: list[dict] | None, key: str) -> list[float]:
    rows = rows or []
    return [
        0.0 if i == 0 else growth_rate(pick(r, key), pick(rows[i - 1], key))
        for i, r in enumerate(rows)
    ]
