"""Conversion between ``HH:MM:SS.mmm`` finish-time text and milliseconds."""

from __future__ import annotations

import re
from typing import Optional, Tuple

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE

ZERO_DURATION = "00:00:00.000"

# Hours are unbounded but never narrower than two digits.
_CANONICAL_RE = re.compile(r"^\d{2,}:[0-5]\d:[0-5]\d\.\d{3}\Z", re.ASCII)


class DurationError(ValueError):
    """Raised when duration text or a millisecond count cannot be converted."""


def _to_int(part: str, text: str) -> int:
    part = part.strip()
    if not (part.isascii() and part.isdigit()):
        raise DurationError(f"Invalid duration '{text}'. Expected HH:MM:SS.mmm.")
    return int(part)


def parse_duration(text: str) -> int:
    """Return the millisecond count for a ``HH:MM:SS.mmm`` string.

    The millisecond fraction is optional and defaults to ``0``. Any
    component that is not a base-10 integer raises :class:`DurationError`.
    """
    if text is None:
        raise DurationError("Missing duration")
    groups = str(text).strip().split(":")
    if len(groups) != 3:
        raise DurationError(f"Invalid duration '{text}'. Expected HH:MM:SS.mmm.")
    hours, minutes, rest = groups
    seconds, _, millis = rest.partition(".")
    h = _to_int(hours, text)
    m = _to_int(minutes, text)
    s = _to_int(seconds, text)
    ms = _to_int(millis, text) if millis else 0
    return h * MS_PER_HOUR + m * MS_PER_MINUTE + s * MS_PER_SECOND + ms


def format_duration(ms: int) -> str:
    """Render milliseconds as ``HH:MM:SS.mmm``.

    ``0`` renders as ``00:00:00.000``, the same text used when no time was
    recorded.
    """
    ms = int(ms)
    if ms < 0:
        raise DurationError(f"Negative duration: {ms}")
    hours, rem = divmod(ms, MS_PER_HOUR)
    minutes, rem = divmod(rem, MS_PER_MINUTE)
    seconds, millis = divmod(rem, MS_PER_SECOND)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def is_canonical(text: Optional[str]) -> bool:
    """Return True when ``text`` is zero-padded fixed-width duration text."""
    if not isinstance(text, str):
        return False
    return bool(_CANONICAL_RE.match(text))


def finish_sort_key(text: Optional[str]) -> Tuple[int, str]:
    """Sort key for raw finish-time text.

    Present times compare lexicographically, which matches numeric order
    only for canonical text. Missing times sort after every present time.
    """
    if text is None or str(text).strip() == "":
        return (1, "")
    return (0, str(text))


def compare_finish_text(a: Optional[str], b: Optional[str]) -> int:
    ka, kb = finish_sort_key(a), finish_sort_key(b)
    if ka < kb:
        return -1
    if ka > kb:
        return 1
    return 0


__all__ = [
    "DurationError",
    "ZERO_DURATION",
    "compare_finish_text",
    "finish_sort_key",
    "format_duration",
    "is_canonical",
    "parse_duration",
]
