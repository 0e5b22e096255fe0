from __future__ import annotations

import os
import re

from .errors import InvalidDuration

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([A-Za-z]+)")

_UNIT_SECONDS: dict[str, float] = {
    "ms": 0.001,
    "msec": 0.001,
    "s": 1.0,
    "sec": 1.0,
    "secs": 1.0,
    "second": 1.0,
    "seconds": 1.0,
    "m": 60.0,
    "min": 60.0,
    "mins": 60.0,
    "minute": 60.0,
    "minutes": 60.0,
    "h": 3600.0,
    "hr": 3600.0,
    "hrs": 3600.0,
    "hour": 3600.0,
    "hours": 3600.0,
    "d": 86400.0,
    "day": 86400.0,
    "days": 86400.0,
    "w": 7 * 86400.0,
    "week": 7 * 86400.0,
    "weeks": 7 * 86400.0,
}


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def split_first_word(s: str) -> tuple[str, str]:
    s = s.strip()
    parts = s.split(None, 1)
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1].lstrip()


def parse_duration(text) -> float:
    """Parse ``"1h 30m"``, ``"90s"``, ``"2days"`` (or a bare number of seconds)."""
    if isinstance(text, bool):
        raise InvalidDuration(f"invalid duration {text!r}")
    if isinstance(text, (int, float)):
        if text <= 0:
            raise InvalidDuration("duration must be positive")
        return float(text)
    if not isinstance(text, str):
        raise InvalidDuration(f"invalid duration {text!r}")

    s = text.strip()
    if not s:
        raise InvalidDuration("empty duration")
    if re.fullmatch(r"\d+(?:\.\d+)?", s):
        total = float(s)
    else:
        pos = 0
        total = 0.0
        for m in _DURATION_PART_RE.finditer(s):
            if s[pos : m.start()].strip():
                raise InvalidDuration(f"invalid duration {text!r}")
            unit = m.group(2).lower()
            if unit not in _UNIT_SECONDS:
                raise InvalidDuration(f"unknown time unit {m.group(2)!r}")
            total += float(m.group(1)) * _UNIT_SECONDS[unit]
            pos = m.end()
        if pos == 0 or s[pos:].strip():
            raise InvalidDuration(f"invalid duration {text!r}")

    if total <= 0:
        raise InvalidDuration("duration must be positive")
    return total


def format_duration(seconds: float) -> str:
    ms = int(round(float(seconds) * 1000))
    if ms <= 0:
        return "0s"
    secs, ms = divmod(ms, 1000)
    days, secs = divmod(secs, 86400)
    hours, secs = divmod(secs, 3600)
    mins, secs = divmod(secs, 60)

    parts: list[str] = []
    if days:
        parts.append(f"{days}day" if days == 1 else f"{days}days")
    if hours:
        parts.append(f"{hours}h")
    if mins:
        parts.append(f"{mins}m")
    if secs:
        parts.append(f"{secs}s")
    if ms:
        parts.append(f"{ms}ms")
    return " ".join(parts)
