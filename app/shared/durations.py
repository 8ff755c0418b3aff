from __future__ import annotations

import re


_DURATION_RE = re.compile(r"^(\d+)([smhd])$")

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 60 * 60 * 24,
}


def parse_duration_seconds(value: str) -> int:
    """Parse durations such as ``"15m"`` or ``"30d"`` into seconds."""
    match = _DURATION_RE.fullmatch(value)
    if match is None:
        raise ValueError(f"Invalid duration format: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]
