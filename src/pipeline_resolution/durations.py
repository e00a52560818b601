"""Go-style duration strings (``"5s"``, ``"1m30s"``, ``"250ms"``).

Resolver configuration and status messages carry durations in this format,
so parsing and formatting have to agree with what cluster tooling emits.
"""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal

_UNIT_MICROSECONDS: dict[str, Decimal] = {
    "ns": Decimal("0.001"),
    "us": Decimal(1),
    "µs": Decimal(1),  # noqa: RUF001
    "μs": Decimal(1),  # noqa: RUF001
    "ms": Decimal(1_000),
    "s": Decimal(1_000_000),
    "m": Decimal(60_000_000),
    "h": Decimal(3_600_000_000),
}

_COMPONENT_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")  # noqa: RUF001


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as ``"1h15m"`` or ``"-1.5s"``.

    Raises:
        ValueError: If *value* is not a valid duration string.
    """
    text = value.strip()
    if not text:
        raise ValueError("invalid duration: empty string")

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if text == "0":
        return timedelta(0)

    total = Decimal(0)
    pos = 0
    while pos < len(text):
        match = _COMPONENT_RE.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration: {value!r}")
        number, unit = match.groups()
        total += Decimal(number) * _UNIT_MICROSECONDS[unit]
        pos = match.end()

    if pos == 0:
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(microseconds=sign * int(total))


def _trim_fraction(whole: int, fraction: int, digits: int) -> str:
    if not fraction:
        return str(whole)
    frac = str(fraction).rjust(digits, "0").rstrip("0")
    return f"{whole}.{frac}"


def format_duration(value: timedelta) -> str:
    """Render *value* the way Go's ``time.Duration.String`` does (``"1m0s"``)."""
    micros = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    if micros == 0:
        return "0s"

    sign = "-" if micros < 0 else ""
    micros = abs(micros)

    if micros < 1_000:
        return f"{sign}{micros}µs"  # noqa: RUF001
    if micros < 1_000_000:
        return f"{sign}{_trim_fraction(micros // 1_000, micros % 1_000, 3)}ms"

    hours, rem = divmod(micros, 3_600_000_000)
    minutes, rem = divmod(rem, 60_000_000)
    seconds = _trim_fraction(rem // 1_000_000, rem % 1_000_000, 6)

    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return f"{out}{seconds}s"
