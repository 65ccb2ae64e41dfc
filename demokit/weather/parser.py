"""Parsing the arguments of the weather subscribe command."""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass
from typing import Sequence

MIN_UPDATE_FREQUENCY_MS = 30000

_NANOS_PER_MILLI = 10**6
_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": _NANOS_PER_MILLI,
    "s": 10**9,
    "m": 60 * 10**9,
    "h": 3600 * 10**9,
}
_MAX_NANOS = (1 << 63) - 1
_COMPONENT = re.compile(r"([0-9]*)(\.([0-9]*))?([^0-9.]*)")
_INTEGER = re.compile(r"[+-]?[0-9]+")


class CommandParseError(ValueError):
    """Raised when a subscribe command cannot be understood."""


@dataclass
class SubscribeArgs:
    """The location and update frequency of a subscribe command."""

    location: str = ""
    frequency_str: str = ""
    update_frequency: int = 0


def parse_go_duration(text: str) -> int:
    """Parse a duration such as ``1h30m``, ``1.5h`` or ``-250ms`` into nanoseconds."""
    original = text
    negative = False
    if text[:1] in ("-", "+"):
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return 0
    if not text:
        raise ValueError(f'invalid duration "{original}"')

    total = 0
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        whole, fraction, unit = match.group(1), match.group(3) or "", match.group(4)
        if not whole and not fraction:
            raise ValueError(f'invalid duration "{original}"')
        if not unit:
            raise ValueError(f'missing unit in duration "{original}"')
        scale = _UNITS.get(unit)
        if scale is None:
            raise ValueError(f'unknown unit "{unit}" in duration "{original}"')
        total += int(whole or "0") * scale
        if fraction:
            total += int(fraction) * scale // 10 ** len(fraction)
        if total > _MAX_NANOS + 1:
            raise ValueError(f'invalid duration "{original}"')
        pos = match.end()

    if negative:
        return -total
    if total > _MAX_NANOS:
        raise ValueError(f'invalid duration "{original}"')
    return total


def parse_frequency(text: str) -> int:
    """Return an update frequency in milliseconds, given as a number or a duration."""
    if _INTEGER.fullmatch(text):
        value = int(text)
        if -_MAX_NANOS - 1 <= value <= _MAX_NANOS:
            return value
    try:
        nanos = parse_go_duration(text)
    except ValueError as exc:
        raise CommandParseError(
            f"invalid frequency: {text}. Please use milliseconds (e.g., 60000 for 1 minute) "
            "or a valid duration like 30s, 5m, 1h"
        ) from exc
    millis = abs(nanos) // _NANOS_PER_MILLI
    return -millis if nanos < 0 else millis


def _parse_flags(fields: Sequence[str], args: SubscribeArgs) -> None:
    pending = deque(fields)
    while pending:
        token = pending.popleft()
        if token == "--location" and pending:
            words = []
            while pending and not pending[0].startswith("--"):
                words.append(pending.popleft())
            args.location = " ".join(words)
        elif token == "--frequency" and pending:
            args.frequency_str = pending.popleft()


def parse_subscribe_command(fields: Sequence[str]) -> SubscribeArgs:
    """Parse the whitespace-split words of ``/weather subscribe ...``.

    Accepts ``subscribe <location> <frequency>`` and
    ``subscribe --location <words...> --frequency <frequency>``.
    """
    if len(fields) < 4:
        raise CommandParseError("insufficient arguments")

    args = SubscribeArgs()
    if not fields[2].startswith("--"):
        args.location = fields[2]
        args.frequency_str = fields[3]
    else:
        _parse_flags(fields[2:], args)

    if not args.location or not args.frequency_str:
        raise CommandParseError("missing required parameters: location and frequency")

    args.update_frequency = parse_frequency(args.frequency_str)
    if args.update_frequency < MIN_UPDATE_FREQUENCY_MS:
        raise CommandParseError(
            "update frequency must be at least 30000 milliseconds (30 seconds)"
        )
    return args