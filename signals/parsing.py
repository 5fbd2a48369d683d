"""
Inbound text parsing.

The `Signal ID: <id>` trailer is the contract between the messages the bot
posts (signals/messages.py) and the owner replies it reads back here: the id
is the alphanumeric token directly after the last `Signal ID:` literal.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from signals.errors import InvalidFormat
from signals.records import MAX_TAKE_PROFITS, StatusKind

SIGNAL_ID_PREFIX = "Signal ID:"

SIGNAL_USAGE = (
    "Wrong format.\n"
    "Example:\n"
    "/buy XAUUSD,4118,4115,4120,4122,4124,4126,4128\n"
    "(can also be a photo caption)"
)
STATUS_USAGE = "Reply with: hit, sl, tp1..tp5 or cancel, optionally followed by a price."

_COMMAND_PREFIX = re.compile(r"^/(buy|sell)(@\w+)?", re.IGNORECASE)
_STATUS = re.compile(r"^(cancel|hit|sl|tp([1-5]))$")


@dataclass(frozen=True)
class ParsedSignal:
    symbol: str
    entry: float
    stop_loss: float
    take_profits: List[Optional[float]]


def _number(raw: str, name: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise InvalidFormat(f"{name} is not a number: {raw!r}") from None


def parse_signal_command(text: Optional[str]) -> ParsedSignal:
    """
    Parse `/buy SYMBOL,ENTRY,SL[,TP1,...,TP5]` (whitespace is ignored).

    Empty take-profit fields are kept as None so slot numbering is preserved.
    """
    if not text or not text.strip():
        raise InvalidFormat(SIGNAL_USAGE)

    cleaned = _COMMAND_PREFIX.sub("", text.strip())
    cleaned = "".join(cleaned.split())
    parts = cleaned.split(",")

    if len(parts) < 3:
        raise InvalidFormat(SIGNAL_USAGE)
    if len(parts) > 3 + MAX_TAKE_PROFITS:
        raise InvalidFormat(f"At most {MAX_TAKE_PROFITS} take-profits are supported.")

    tps = [
        _number(raw, f"Tp {i}") if raw else None
        for i, raw in enumerate(parts[3:], start=1)
    ]
    return ParsedSignal(
        symbol=parts[0].upper(),
        entry=_number(parts[1], "Entry"),
        stop_loss=_number(parts[2], "Stop loss"),
        take_profits=tps,
    )


def extract_signal_id(text: Optional[str]) -> Optional[str]:
    if not text or SIGNAL_ID_PREFIX not in text:
        return None
    tail = text.rpartition(SIGNAL_ID_PREFIX)[2].lstrip(" \t")
    token = tail.split(None, 1)[0] if tail.strip() else ""
    if not token.isascii() or not token.isalnum():
        return None
    return token


def parse_status_command(text: Optional[str]) -> Tuple[StatusKind, Optional[float]]:
    """`hit 4120` -> (StatusKind.hit(), 4120.0); `cancel` -> (StatusKind.cancel(), None)."""
    parts = (text or "").strip().lower().split()
    if not parts:
        raise InvalidFormat(STATUS_USAGE)

    m = _STATUS.match(parts[0])
    if not m or len(parts) > 2:
        raise InvalidFormat(STATUS_USAGE)

    if m.group(2):
        kind = StatusKind.take_profit(int(m.group(2)))
    elif m.group(1) == "hit":
        kind = StatusKind.hit()
    elif m.group(1) == "sl":
        kind = StatusKind.stop_loss()
    else:
        kind = StatusKind.cancel()

    price = _number(parts[1], "Price") if len(parts) == 2 else None
    return kind, price


def parse_owner_id(text: Optional[str]) -> int:
    raw = (text or "").strip()
    try:
        return int(raw)
    except ValueError:
        raise InvalidFormat(f"Owner id must be a numeric Telegram id, got {raw!r}") from None
