"""
Signal lifecycle: creation, status transitions and R-multiple outcomes.

Every status kind (hit / sl / tp1..tp5) may be applied to a signal at most
once. `apply_status` validates the transition first and only then mutates
the signal, so a rejected update never leaves a half-applied state behind.
"""
from __future__ import annotations

import math
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Collection, FrozenSet, Iterable, Optional, Sequence, Tuple

from signals.errors import AlreadyRecorded, InvalidFormat
from signals.records import (
    MAX_TAKE_PROFITS,
    Action,
    Direction,
    JournalRecord,
    Signal,
    StatusKind,
)

FINAL_TP = "tp_final"
CLOSE_ON_KEYS: FrozenSet[str] = frozenset(
    {"hit", "sl", FINAL_TP} | {f"tp{i}" for i in range(1, MAX_TAKE_PROFITS + 1)}
)
DEFAULT_CLOSE_ON: Tuple[str, ...] = ("hit", "sl", FINAL_TP)

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _final_take_profit(signal: Signal) -> Optional[int]:
    return max(
        (i for i, tp in enumerate(signal.take_profits, 1) if tp is not None),
        default=None,
    )


@dataclass(frozen=True)
class ClosingPolicy:
    """
    Which status kinds remove a signal from the live store.

    Keys: "hit", "sl", "tp1".."tp5", and "tp_final" (the highest take-profit
    slot on the signal being updated that carries a level; blank slots do
    not count). Cancel always closes.
    """

    close_on: FrozenSet[str] = frozenset(DEFAULT_CLOSE_ON)

    def __post_init__(self) -> None:
        unknown = set(self.close_on) - CLOSE_ON_KEYS
        if unknown:
            raise ValueError(f"Unknown close_on keys: {sorted(unknown)}")

    @classmethod
    def from_keys(cls, keys: Iterable[str]) -> "ClosingPolicy":
        return cls(frozenset(k.strip().lower() for k in keys))

    def closes(self, signal: Signal, kind: StatusKind) -> bool:
        if kind.action is Action.CANCEL:
            return True
        if kind.key in self.close_on:
            return True
        return (
            kind.action is Action.TP
            and FINAL_TP in self.close_on
            and kind.level == _final_take_profit(signal)
        )


@dataclass(frozen=True)
class StatusOutcome:
    kind: StatusKind
    signal: Signal
    price: Optional[float] = None
    record: Optional[JournalRecord] = None
    closes: bool = False


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _to_base36(n: int) -> str:
    out = ""
    while True:
        n, rem = divmod(n, 36)
        out = _B36[rem] + out
        if n == 0:
            return out


def generate_signal_id(existing_ids: Collection[str] = ()) -> str:
    """Base-36 millisecond timestamp + 6 random hex chars; never clashes with a live id."""
    while True:
        sid = _to_base36(int(time.time() * 1000)) + secrets.token_hex(3)
        if sid not in existing_ids:
            return sid


def _finite(value, name: str) -> float:
    try:
        x = float(value)
    except (TypeError, ValueError):
        raise InvalidFormat(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(x):
        raise InvalidFormat(f"{name} must be a finite number, got {value!r}")
    return x


def create_signal(
    direction: Direction,
    symbol: str,
    entry: float,
    stop_loss: float,
    take_profits: Sequence[Optional[float]] = (),
    *,
    existing_ids: Collection[str] = (),
) -> Signal:
    sym = "".join((symbol or "").split()).upper()
    if not sym:
        raise InvalidFormat("symbol must not be empty")

    entry_px = _finite(entry, "entry")
    stop_px = _finite(stop_loss, "stop loss")

    if len(take_profits) > MAX_TAKE_PROFITS:
        raise InvalidFormat(f"at most {MAX_TAKE_PROFITS} take-profits are supported, got {len(take_profits)}")
    tps = [
        None if tp is None else _finite(tp, f"tp {i}")
        for i, tp in enumerate(take_profits, start=1)
    ]

    return Signal(
        id=generate_signal_id(existing_ids),
        direction=Direction(direction),
        symbol=sym,
        entry=entry_px,
        stop_loss=stop_px,
        take_profits=tps,
        created_at=_utc_now_iso(),
    )


def risk_multiple(
    direction: Direction,
    entry: float,
    stop_loss: float,
    price: float,
) -> Tuple[float, float]:
    """
    Outcome of a fill at `price`, in units of initial risk.

    Returns (R, profit):
      risk   = |entry - stop_loss|   (1.0 when entry == stop_loss)
      profit = price - entry for buys, entry - price for sells
      R      = profit / risk

    The sign follows the direction only: a stop-loss filled beyond the entry
    in the favourable direction still yields a positive R.
    """
    risk = abs(entry - stop_loss) or 1.0
    profit = (price - entry) if direction is Direction.BUY else (entry - price)
    return float(profit / risk), float(profit)


def _check_transition(signal: Signal, kind: StatusKind) -> None:
    if kind.action is Action.HIT:
        if signal.entry_hit:
            raise AlreadyRecorded("Entry already recorded.")
    elif kind.action is Action.SL:
        if signal.stop_loss_hit:
            raise AlreadyRecorded("Stop loss already recorded.")
    elif kind.action is Action.TP:
        idx = kind.level - 1
        if idx >= len(signal.take_profits):
            raise InvalidFormat(f"Signal has no Tp {kind.level}.")
        if signal.take_profit_hit[idx]:
            raise AlreadyRecorded(f"Tp {kind.level} already recorded.")


def _set_flag(signal: Signal, kind: StatusKind) -> None:
    if kind.action is Action.HIT:
        signal.entry_hit = True
    elif kind.action is Action.SL:
        signal.stop_loss_hit = True
    elif kind.action is Action.TP:
        signal.take_profit_hit[kind.level - 1] = True


def apply_status(
    signal: Signal,
    kind: StatusKind,
    price: Optional[float] = None,
    policy: ClosingPolicy = ClosingPolicy(),
) -> StatusOutcome:
    """
    Validate and apply one status update.

    Raises AlreadyRecorded for a repeated hit/sl/tpN and InvalidFormat for a
    non-finite price or an unconfigured take-profit slot; in both cases the
    signal is left untouched.
    """
    if kind.action is Action.CANCEL:
        return StatusOutcome(kind=kind, signal=signal, closes=True)

    _check_transition(signal, kind)
    if price is not None:
        price = _finite(price, "price")

    _set_flag(signal, kind)

    record = None
    if price is not None:
        r, profit = risk_multiple(signal.direction, signal.entry, signal.stop_loss, price)
        record = JournalRecord(
            signal_id=signal.id,
            direction=signal.direction,
            symbol=signal.symbol,
            entry=signal.entry,
            stop_loss=signal.stop_loss,
            action=kind.key,
            price=price,
            risk_multiple=r,
            profit=profit,
            timestamp=_utc_now_iso(),
        )

    return StatusOutcome(
        kind=kind,
        signal=signal,
        price=price,
        record=record,
        closes=policy.closes(signal, kind),
    )
