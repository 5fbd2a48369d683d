from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

MAX_TAKE_PROFITS = 5


class Direction(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def label(self) -> str:
        return "Buy" if self is Direction.BUY else "Sell"


class Action(str, Enum):
    CANCEL = "cancel"
    HIT = "hit"
    SL = "sl"
    TP = "tp"


@dataclass(frozen=True)
class StatusKind:
    """
    One status update an owner can report against a signal.

    `level` is the 1-based take-profit slot and is only set for Action.TP.
    """

    action: Action
    level: Optional[int] = None

    def __post_init__(self) -> None:
        if self.action is Action.TP:
            if self.level is None or not (1 <= self.level <= MAX_TAKE_PROFITS):
                raise ValueError(f"take-profit level must be in 1..{MAX_TAKE_PROFITS}, got {self.level}")
        elif self.level is not None:
            raise ValueError(f"{self.action.value} does not take a level")

    @classmethod
    def cancel(cls) -> "StatusKind":
        return cls(Action.CANCEL)

    @classmethod
    def hit(cls) -> "StatusKind":
        return cls(Action.HIT)

    @classmethod
    def stop_loss(cls) -> "StatusKind":
        return cls(Action.SL)

    @classmethod
    def take_profit(cls, level: int) -> "StatusKind":
        return cls(Action.TP, level)

    @property
    def key(self) -> str:
        # "hit", "sl", "cancel", "tp1".."tp5"
        if self.action is Action.TP:
            return f"tp{self.level}"
        return self.action.value


@dataclass(frozen=True)
class PostedLocation:
    chat_id: Any
    message_id: int


@dataclass
class Signal:
    id: str
    direction: Direction
    symbol: str
    entry: float
    stop_loss: float
    take_profits: List[Optional[float]] = field(default_factory=list)
    entry_hit: bool = False
    stop_loss_hit: bool = False
    take_profit_hit: List[bool] = field(default_factory=list)
    posted: Optional[PostedLocation] = None
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.take_profit_hit:
            self.take_profit_hit = [False] * len(self.take_profits)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["direction"] = self.direction.value
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Signal":
        """
        Build a Signal from its persisted form.

        Also accepts the field names written by the earlier bot
        (type / stoploss / tps / hits / createdAt / posted.chatId).
        """
        hits = d.get("hits") or {}
        tps = d.get("take_profits", d.get("tps")) or []
        tps = [float(x) if x not in (None, "") else None for x in tps]

        tp_hit = d.get("take_profit_hit", hits.get("tp")) or []
        tp_hit = [bool(x) for x in tp_hit]
        tp_hit = (tp_hit + [False] * len(tps))[: len(tps)]

        posted = d.get("posted")
        if posted:
            posted = PostedLocation(
                chat_id=posted.get("chat_id", posted.get("chatId")),
                message_id=int(posted.get("message_id", posted.get("messageId"))),
            )

        return cls(
            id=str(d["id"]),
            direction=Direction(d.get("direction", d.get("type"))),
            symbol=d["symbol"],
            entry=float(d["entry"]),
            stop_loss=float(d.get("stop_loss", d.get("stoploss"))),
            take_profits=tps,
            entry_hit=bool(d.get("entry_hit", hits.get("entry", False))),
            stop_loss_hit=bool(d.get("stop_loss_hit", hits.get("sl", False))),
            take_profit_hit=tp_hit,
            posted=posted or None,
            created_at=d.get("created_at", d.get("createdAt", "")),
        )


@dataclass(frozen=True)
class JournalRecord:
    signal_id: str
    direction: Direction
    symbol: str
    entry: float
    stop_loss: float
    action: str
    price: float
    risk_multiple: float
    profit: float
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["direction"] = self.direction.value
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "JournalRecord":
        return cls(
            signal_id=str(d.get("signal_id", d.get("id", ""))),
            direction=Direction(d.get("direction", d.get("type", "buy"))),
            symbol=d["symbol"],
            entry=float(d["entry"]),
            stop_loss=float(d.get("stop_loss", d.get("stoploss"))),
            action=d["action"],
            price=float(d["price"]),
            risk_multiple=float(d.get("risk_multiple", d.get("profitR"))),
            profit=float(d.get("profit", 0.0)),
            timestamp=d.get("timestamp", ""),
        )


@dataclass(frozen=True)
class JournalSummary:
    count: int = 0
    wins: int = 0
    losses: int = 0
    total_r: float = 0.0
    total_profit: float = 0.0
