# storage.py
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List

from core.utils import load_json, save_json
from signals.errors import NotFound
from signals.records import JournalRecord, JournalSummary, Signal

logger = logging.getLogger(__name__)


class SignalStore:
    """Live signals keyed by id, in insertion order."""

    def __init__(self, signals: Iterable[Signal] = ()):
        self._signals: "OrderedDict[str, Signal]" = OrderedDict()
        for sig in signals:
            self.insert(sig)

    def insert(self, signal: Signal) -> Signal:
        if signal.id in self._signals:
            raise ValueError(f"Signal {signal.id} already exists.")
        self._signals[signal.id] = signal
        return signal

    def lookup(self, signal_id: str) -> Signal:
        try:
            return self._signals[signal_id]
        except KeyError:
            raise NotFound("Signal not found.") from None

    def mutate(self, signal_id: str, fn: Callable[[Signal], None]) -> Signal:
        sig = self.lookup(signal_id)
        fn(sig)
        return sig

    def remove(self, signal_id: str) -> Signal:
        try:
            return self._signals.pop(signal_id)
        except KeyError:
            raise NotFound("Signal not found.") from None

    def list_all(self) -> List[Signal]:
        return list(self._signals.values())

    def ids(self):
        return self._signals.keys()

    def __contains__(self, signal_id) -> bool:
        return signal_id in self._signals

    def __len__(self) -> int:
        return len(self._signals)


class JournalLedger:
    """Append-only outcome records grouped by YYYY-MM-DD."""

    def __init__(self, days: Dict[str, Iterable[JournalRecord]] = None):
        self._days: Dict[str, List[JournalRecord]] = {
            d: list(recs) for d, recs in (days or {}).items()
        }

    def append(self, date: str, record: JournalRecord) -> None:
        self._days.setdefault(date, []).append(record)

    def list_for_date(self, date: str) -> List[JournalRecord]:
        return list(self._days.get(date, ()))

    def dates(self) -> List[str]:
        return sorted(self._days)

    def summarize(self, date: str) -> JournalSummary:
        """A record is a win iff its R is strictly positive; R == 0 counts as a loss."""
        records = self._days.get(date, ())
        wins = sum(1 for r in records if r.risk_multiple > 0)
        return JournalSummary(
            count=len(records),
            wins=wins,
            losses=len(records) - wins,
            total_r=float(sum(r.risk_multiple for r in records)),
            total_profit=float(sum(r.profit for r in records)),
        )

    def to_dict(self) -> Dict[str, List[dict]]:
        return {d: [r.to_dict() for r in recs] for d, recs in self._days.items()}


class OwnerSet:
    """Ordered set of Telegram user ids: allow-list and fan-out list in one."""

    def __init__(self, owners: Iterable[int] = ()):
        self._owners: List[int] = []
        for oid in owners:
            self.add(oid)

    def add(self, owner_id: int) -> bool:
        owner_id = int(owner_id)
        if owner_id in self._owners:
            return False
        self._owners.append(owner_id)
        return True

    def remove(self, owner_id: int) -> bool:
        owner_id = int(owner_id)
        if owner_id not in self._owners:
            return False
        self._owners.remove(owner_id)
        return True

    def list(self) -> List[int]:
        return list(self._owners)

    def __contains__(self, owner_id) -> bool:
        try:
            return int(owner_id) in self._owners
        except (TypeError, ValueError):
            return False

    def __len__(self) -> int:
        return len(self._owners)

    def __iter__(self):
        return iter(list(self._owners))


@dataclass
class RelayState:
    signals: SignalStore = field(default_factory=SignalStore)
    journal: JournalLedger = field(default_factory=JournalLedger)
    owners: OwnerSet = field(default_factory=OwnerSet)

    def to_dict(self) -> dict:
        return {
            "signals": [s.to_dict() for s in self.signals.list_all()],
            "journal": self.journal.to_dict(),
            "owners": self.owners.list(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RelayState":
        return cls(
            signals=SignalStore(Signal.from_dict(s) for s in d.get("signals", [])),
            journal=JournalLedger({
                date: [JournalRecord.from_dict(r) for r in recs]
                for date, recs in (d.get("journal") or {}).items()
            }),
            owners=OwnerSet(d.get("owners", [])),
        )


class JsonStateBackend:
    """Whole-document JSON persistence of signals, journal and owners."""

    def __init__(self, path, initial_owners: Iterable[int] = ()):
        self.path = Path(path)
        self.initial_owners = tuple(initial_owners)

    def load(self) -> RelayState:
        state = RelayState.from_dict(load_json(str(self.path)))
        if not len(state.owners) and self.initial_owners:
            for oid in self.initial_owners:
                state.owners.add(oid)
            logger.info("Seeded %d owner(s) from config.", len(state.owners))
            self.save(state)
        elif not self.path.exists():
            self.save(state)
        return state

    def save(self, state: RelayState) -> None:
        save_json(state.to_dict(), str(self.path))
