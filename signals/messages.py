from __future__ import annotations

from typing import Iterable, Optional, Sequence

from signals.parsing import SIGNAL_ID_PREFIX
from signals.records import (
    Action,
    JournalRecord,
    JournalSummary,
    Signal,
    StatusKind,
)

UNAUTHORIZED_TEXT = "🚫 You are not authorized to use this bot."

HELP_TEXT = (
    "Available Commands:\n\n"
    "/buy SYMBOL,ENTRY,SL,TP1..TP5  – Post a buy signal (text or photo caption).\n"
    "/sell SYMBOL,ENTRY,SL,TP1..TP5 – Post a sell signal (text or photo caption).\n"
    "/signals                       – Show live signals.\n"
    "/journal [YYYY-MM-DD]          – Show the journal for a day (default: today).\n"
    "/owners                        – List owners.\n"
    "/addowner ID                   – Add an owner.\n"
    "/removeowner ID                – Remove an owner.\n"
    "/help                          – Show this message.\n\n"
    "Status updates: reply in this chat to a signal message with\n"
    "hit, sl, tp1..tp5 or cancel, optionally followed by the fill price."
)


def fmt_price(x: Optional[float]) -> str:
    """4118.0 -> '4118', 1.0855 -> '1.0855', None -> ''."""
    if x is None:
        return ""
    x = float(x)
    return str(int(x)) if x.is_integer() else repr(x)


def fmt_r(r: float) -> str:
    return f"{r:+.2f}"


def _signed(x: float) -> str:
    x = round(float(x), 6)
    return ("+" if x >= 0 else "") + fmt_price(x)


def signal_id_line(signal_id: str) -> str:
    return f"{SIGNAL_ID_PREFIX} {signal_id}"


def render_signal(signal: Signal) -> str:
    lines = [
        f"{signal.symbol} {signal.direction.label} Limit",
        f"Entry: {fmt_price(signal.entry)}",
        f"Stop loss: {fmt_price(signal.stop_loss)}",
    ]
    lines += [f"Tp {i}: {fmt_price(tp)}" for i, tp in enumerate(signal.take_profits, start=1)]
    return "\n".join(lines) + "\n\n" + signal_id_line(signal.id)


def render_owner_copy(signal: Signal) -> str:
    return f"New signal posted:\n\n{render_signal(signal)}"


_LABELS = {
    Action.CANCEL: "❌ Cancel",
    Action.HIT: "Hit ✅",
    Action.SL: "Stop Loss 🛑",
}


def render_status(
    kind: StatusKind,
    signal_id: str,
    price: Optional[float] = None,
    risk_multiple: Optional[float] = None,
) -> str:
    label = f"Tp {kind.level} ✅" if kind.action is Action.TP else _LABELS[kind.action]
    lines = [label]
    if price is not None:
        lines.append(f"Price: {fmt_price(price)}")
    if risk_multiple is not None:
        lines.append(f"Result: {fmt_r(risk_multiple)}R")
    lines.append(signal_id_line(signal_id))
    return "\n".join(lines)


def render_journal(date: str, records: Sequence[JournalRecord], summary: JournalSummary) -> str:
    if not records:
        return f"No journal entries for {date}"

    lines = [f"Journal {date}", ""]
    for rec in records:
        lines.append(
            f"{rec.symbol} {rec.direction.value.upper()} {rec.action.upper()} | {fmt_r(rec.risk_multiple)} R"
        )
    lines += [
        "",
        f"Trades: {summary.count} (wins {summary.wins} / losses {summary.losses})",
        f"Total: {fmt_r(summary.total_r)} R",
        f"Price delta: {_signed(summary.total_profit)}",
    ]
    return "\n".join(lines)


def render_signal_list(signals: Sequence[Signal]) -> str:
    if not signals:
        return "📭 No live signals."
    lines = ["Live signals:"]
    for s in signals:
        done = [f"tp{i}" for i, hit in enumerate(s.take_profit_hit, start=1) if hit]
        if s.entry_hit:
            done.insert(0, "hit")
        lines.append(
            f"- {s.symbol} {s.direction.label} | entry={fmt_price(s.entry)} | "
            f"sl={fmt_price(s.stop_loss)} | done={','.join(done) or '-'} | id={s.id}"
        )
    return "\n".join(lines)


def render_owner_list(owners: Iterable[int]) -> str:
    return "Owners:\n" + "\n".join(str(o) for o in owners)
