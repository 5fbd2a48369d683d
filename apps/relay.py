"""
Relay service: ties the signal engine, the persisted state and the
messaging transport together.

All state-touching operations run under one asyncio.Lock, so the scheduled
journal job never interleaves with a command half-way through its awaits.
State is saved before an operation is acknowledged; delivery failures after
that point are logged and never roll the state back.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Callable, Iterable, Optional

from core.utils import local_date_str, utc_now
from signals.config import RelayConfig
from signals.engine import StatusOutcome, apply_status, create_signal
from signals.errors import InvalidFormat, NotFound, PersistenceFailure, TransportFailure, Unauthorized
from signals.messages import (
    UNAUTHORIZED_TEXT,
    render_journal,
    render_owner_copy,
    render_owner_list,
    render_signal,
    render_signal_list,
    render_status,
)
from signals.parsing import (
    extract_signal_id,
    parse_owner_id,
    parse_signal_command,
    parse_status_command,
)
from signals.records import Direction, PostedLocation, Signal
from storage import JsonStateBackend, RelayState

logger = logging.getLogger(__name__)

_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class RelayService:

    def __init__(
        self,
        cfg: RelayConfig,
        backend: JsonStateBackend,
        transport,
        state: Optional[RelayState] = None,
        now_fn: Callable = utc_now,
    ):
        self.cfg = cfg
        self.backend = backend
        self.transport = transport
        self.state = state if state is not None else backend.load()
        self.policy = cfg.closing_policy
        self._now = now_fn
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def is_owner(self, user_id) -> bool:
        return user_id in self.state.owners

    def require_owner(self, user_id) -> None:
        if user_id is None or not self.is_owner(user_id):
            raise Unauthorized(UNAUTHORIZED_TEXT)

    def today(self) -> str:
        return local_date_str(self.cfg.tz, self._now())

    def _commit(self) -> None:
        try:
            self.backend.save(self.state)
        except Exception as e:
            logger.exception("Saving state failed – reloading last persisted state.")
            self.state = self.backend.load()
            raise PersistenceFailure("⚠️ Could not save state. The last change was not recorded.") from e

    async def _fan_out(self, recipients: Iterable, text: str) -> int:
        """Send `text` to every recipient; a failed recipient is logged and skipped."""
        delivered = 0
        for chat_id in recipients:
            try:
                await self.transport.send_message(chat_id, text)
                delivered += 1
            except TransportFailure as e:
                logger.error("Delivery to %s failed: %s", chat_id, e)
        return delivered

    # ------------------------------------------------------------------
    # signals
    # ------------------------------------------------------------------
    async def post_signal(self, direction: Direction, text: str, image=None) -> Signal:
        """
        Parse a /buy or /sell command, post it to the channel, pin it, store
        it and DM a copy to every owner.

        If the channel post itself fails nothing is stored and
        TransportFailure propagates to the caller.
        """
        parsed = parse_signal_command(text)

        async with self._lock:
            sig = create_signal(
                direction,
                parsed.symbol,
                parsed.entry,
                parsed.stop_loss,
                parsed.take_profits,
                existing_ids=self.state.signals.ids(),
            )
            body = render_signal(sig)
            channel = self.cfg.channel

            try:
                await self.transport.unpin_all(channel)
            except TransportFailure as e:
                logger.warning("Unpinning old signals failed: %s", e)

            if image is not None:
                sent = await self.transport.send_image(channel, image, body)
            else:
                sent = await self.transport.send_message(channel, body)

            try:
                await self.transport.pin(channel, sent.message_id)
            except TransportFailure as e:
                logger.error("Pinning signal %s failed: %s", sig.id, e)

            sig.posted = PostedLocation(sent.chat_id, sent.message_id)
            self.state.signals.insert(sig)
            self._commit()
            logger.info("Signal %s posted: %s %s @ %s", sig.id, sig.direction.value, sig.symbol, sig.entry)

            await self._fan_out(self.state.owners, render_owner_copy(sig))
        return sig

    async def apply_status_reply(self, replied_text: Optional[str], command_text: Optional[str], image=None) -> StatusOutcome:
        """
        Apply an owner's status reply (`hit 4120`, `sl`, `tp2 4122`, `cancel`)
        to the signal whose `Signal ID:` trailer appears in `replied_text`.
        """
        signal_id = extract_signal_id(replied_text)
        if signal_id is None:
            raise NotFound("Signal ID not found.")

        async with self._lock:
            sig = self.state.signals.lookup(signal_id)
            kind, price = parse_status_command(command_text)
            outcome = apply_status(sig, kind, price, self.policy)

            if outcome.record is not None:
                self.state.journal.append(self.today(), outcome.record)
            if outcome.closes:
                self.state.signals.remove(sig.id)
            self._commit()
            logger.info(
                "Signal %s: %s%s%s",
                sig.id,
                kind.key,
                f" @ {price}" if price is not None else "",
                " (closed)" if outcome.closes else "",
            )

            text = render_status(
                kind,
                sig.id,
                price=outcome.price,
                risk_multiple=outcome.record.risk_multiple if outcome.record else None,
            )
            await self._announce(sig, text, image)
        return outcome

    async def _announce(self, sig: Signal, text: str, image=None) -> None:
        if sig.posted is not None:
            chat_id, reply_to = sig.posted.chat_id, sig.posted.message_id
        else:
            chat_id, reply_to = self.cfg.channel, None
        try:
            if image is not None:
                await self.transport.send_image(chat_id, image, text, reply_to=reply_to)
            else:
                await self.transport.send_message(chat_id, text, reply_to=reply_to)
        except TransportFailure as e:
            logger.error("Announcing status for %s failed: %s", sig.id, e)

    def signals_text(self) -> str:
        return render_signal_list(self.state.signals.list_all())

    # ------------------------------------------------------------------
    # owners
    # ------------------------------------------------------------------
    def owners_text(self) -> str:
        return render_owner_list(self.state.owners)

    async def add_owner(self, raw_id: Optional[str]) -> bool:
        owner_id = parse_owner_id(raw_id)
        async with self._lock:
            added = self.state.owners.add(owner_id)
            if added:
                self._commit()
                logger.info("Owner %s added.", owner_id)
        return added

    async def remove_owner(self, raw_id: Optional[str]) -> bool:
        owner_id = parse_owner_id(raw_id)
        async with self._lock:
            removed = self.state.owners.remove(owner_id)
            if removed:
                self._commit()
                logger.info("Owner %s removed.", owner_id)
        return removed

    # ------------------------------------------------------------------
    # journal
    # ------------------------------------------------------------------
    def journal_text(self, date: Optional[str] = None) -> str:
        date = (date or "").strip() or self.today()
        if not _DATE.match(date):
            raise InvalidFormat("Date must be YYYY-MM-DD.")
        journal = self.state.journal
        return render_journal(date, journal.list_for_date(date), journal.summarize(date))

    async def send_daily_journal(self, date: Optional[str] = None) -> str:
        async with self._lock:
            text = self.journal_text(date)
            recipients = [self.cfg.channel] + self.state.owners.list()
            delivered = await self._fan_out(recipients, text)
        logger.info("Daily journal sent to %d/%d recipients.", delivered, len(recipients))
        return text
