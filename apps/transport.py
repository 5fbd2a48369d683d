"""
Messaging transport on top of python-telegram-bot's Bot.

Every call raises TransportFailure on a Telegram error; callers decide
whether that aborts the operation (channel post of a new signal) or is just
logged (pins, announcements, owner fan-out).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from telegram import Bot
from telegram.error import TelegramError

from signals.errors import TransportFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageHandle:
    chat_id: Any
    message_id: int


class TelegramTransport:

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_message(self, chat_id, text: str, reply_to: Optional[int] = None) -> MessageHandle:
        try:
            msg = await self.bot.send_message(
                chat_id=chat_id, text=text, reply_to_message_id=reply_to
            )
        except TelegramError as e:
            raise TransportFailure(f"sendMessage to {chat_id} failed: {e}") from e
        return MessageHandle(chat_id, msg.message_id)

    async def send_image(self, chat_id, image, caption: str, reply_to: Optional[int] = None) -> MessageHandle:
        """`image` is anything Bot.send_photo accepts; the bot passes Telegram file_ids."""
        try:
            msg = await self.bot.send_photo(
                chat_id=chat_id, photo=image, caption=caption, reply_to_message_id=reply_to
            )
        except TelegramError as e:
            raise TransportFailure(f"sendPhoto to {chat_id} failed: {e}") from e
        return MessageHandle(chat_id, msg.message_id)

    async def pin(self, chat_id, message_id: int) -> None:
        try:
            await self.bot.pin_chat_message(chat_id=chat_id, message_id=message_id)
        except TelegramError as e:
            raise TransportFailure(f"pin in {chat_id} failed: {e}") from e

    async def unpin_all(self, chat_id) -> None:
        try:
            await self.bot.unpin_all_chat_messages(chat_id=chat_id)
        except TelegramError as e:
            raise TransportFailure(f"unpin_all in {chat_id} failed: {e}") from e
