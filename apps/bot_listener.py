import logging
import sys

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from core.logging import configure_logging
from signals.config import load_config
from signals.errors import RelayError, TransportFailure, Unauthorized
from signals.messages import HELP_TEXT
from signals.records import Action, Direction
from storage import JsonStateBackend
from .relay import RelayService
from .scheduler import build_scheduler
from .transport import TelegramTransport

logger = logging.getLogger(__name__)

_SIGNAL_CAPTION = r"(?i)^\s*/(buy|sell)\b"


def _relay(context: ContextTypes.DEFAULT_TYPE) -> RelayService:
    return context.bot_data["relay"]


def _largest_photo(message):
    return message.photo[-1].file_id if message.photo else None


def restricted(func):
    """
    Decorator to block non-owners with a fixed reply.
    """
    async def wrapped(update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        try:
            _relay(context).require_owner(user.id if user else None)
        except Unauthorized as e:
            await update.effective_message.reply_text(str(e))
            logger.warning("Unauthorized access attempt from %s", user.id if user else "unknown")
            return
        try:
            await func(update, context)
        except RelayError as e:
            await update.effective_message.reply_text(str(e))
    return wrapped


async def _post_signal(update: Update, context: ContextTypes.DEFAULT_TYPE, direction: Direction):
    msg = update.effective_message
    try:
        sig = await _relay(context).post_signal(
            direction, msg.caption or msg.text, image=_largest_photo(msg)
        )
    except TransportFailure as e:
        logger.error("Posting %s signal failed: %s", direction.value, e)
        await msg.reply_text(f"❌ Posting to the channel failed – {e}")
        return
    await msg.reply_text(f"Signal posted (ID: {sig.id})")


@restricted
async def buy(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _post_signal(update, context, Direction.BUY)


@restricted
async def sell(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _post_signal(update, context, Direction.SELL)


@restricted
async def signal_from_photo(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/buy or /sell sent as a photo caption."""
    caption = update.effective_message.caption or ""
    direction = Direction.SELL if caption.strip().lower().startswith("/sell") else Direction.BUY
    await _post_signal(update, context, direction)


@restricted
async def owners(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.effective_message.reply_text(_relay(context).owners_text())


@restricted
async def add_owner(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.args:
        return await update.effective_message.reply_text("Usage: /addowner TELEGRAM_ID")
    added = await _relay(context).add_owner(context.args[0])
    await update.effective_message.reply_text("✅ Owner added." if added else "Owner already exists.")


@restricted
async def remove_owner(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.args:
        return await update.effective_message.reply_text("Usage: /removeowner TELEGRAM_ID")
    removed = await _relay(context).remove_owner(context.args[0])
    await update.effective_message.reply_text("🗑️ Owner removed." if removed else "Owner not found.")


@restricted
async def journal(update: Update, context: ContextTypes.DEFAULT_TYPE):
    date = context.args[0] if context.args else None
    await update.effective_message.reply_text(_relay(context).journal_text(date))


@restricted
async def list_signals(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.effective_message.reply_text(_relay(context).signals_text())


@restricted
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.effective_message.reply_text(HELP_TEXT)


async def status_reply(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    Owner replies, in a private chat, to a message carrying `Signal ID: <id>`.
    Replies from non-owners are ignored.
    """
    msg = update.effective_message
    user = update.effective_user
    relay = _relay(context)
    if user is None or not relay.is_owner(user.id):
        return

    replied = msg.reply_to_message
    replied_text = "\n".join(t for t in (replied.text, replied.caption) if t)
    try:
        outcome = await relay.apply_status_reply(
            replied_text, msg.text or msg.caption, image=_largest_photo(msg)
        )
    except RelayError as e:
        return await msg.reply_text(str(e))

    if outcome.kind.action is Action.CANCEL:
        await msg.reply_text("Signal cancelled.")
    else:
        await msg.reply_text("Status sent to the channel.")


async def _on_startup(app: Application):
    relay = app.bot_data["relay"]
    scheduler = build_scheduler(relay, relay.cfg)
    scheduler.start()
    app.bot_data["scheduler"] = scheduler
    logger.info(
        "Relay bot running – channel=%s, owners=%d, live signals=%d",
        relay.cfg.channel, len(relay.state.owners), len(relay.state.signals),
    )


async def _on_shutdown(app: Application):
    scheduler = app.bot_data.get("scheduler")
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)


def register_handlers(app: Application):
    app.add_handler(CommandHandler("buy", buy))
    app.add_handler(CommandHandler("sell", sell))
    app.add_handler(CommandHandler("owners", owners))
    app.add_handler(CommandHandler("addowner", add_owner))
    app.add_handler(CommandHandler("removeowner", remove_owner))
    app.add_handler(CommandHandler("journal", journal))
    app.add_handler(CommandHandler("signals", list_signals))
    app.add_handler(CommandHandler("help", help_command))

    # Must come before status_reply: a captioned /buy photo may also be a reply
    app.add_handler(MessageHandler(filters.PHOTO & filters.CaptionRegex(_SIGNAL_CAPTION), signal_from_photo))
    app.add_handler(MessageHandler(
        filters.ChatType.PRIVATE & filters.REPLY & (filters.TEXT | filters.PHOTO) & ~filters.COMMAND,
        status_reply,
    ))


def main(config_path=None):
    cfg = load_config(config_path)
    configure_logging(cfg.log_file)

    backend = JsonStateBackend(cfg.data_file, initial_owners=cfg.owner_ids)
    app = (
        ApplicationBuilder()
        .token(cfg.bot_token)
        .post_init(_on_startup)
        .post_shutdown(_on_shutdown)
        .build()
    )
    app.bot_data["relay"] = RelayService(cfg, backend, TelegramTransport(app.bot))
    register_handlers(app)

    app.run_polling()


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else None)
