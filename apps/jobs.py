"""
Out-of-process jobs against the persisted state file.

Useful when the bot is down or for a manual resend of a day's journal:
    python -m apps.jobs journal [YYYY-MM-DD]
    python -m apps.jobs owners
    python -m apps.jobs signals

These only read the state file; the running bot stays its only writer.
"""
import logging
from datetime import datetime

from .alert import send
from core.logging import configure_logging
from core.utils import load_json, local_date_str
from signals.config import RelayConfig, load_config
from signals.messages import render_journal, render_owner_list, render_signal_list
from storage import RelayState


def _valid_date(date: str) -> bool:
    try:
        datetime.strptime(date, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _load_state(cfg: RelayConfig) -> RelayState:
    return RelayState.from_dict(load_json(cfg.data_file))


def journal_job(cfg: RelayConfig, date: str = None) -> str:
    """
    Send the journal for `date` (default: today in the journal time zone) to
    the channel and every owner. A failed recipient does not stop the rest.
    """
    if date:
        if not _valid_date(date):
            raise ValueError(f"Date must be YYYY-MM-DD, got {date!r}")
    else:
        date = local_date_str(cfg.tz)

    state = _load_state(cfg)
    text = render_journal(date, state.journal.list_for_date(date), state.journal.summarize(date))

    recipients = [cfg.channel] + state.owners.list()
    delivered = sum(1 for chat_id in recipients if send(cfg.bot_token, chat_id, text))
    logging.info("Journal %s sent to %d/%d recipients.", date, delivered, len(recipients))
    return text


def owners_job(cfg: RelayConfig) -> str:
    return render_owner_list(_load_state(cfg).owners)


def signals_job(cfg: RelayConfig) -> str:
    return render_signal_list(_load_state(cfg).signals.list_all())


_USAGE = "Usage: jobs.py [journal [YYYY-MM-DD]|owners|signals]"


def _cli():
    import sys

    cfg = load_config()
    configure_logging(cfg.log_file)
    job = sys.argv[1] if len(sys.argv) > 1 else None

    if job == "journal":
        date = sys.argv[2] if len(sys.argv) > 2 else None
        if date and not _valid_date(date):
            print(_USAGE)
            return
        print(journal_job(cfg, date))
    elif job == "owners":
        print(owners_job(cfg))
    elif job == "signals":
        print(signals_job(cfg))
    else:
        print(_USAGE)


if __name__ == "__main__":
    _cli()
