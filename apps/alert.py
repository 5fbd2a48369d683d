import logging

import requests
from requests.adapters import HTTPAdapter, Retry

logger = logging.getLogger(__name__)

_session = requests.Session()
retries = Retry(total=3, backoff_factor=0.5, status_forcelist=[500, 502, 503, 504])
_session.mount("https://", HTTPAdapter(max_retries=retries))


def send(token: str, chat_id, text: str) -> bool:
    """Plain Bot API sendMessage for use outside the running bot; failures are logged."""
    url = f"https://api.telegram.org/bot{token}/sendMessage"
    try:
        resp = _session.post(url, json={"chat_id": chat_id, "text": text}, timeout=5)
        resp.raise_for_status()
    except Exception as exc:
        logger.error("Telegram failed for %s: %s", chat_id, exc)
        return False
    return True
