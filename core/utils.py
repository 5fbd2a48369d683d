import os
import json
import logging
import tempfile
from pathlib import Path
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def save_json(data: dict, path: str):
    """
    Write a dictionary to a JSON file atomically (temp file + os.replace).

    Errors are logged and re-raised: callers only acknowledge an operation
    once its state is on disk.
    """
    path = Path(path)
    ensure_dir(path.parent)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except Exception as e:
        logger.error(f"❌ Failed to save JSON to {path}: {e}")
        if os.path.exists(tmp):
            os.remove(tmp)
        raise


def load_json(path: str) -> dict:
    """Load a JSON file if it exists; a missing file yields {}."""
    if not os.path.exists(path):
        logger.warning(f"⚠️ JSON file not found: {path}")
        return {}
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def ensure_dir(path):
    """Create directory if it does not exist."""
    Path(path or ".").mkdir(parents=True, exist_ok=True)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_date_str(tz: ZoneInfo, now: datetime = None) -> str:
    """Calendar date (YYYY-MM-DD) of `now` (default: current time) in `tz`."""
    now = now or utc_now()
    return now.astimezone(tz).date().isoformat()
