from datetime import datetime
from zoneinfo import ZoneInfo

from pqr_scheduling.core import config


def local_now() -> datetime:
    """Naive wall-clock time in the configured business timezone."""
    return datetime.now(ZoneInfo(config.APP_TIMEZONE)).replace(tzinfo=None, microsecond=0)
