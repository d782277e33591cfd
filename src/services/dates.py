"""Wall-clock helpers. All instants are epoch milliseconds; day keys are local."""

from __future__ import annotations

import time
from datetime import datetime, timedelta
from typing import Optional


def now_ms() -> int:
    return int(time.time() * 1000)


def day_key(ms: Optional[int] = None) -> str:
    """YYYY-MM-DD of the given instant in local time."""
    moment = datetime.now() if ms is None else datetime.fromtimestamp(ms / 1000)
    return moment.strftime("%Y-%m-%d")


def day_key_days_ago(days: int, ms: Optional[int] = None) -> str:
    moment = datetime.now() if ms is None else datetime.fromtimestamp(ms / 1000)
    return (moment - timedelta(days=days)).strftime("%Y-%m-%d")


def next_midnight_delay_ms(ms: Optional[int] = None) -> int:
    """Milliseconds from the given instant until the next local midnight."""
    moment = datetime.now() if ms is None else datetime.fromtimestamp(ms / 1000)
    midnight = (moment + timedelta(days=1)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return max(0, int((midnight - moment).total_seconds() * 1000))


def format_hms(total_sec: int) -> str:
    h, rem = divmod(max(0, int(total_sec)), 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"
