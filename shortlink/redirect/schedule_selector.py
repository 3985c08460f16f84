from datetime import datetime
from typing import Iterable, Optional

from shortlink.links.models import Schedule
from shortlink.utils import as_utc


def select_schedule(schedules: Iterable[Schedule], now: datetime) -> Optional[Schedule]:
    """Returns the schedule covering `now`, or None to fall back to the link target.

    Windows are half-open: start_time <= now < end_time. Active schedules of a
    link must not overlap, but if they do the earliest start wins, then the
    lowest id.
    """
    now = as_utc(now)
    candidates = [
        schedule for schedule in schedules
        if schedule.is_active and as_utc(schedule.start_time) <= now < as_utc(schedule.end_time)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda schedule: (as_utc(schedule.start_time), schedule.id))
