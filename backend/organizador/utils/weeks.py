import math
from datetime import date, datetime, timedelta
from typing import Optional, Tuple


def current_academic_week(now: Optional[datetime] = None) -> int:
    """Week number counted from January 1st, starting at 1."""
    now = now or datetime.now()
    start = datetime(now.year, 1, 1)
    elapsed = (now - start).total_seconds() / (7 * 24 * 60 * 60)
    return max(1, math.ceil(elapsed))


def week_window(semana: int, today: Optional[date] = None) -> Tuple[date, date]:
    """Monday..Sunday range of ``semana``, where week 1 is the current week."""
    today = today or date.today()
    monday = today - timedelta(days=today.weekday())
    start = monday + timedelta(weeks=semana - 1)
    return start, start + timedelta(days=6)
