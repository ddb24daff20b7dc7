# file: station_finder/utils.py

from datetime import datetime, timedelta
import pytz
from typing import List, Optional

GIOS_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S")


def get_current_time() -> datetime:
    """Get current UTC time as an aware datetime."""
    return datetime.now(pytz.utc)


def parse_gios_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a GIOŚ timestamp ("2024-03-01 13:00:00"); returns None for empty input."""
    if not value:
        return None
    for fmt in GIOS_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return datetime.fromisoformat(value)


def time_ticks(start: datetime, end: datetime, step: timedelta = timedelta(hours=3)) -> List[datetime]:
    """Tick marks from start through end inclusive at a fixed step."""
    ticks = []
    current = start
    while current <= end:
        ticks.append(current)
        current += step
    return ticks
