from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import numpy as np

from safewave.risk.model import RainWindows

HOURLY_WINDOWS = {'h1': 1, 'h2': 2, 'h3': 3, 'h5': 5, 'h12': 12, 'h24': 24}
DAILY_WINDOWS = {'d3': 3, 'd7': 7, 'd14': 14}


def _as_array(values: Optional[Sequence]) -> np.ndarray:
    # null readings count as no rain
    if not values:
        return np.zeros(0)
    return np.array([v if isinstance(v, (int, float)) else 0.0 for v in values], dtype=float)


def current_index(times: Sequence[str], now: datetime) -> int:
    """
    Index of the last timestamp not after `now` (0 if all are in the future).
    """
    stamps = np.array([datetime.fromisoformat(t) for t in times], dtype='datetime64[s]')
    idx = int(np.searchsorted(stamps, np.datetime64(now.replace(tzinfo=None), 's'), side='right')) - 1
    return max(idx, 0)


def trailing_sum(values: Sequence, end_idx: int, count: int) -> float:
    """
    Sum of `count` values ending at `end_idx` inclusive, rounded to 0.01 mm.
    """
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    end = min(end_idx, arr.size - 1) + 1
    start = max(end - count, 0)
    return round(float(arr[start:end].sum()), 2)


def compute_rain_windows(payload: dict, now: Optional[datetime] = None) -> RainWindows:
    """
    Build trailing rain windows from an Open-Meteo response holding hourly
    `precipitation` and daily `precipitation_sum` (local time, past days included).
    """
    hourly = payload.get('hourly') or {}
    if not hourly.get('time') or not hourly.get('precipitation'):
        raise ValueError('Incomplete hourly precipitation data')
    if now is None:
        # timestamps are in the location's local time
        offset = timedelta(seconds=payload.get('utc_offset_seconds') or 0)
        now = datetime.now(timezone.utc).replace(tzinfo=None) + offset
    idx = current_index(hourly['time'], now)
    windows = {name: trailing_sum(hourly['precipitation'], idx, hours) for name, hours in HOURLY_WINDOWS.items()}

    daily = payload.get('daily') or {}
    daily_rain = daily.get('precipitation_sum') or []
    day_idx = current_index(daily['time'], now) if daily.get('time') else len(daily_rain) - 1
    for name, days in DAILY_WINDOWS.items():
        windows[name] = trailing_sum(daily_rain, day_idx, days)
    return RainWindows(**windows)
