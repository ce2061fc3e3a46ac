"""Schedule timing helpers for the trim daemon.

The daemon runs a trim pass every `interval`. A schedule can optionally be
anchored to a fixed UTC time-of-day (HH:MM): daily schedules run at that
time, and N-hour schedules align to the phase implied by the anchor.

All timestamps returned by these helpers are timezone-aware UTC datetimes.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union


DAY_SECONDS = 86400

_INTERVAL_UNITS = {"s": 1, "m": 60, "h": 3600, "d": DAY_SECONDS}
_INTERVAL_PART = re.compile(r"(\d+)\s*([smhd])")


def parse_interval(value: Union[str, int, float]) -> int:
    """Parse an interval into seconds.

    Accepts plain seconds (`3600`, `"3600"`) and unit strings such as `"3h"`,
    `"30m"`, `"1d"` or `"1h30m"`.

    Args:
        value: Interval value.

    Returns:
        int: Interval in seconds.

    Raises:
        ValueError: If the value cannot be parsed or is not positive.
    """

    if isinstance(value, bool):
        raise ValueError(f"Invalid interval: {value!r}")

    if isinstance(value, (int, float)):
        seconds = int(value)
    else:
        raw = str(value or "").strip().lower()
        if raw.isdigit():
            seconds = int(raw)
        else:
            compact = raw.replace(" ", "")
            parts = _INTERVAL_PART.findall(compact)
            if not parts or "".join(f"{n}{u}" for n, u in parts) != compact:
                raise ValueError(f"Invalid interval (expected e.g. 3h, 30m, 1d): {value!r}")
            seconds = sum(int(number) * _INTERVAL_UNITS[unit] for number, unit in parts)

    if seconds <= 0:
        raise ValueError(f"Interval must be positive: {value!r}")
    return seconds


def parse_time_hhmm(value: str) -> Tuple[int, int]:
    """Parse a HH:MM string into (hour, minute).

    Args:
        value: Time string in HH:MM format.

    Returns:
        Tuple[int, int]: Parsed (hour, minute).

    Raises:
        ValueError: If the value cannot be parsed or is out of range.
    """

    raw = str(value or "").strip()
    parts = raw.split(":")
    if len(parts) != 2 or not parts[0].isdigit() or not parts[1].isdigit():
        raise ValueError(f"Invalid time-of-day (expected HH:MM): {value!r}")

    hour = int(parts[0])
    minute = int(parts[1])

    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        raise ValueError(f"Invalid time-of-day (out of range): {value!r}")

    return hour, minute


def _as_utc(reference: datetime) -> datetime:
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    return reference.astimezone(timezone.utc)


def compute_next_anchored_run_at(
    *,
    reference: datetime,
    interval_seconds: int,
    run_at_time: str,
) -> datetime:
    """Compute the next run time for an anchored interval schedule.

    Examples:
        - interval=86400 (daily), run_at_time=03:30 -> every day at 03:30 UTC
        - interval=21600 (6h), run_at_time=03:30 -> 03:30, 09:30, 15:30, 21:30 UTC

    Args:
        reference: Reference timestamp; the next run will be strictly after this time.
        interval_seconds: Interval in seconds.
        run_at_time: Time-of-day (HH:MM) in UTC.

    Returns:
        datetime: Next run timestamp (UTC).

    Raises:
        ValueError: If inputs are invalid.
    """

    if interval_seconds <= 0:
        raise ValueError(f"Invalid interval_seconds: {interval_seconds}")

    reference = _as_utc(reference)
    hour, minute = parse_time_hhmm(run_at_time)
    candidate = reference.replace(hour=hour, minute=minute, second=0, microsecond=0)

    if candidate > reference:
        # Step back to the earliest slot after the reference on the anchor's phase.
        steps_back = int((candidate - reference).total_seconds() // interval_seconds)
        candidate = candidate - timedelta(seconds=steps_back * interval_seconds)
        if candidate <= reference:
            candidate = candidate + timedelta(seconds=interval_seconds)
    else:
        delta_seconds = (reference - candidate).total_seconds()
        steps = int(delta_seconds // float(interval_seconds)) + 1
        candidate = candidate + timedelta(seconds=steps * interval_seconds)

    return candidate


def compute_next_run_at(
    *,
    reference: datetime,
    interval_seconds: int,
    run_at_time: Optional[str] = None,
) -> datetime:
    """Compute the next trim run after `reference`.

    Args:
        reference: Reference timestamp.
        interval_seconds: Schedule interval in seconds.
        run_at_time: Optional HH:MM anchor (UTC).

    Returns:
        datetime: Next run timestamp (UTC).

    Raises:
        ValueError: If the interval or anchor is invalid.
    """

    if interval_seconds <= 0:
        raise ValueError(f"Invalid interval_seconds: {interval_seconds}")

    if run_at_time:
        return compute_next_anchored_run_at(
            reference=reference,
            interval_seconds=interval_seconds,
            run_at_time=run_at_time,
        )

    return _as_utc(reference) + timedelta(seconds=int(interval_seconds))


def seconds_until(target: datetime, *, now: Optional[datetime] = None) -> float:
    """Return the non-negative number of seconds from `now` until `target`."""

    now = _as_utc(now or datetime.now(timezone.utc))
    return max(0.0, (_as_utc(target) - now).total_seconds())
