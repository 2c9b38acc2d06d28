"""
Availability resolution - turns busy intervals and availability params into free slots.

All interval arithmetic runs on epoch seconds. Wall-clock values (commute
windows, nighttime, manual blocks) are localised per calendar day in the
user's timezone first, so DST days simply have 23 or 25 hours and no slot
can end before it starts.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from catchup.config import EngineConfig
from catchup.features.suggestions.domain.models import (
    AvailabilityParams,
    BusyInterval,
    TimeBlock,
    TimeSlot,
)
from catchup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Interval = tuple[int, int]


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort and coalesce overlapping or touching intervals; empty ones are dropped."""
    ordered = sorted((start, end) for start, end in intervals if end > start)
    merged: list[Interval] = []
    for start, end in ordered:
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def complement_intervals(busy: Sequence[Interval], lower: int, upper: int) -> list[Interval]:
    """Free gaps of ``[lower, upper)`` not covered by the merged ``busy`` list."""
    free: list[Interval] = []
    cursor = lower
    for start, end in busy:
        if end <= cursor:
            continue
        if start >= upper:
            break
        if start > cursor:
            free.append((cursor, start))
        cursor = max(cursor, end)
    if cursor < upper:
        free.append((cursor, upper))
    return free


def intersect_intervals(left: Sequence[Interval], right: Sequence[Interval]) -> list[Interval]:
    """Intersection of two merged interval lists."""
    result: list[Interval] = []
    i = j = 0
    while i < len(left) and j < len(right):
        start = max(left[i][0], right[j][0])
        end = min(left[i][1], right[j][1])
        if start < end:
            result.append((start, end))
        if left[i][1] < right[j][1]:
            i += 1
        else:
            j += 1
    return result


def _weekday(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return day.isoweekday() % 7


def _local_ts(day: date, wall: time, tz: ZoneInfo) -> int:
    return int(datetime.combine(day, wall, tzinfo=tz).timestamp())


class AvailabilityResolver:
    """Computes free TimeSlots for a lookahead window."""

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def resolve(
        self,
        busy_intervals: Sequence[BusyInterval] | None,
        params: AvailabilityParams | None,
        window_start: datetime,
        window_end: datetime,
    ) -> list[TimeSlot]:
        """
        Free slots between window_start and window_end, ordered by start.

        Args:
            busy_intervals: Calendar busy ranges, or None when the calendar
                collaborator had no data for the user
            params: Manual blocks, commute windows and nighttime range
            window_start: Aware start of the lookahead window
            window_end: Aware end of the lookahead window

        Returns:
            Slots tagged with the user's timezone; empty when nothing is free
        """
        if busy_intervals is None:
            logger.info("No busy-interval data available, resolving zero slots")
            return []

        params = params or AvailabilityParams(timezone=self.config.default_timezone)
        tz = self._zone(params.timezone)

        lower = math.ceil(window_start.timestamp())
        upper = math.floor(window_end.timestamp())
        if upper <= lower:
            return []

        calendar_busy = merge_intervals(
            (math.floor(interval.start.timestamp()), math.ceil(interval.end.timestamp()))
            for interval in busy_intervals
        )

        slots: list[TimeSlot] = []
        day = window_start.astimezone(tz).date()
        last_day = window_end.astimezone(tz).date()
        while day <= last_day:
            day_start = _local_ts(day, time.min, tz)
            day_end = _local_ts(day + timedelta(days=1), time.min, tz)
            lo, hi = max(day_start, lower), min(day_end, upper)
            if lo < hi:
                free = self._free_for_day(day, lo, hi, day_start, day_end, calendar_busy, params, tz)
                slots.extend(self._to_slots(free, tz))
            day += timedelta(days=1)

        logger.debug(
            "Availability resolved",
            slot_count=len(slots),
            timezone=tz.key,
            manual_blocks=len(params.manual_time_blocks),
        )
        return slots

    def _zone(self, name: str | None) -> ZoneInfo:
        try:
            return ZoneInfo(name or self.config.default_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone, falling back to default", timezone=name)
            return ZoneInfo(self.config.default_timezone)

    def _free_for_day(
        self,
        day: date,
        lo: int,
        hi: int,
        day_start: int,
        day_end: int,
        calendar_busy: Sequence[Interval],
        params: AvailabilityParams,
        tz: ZoneInfo,
    ) -> list[Interval]:
        busy: list[Interval] = [
            (max(start, lo), min(end, hi)) for start, end in calendar_busy if start < hi and end > lo
        ]
        busy.extend(self._block_pieces(day, params.commute_windows, tz, day_start, day_end))

        night = (params.nighttime_start, params.nighttime_end)
        # Equal bounds describe no range
        if None not in night and night[0] != night[1]:
            nightly = [
                TimeBlock(weekday, params.nighttime_start, params.nighttime_end)
                for weekday in range(7)
            ]
            busy.extend(self._block_pieces(day, nightly, tz, day_start, day_end))

        free = complement_intervals(merge_intervals(busy), lo, hi)

        if params.manual_time_blocks:
            allowed = merge_intervals(
                self._block_pieces(day, params.manual_time_blocks, tz, day_start, day_end)
            )
            free = intersect_intervals(free, allowed)

        return free

    @staticmethod
    def _block_pieces(
        day: date,
        blocks: Iterable[TimeBlock],
        tz: ZoneInfo,
        day_start: int,
        day_end: int,
    ) -> list[Interval]:
        """
        Epoch ranges that weekly blocks cover on ``day``.

        A block wrapping midnight covers [start, midnight) on its own weekday
        and [midnight, end) on the following day.
        """
        today = _weekday(day)
        yesterday = (today - 1) % 7
        pieces: list[Interval] = []
        for block in blocks:
            wraps = block.end < block.start
            if block.day_of_week == today:
                if wraps:
                    pieces.append((_local_ts(day, block.start, tz), day_end))
                else:
                    pieces.append((_local_ts(day, block.start, tz), _local_ts(day, block.end, tz)))
            if wraps and block.day_of_week == yesterday:
                pieces.append((day_start, _local_ts(day, block.end, tz)))
        return pieces

    def _to_slots(self, free: Sequence[Interval], tz: ZoneInfo) -> list[TimeSlot]:
        min_seconds = self.config.individual_min_minutes * 60
        max_seconds = max(self.config.max_slot_minutes * 60, min_seconds)
        in_person_seconds = self.config.in_person_min_minutes * 60
        slots: list[TimeSlot] = []
        for start, end in free:
            cursor = start
            while end - cursor >= min_seconds:
                piece_end = min(cursor + max_seconds, end)
                slots.append(
                    TimeSlot(
                        start=datetime.fromtimestamp(cursor, tz),
                        end=datetime.fromtimestamp(piece_end, tz),
                        timezone=tz.key,
                        in_person_eligible=piece_end - cursor >= in_person_seconds,
                    )
                )
                cursor = piece_end
        return slots
