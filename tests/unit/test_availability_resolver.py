from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

from catchup.features.suggestions.domain import AvailabilityParams, BusyInterval, TimeBlock
from catchup.features.suggestions.pipeline.availability import (
    AvailabilityResolver,
    complement_intervals,
    intersect_intervals,
    merge_intervals,
)

MONDAY = datetime(2026, 3, 2, tzinfo=UTC)


def _at(hour, minute=0, day=MONDAY):
    return day + timedelta(hours=hour, minutes=minute)


def _spans(slots):
    return [(slot.start.astimezone(UTC), slot.end.astimezone(UTC)) for slot in slots]


def test_merge_coalesces_overlapping_and_touching_intervals():
    assert merge_intervals([(5, 8), (1, 3), (3, 4), (7, 10), (12, 12)]) == [(1, 4), (5, 10)]


def test_complement_and_intersection():
    assert complement_intervals([(2, 4), (6, 7)], 0, 10) == [(0, 2), (4, 6), (7, 10)]
    assert complement_intervals([], 0, 10) == [(0, 10)]
    assert intersect_intervals([(0, 5), (8, 12)], [(3, 9)]) == [(3, 5), (8, 9)]


def test_missing_busy_data_resolves_to_no_slots():
    resolver = AvailabilityResolver()

    assert resolver.resolve(None, AvailabilityParams(), _at(8), _at(18)) == []


def test_free_window_is_cut_into_slots_of_at_most_two_hours():
    resolver = AvailabilityResolver()

    slots = resolver.resolve([], AvailabilityParams(), _at(10), _at(13))

    assert _spans(slots) == [(_at(10), _at(12)), (_at(12), _at(13))]
    assert all(slot.in_person_eligible for slot in slots)
    assert all(slot.timezone == "UTC" for slot in slots)


def test_busy_intervals_are_removed_and_short_gaps_dropped():
    resolver = AvailabilityResolver()
    busy = [
        BusyInterval(start=_at(10, 30), end=_at(11)),
        BusyInterval(start=_at(11, 20), end=_at(12)),
    ]

    slots = resolver.resolve(busy, AvailabilityParams(), _at(10), _at(13))

    assert _spans(slots) == [(_at(10), _at(10, 30)), (_at(12), _at(13))]
    assert [slot.capacity_minutes for slot in slots] == [30, 60]
    assert [slot.in_person_eligible for slot in slots] == [False, True]


def test_commute_windows_are_busy_on_their_weekday():
    resolver = AvailabilityResolver()
    params = AvailabilityParams(commute_windows=(TimeBlock(1, time(8), time(9)),))

    slots = resolver.resolve([], params, _at(7), _at(10))

    assert _spans(slots) == [(_at(7), _at(8)), (_at(9), _at(10))]


def test_nighttime_wrapping_midnight_is_busy():
    resolver = AvailabilityResolver()
    params = AvailabilityParams(nighttime_start=time(22), nighttime_end=time(7))

    slots = resolver.resolve([], params, _at(20), _at(33))

    assert _spans(slots) == [(_at(20), _at(22)), (_at(31), _at(33))]


def test_equal_nighttime_bounds_block_nothing():
    resolver = AvailabilityResolver()
    params = AvailabilityParams(nighttime_start=time(0), nighttime_end=time(0))

    slots = resolver.resolve([], params, _at(10), _at(11))

    assert _spans(slots) == [(_at(10), _at(11))]


def test_manual_blocks_whitelist_free_time():
    resolver = AvailabilityResolver()
    params = AvailabilityParams(manual_time_blocks=(TimeBlock(1, time(12), time(13)),))

    slots = resolver.resolve([], params, _at(0), _at(48))

    assert _spans(slots) == [(_at(12), _at(13))]


def test_no_free_time_gives_no_slots():
    resolver = AvailabilityResolver()
    busy = [BusyInterval(start=_at(0), end=_at(24))]

    assert resolver.resolve(busy, AvailabilityParams(), _at(8), _at(18)) == []


def test_dst_transition_produces_only_valid_slots():
    resolver = AvailabilityResolver()
    tz = ZoneInfo("America/New_York")
    params = AvailabilityParams(
        timezone="America/New_York", nighttime_start=time(22), nighttime_end=time(7)
    )
    window_start = datetime(2026, 3, 7, 12, tzinfo=tz)
    window_end = datetime(2026, 3, 9, 12, tzinfo=tz)

    slots = resolver.resolve([], params, window_start, window_end)

    assert slots
    for slot in slots:
        assert slot.end > slot.start
        assert 30 <= slot.capacity_minutes <= 120
        assert slot.timezone == "America/New_York"
        local_start = slot.start.astimezone(tz)
        local_end = slot.end.astimezone(tz)
        assert time(7) <= local_start.time() < time(22)
        assert local_end.time() <= time(22) or local_end.time() == time(0)
    starts = [slot.start for slot in slots]
    assert starts == sorted(starts)


def test_unknown_timezone_falls_back_to_default():
    resolver = AvailabilityResolver()

    slots = resolver.resolve([], AvailabilityParams(timezone="Mars/Olympus"), _at(10), _at(11))

    assert [slot.timezone for slot in slots] == ["UTC"]
