"""
Calendar-backed collaborators for suggestion generation.

Busy intervals and anchor events both come from the calendar_events cache
kept in sync by the calendar integration; availability params and the user's
timezone come from their own tables. Users whose calendar has never synced
have no busy data at all, which resolves to zero slots.
"""

from datetime import datetime, time

from catchup.db.helpers import fetch_all, fetch_one, with_db_retry
from catchup.features.suggestions.domain import (
    AnchorEvent,
    AvailabilityParams,
    BusyInterval,
    TimeBlock,
)
from catchup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CALENDAR_PROVIDER = "google_calendar"


def _parse_time(value: str | time | None) -> time | None:
    """Parse stored 'HH:MM' strings (or TIME columns); malformed values are ignored."""
    if not value:
        return None
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(value)
    except ValueError:
        logger.warning("Ignoring malformed availability time", value=value)
        return None


def _parse_blocks(raw: list | None) -> tuple[TimeBlock, ...]:
    blocks: list[TimeBlock] = []
    for item in raw or ():
        start, end = _parse_time(item.get("startTime")), _parse_time(item.get("endTime"))
        if start is None or end is None:
            continue
        try:
            blocks.append(TimeBlock(day_of_week=int(item.get("dayOfWeek", -1)), start=start, end=end))
        except ValueError as e:
            logger.warning("Ignoring invalid time block", block=item, error=str(e))
    return tuple(blocks)


class CalendarRepository:
    """PostgreSQL implementation of the AvailabilityProvider and AnchorEventProvider ports."""

    @with_db_retry()
    async def get_busy_intervals(
        self, user_id: str, window_start: datetime, window_end: datetime
    ) -> list[BusyInterval] | None:
        user = await fetch_one(
            "SELECT last_calendar_sync FROM users WHERE id = %s",
            (user_id,),
        )
        if not user or user["last_calendar_sync"] is None:
            logger.info("No synced calendar data for user", user_id=user_id)
            return None

        rows = await fetch_all(
            """
            SELECT start_time, end_time, timezone
            FROM calendar_events
            WHERE user_id = %s
              AND is_busy = TRUE
              AND start_time < %s
              AND end_time > %s
            ORDER BY start_time
            """,
            (user_id, window_end, window_start),
        )
        return [
            BusyInterval(start=row["start_time"], end=row["end_time"], timezone=row["timezone"])
            for row in rows
        ]

    @with_db_retry()
    async def get_availability_params(self, user_id: str) -> AvailabilityParams | None:
        row = await fetch_one(
            """
            SELECT COALESCE(u.timezone, 'UTC') AS timezone,
                   ap.manual_time_blocks, ap.commute_windows,
                   ap.nighttime_start, ap.nighttime_end
            FROM users u
            LEFT JOIN availability_params ap ON ap.user_id = u.id
            WHERE u.id = %s
            """,
            (user_id,),
        )
        if not row:
            return None

        nighttime_start = _parse_time(row.get("nighttime_start"))
        nighttime_end = _parse_time(row.get("nighttime_end"))
        if nighttime_start is not None and nighttime_start == nighttime_end:
            logger.warning("Ignoring empty nighttime range", user_id=user_id, value=str(nighttime_start))
            nighttime_start = nighttime_end = None

        return AvailabilityParams(
            timezone=row["timezone"],
            manual_time_blocks=_parse_blocks(row.get("manual_time_blocks")),
            commute_windows=_parse_blocks(row.get("commute_windows")),
            nighttime_start=nighttime_start,
            nighttime_end=nighttime_end,
        )

    @with_db_retry()
    async def get_anchor_events(
        self, user_id: str, window_start: datetime, window_end: datetime
    ) -> list[AnchorEvent]:
        """Timed events with a title inside the window; all-day events never anchor."""
        rows = await fetch_all(
            """
            SELECT id::text AS id, summary, description, location, start_time, end_time, timezone
            FROM calendar_events
            WHERE user_id = %s
              AND is_all_day = FALSE
              AND summary IS NOT NULL
              AND start_time >= %s
              AND end_time <= %s
            ORDER BY start_time, id
            """,
            (user_id, window_start, window_end),
        )
        return [
            AnchorEvent(
                id=row["id"],
                title=row["summary"],
                start=row["start_time"],
                end=row["end_time"],
                timezone=row["timezone"],
                description=row.get("description"),
                location=row.get("location"),
            )
            for row in rows
        ]


class UserRepository:
    """Users eligible for suggestion generation: those with a connected calendar."""

    @with_db_retry()
    async def list_users_needing_refresh(self) -> list[str]:
        rows = await fetch_all(
            "SELECT DISTINCT user_id::text AS user_id FROM oauth_tokens WHERE provider = %s ORDER BY 1",
            (CALENDAR_PROVIDER,),
        )
        return [row["user_id"] for row in rows]


calendar_repository = CalendarRepository()
user_repository = UserRepository()
