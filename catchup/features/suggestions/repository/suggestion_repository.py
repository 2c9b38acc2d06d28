"""
Persistence for suggestions and generation batches.

Every write the engine makes goes through here: batch inserts guarded by the
unique (user_id, window_bucket) row, and compare-and-set status transitions
that apply their side effects in the same transaction.
"""

from datetime import datetime

import psycopg

from catchup.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one, with_db_retry
from catchup.db.pool import db_pool
from catchup.features.suggestions.domain import (
    Suggestion,
    SuggestionStatus,
    SuggestionType,
    TimeSlot,
    TriggerType,
)
from catchup.features.suggestions.ports import StatusTransition
from catchup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class SuggestionRepositoryError(DatabaseError):
    """More specific exception for suggestion persistence failures."""


class SuggestionRepository:
    """PostgreSQL implementation of the SuggestionStore port."""

    SELECT_SUGGESTIONS = """
        SELECT s.id, s.user_id, s.type, s.trigger_type,
               s.proposed_timeslot_start, s.proposed_timeslot_end,
               s.proposed_timeslot_timezone, s.in_person_eligible,
               s.reasoning, s.priority, s.generation_batch_id,
               s.shared_context_score, s.status, s.dismissal_reason,
               s.snoozed_until, s.calendar_event_id, s.created_at, s.updated_at,
               COALESCE(
                   array_agg(sc.contact_id::text ORDER BY sc.contact_id)
                   FILTER (WHERE sc.contact_id IS NOT NULL),
                   '{}'
               ) AS contact_ids
        FROM suggestions s
        LEFT JOIN suggestion_contacts sc ON sc.suggestion_id = s.id
    """

    @staticmethod
    def _row_to_suggestion(row: dict | None) -> Suggestion | None:
        if not row:
            return None

        return Suggestion(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            type=SuggestionType(row["type"]),
            contact_ids=tuple(row["contact_ids"] or ()),
            slot=TimeSlot(
                start=row["proposed_timeslot_start"],
                end=row["proposed_timeslot_end"],
                timezone=row["proposed_timeslot_timezone"],
                in_person_eligible=row.get("in_person_eligible", True),
            ),
            trigger_type=TriggerType(row["trigger_type"]),
            reasoning=row["reasoning"],
            priority=float(row["priority"] or 0),
            generation_batch_id=str(row["generation_batch_id"]) if row.get("generation_batch_id") else "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            shared_context_score=row.get("shared_context_score"),
            status=SuggestionStatus(row["status"]),
            dismissal_reason=row.get("dismissal_reason"),
            snoozed_until=row.get("snoozed_until"),
            calendar_event_id=row.get("calendar_event_id"),
        )

    @with_db_retry()
    async def batch_exists(self, user_id: str, window_bucket: int) -> bool:
        row = await fetch_one(
            "SELECT 1 AS found FROM suggestion_batches WHERE user_id = %s AND window_bucket = %s",
            (user_id, window_bucket),
        )
        return row is not None

    async def save_batch(
        self,
        user_id: str,
        window_bucket: int,
        batch_id: str,
        suggestions: list[Suggestion],
    ) -> bool:
        """
        Insert the batch marker and its suggestions in one transaction.

        The marker insert uses ON CONFLICT DO NOTHING; when it writes no row a
        concurrent run already owns this window and nothing else is written.
        """
        try:
            async with db_pool.transaction() as conn:
                claimed = await execute_query(
                    """
                    INSERT INTO suggestion_batches (id, user_id, window_bucket, suggestion_count)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (user_id, window_bucket) DO NOTHING
                    """,
                    (batch_id, user_id, window_bucket, len(suggestions)),
                    connection=conn,
                )
                if claimed == 0:
                    logger.info(
                        "Suggestion batch already persisted, skipping",
                        user_id=user_id,
                        batch_id=batch_id,
                        window_bucket=window_bucket,
                    )
                    return False

                for suggestion in suggestions:
                    await self._insert_suggestion(conn, suggestion)

        except psycopg.Error as e:
            logger.error("Failed to persist suggestion batch", user_id=user_id, batch_id=batch_id, error=str(e))
            raise SuggestionRepositoryError(f"Batch insert failed: {e}", operation="save_batch") from e

        logger.info(
            "Suggestion batch persisted",
            user_id=user_id,
            batch_id=batch_id,
            suggestion_count=len(suggestions),
        )
        return True

    @staticmethod
    async def _insert_suggestion(conn: psycopg.AsyncConnection, suggestion: Suggestion) -> None:
        primary_contact = suggestion.contact_ids[0] if suggestion.type is SuggestionType.INDIVIDUAL else None
        await execute_query(
            """
            INSERT INTO suggestions (
                id, user_id, contact_id, type, trigger_type,
                proposed_timeslot_start, proposed_timeslot_end, proposed_timeslot_timezone,
                in_person_eligible, reasoning, priority, generation_batch_id,
                shared_context_score, status, calendar_event_id, created_at, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                suggestion.id,
                suggestion.user_id,
                primary_contact,
                suggestion.type.value,
                suggestion.trigger_type.value,
                suggestion.slot.start,
                suggestion.slot.end,
                suggestion.slot.timezone,
                suggestion.slot.in_person_eligible,
                suggestion.reasoning,
                suggestion.priority,
                suggestion.generation_batch_id,
                suggestion.shared_context_score,
                suggestion.status.value,
                suggestion.calendar_event_id,
                suggestion.created_at,
                suggestion.updated_at,
            ),
            connection=conn,
        )
        for contact_id in suggestion.contact_ids:
            await execute_query(
                "INSERT INTO suggestion_contacts (suggestion_id, contact_id) VALUES (%s, %s)",
                (suggestion.id, contact_id),
                connection=conn,
            )

    @with_db_retry()
    async def get_outstanding(self, user_id: str) -> list[Suggestion]:
        query = f"""
            {self.SELECT_SUGGESTIONS}
            WHERE s.user_id = %s AND s.status IN ('pending', 'snoozed')
            GROUP BY s.id
            ORDER BY s.created_at, s.id
        """
        rows = await fetch_all(query, (user_id,))
        return [self._row_to_suggestion(row) for row in rows]

    @with_db_retry()
    async def get(self, user_id: str, suggestion_id: str) -> Suggestion | None:
        query = f"""
            {self.SELECT_SUGGESTIONS}
            WHERE s.user_id = %s AND s.id = %s
            GROUP BY s.id
        """
        return self._row_to_suggestion(await fetch_one(query, (user_id, suggestion_id)))

    @with_db_retry()
    async def list_actionable(self, user_id: str, now: datetime) -> list[Suggestion]:
        """Pending suggestions plus snoozed ones whose snooze has elapsed, best first."""
        query = f"""
            {self.SELECT_SUGGESTIONS}
            WHERE s.user_id = %s
              AND (s.status = 'pending' OR (s.status = 'snoozed' AND s.snoozed_until <= %s))
            GROUP BY s.id
            ORDER BY s.priority DESC, s.proposed_timeslot_start, s.id
        """
        rows = await fetch_all(query, (user_id, now))
        return [self._row_to_suggestion(row) for row in rows]

    async def apply_transition(self, transition: StatusTransition) -> Suggestion | None:
        try:
            async with db_pool.transaction() as conn:
                updated = await fetch_one(
                    """
                    UPDATE suggestions
                    SET status = %s,
                        dismissal_reason = COALESCE(%s, dismissal_reason),
                        snoozed_until = %s,
                        updated_at = %s
                    WHERE id = %s AND user_id = %s AND status = %s
                    RETURNING id
                    """,
                    (
                        transition.new_status.value,
                        transition.dismissal_reason,
                        transition.snoozed_until,
                        transition.at,
                        transition.suggestion_id,
                        transition.user_id,
                        transition.expected_status.value,
                    ),
                    connection=conn,
                )
                if not updated:
                    return None

                for log in transition.interaction_logs:
                    await execute_query(
                        """
                        INSERT INTO interaction_logs (id, user_id, contact_id, date, type, notes, suggestion_id)
                        VALUES (%s, %s, %s, %s, %s, %s, %s)
                        """,
                        (log.id, log.user_id, log.contact_id, log.date, log.type, log.notes, log.suggestion_id),
                        connection=conn,
                    )

                if transition.recently_met_contact_ids:
                    await execute_query(
                        """
                        UPDATE contacts
                        SET recently_met = TRUE, last_contact_date = %s, updated_at = %s
                        WHERE user_id = %s AND id = ANY(%s::uuid[])
                        """,
                        (
                            transition.at,
                            transition.at,
                            transition.user_id,
                            list(transition.recently_met_contact_ids),
                        ),
                        connection=conn,
                    )

                row = await fetch_one(
                    f"{self.SELECT_SUGGESTIONS} WHERE s.id = %s GROUP BY s.id",
                    (transition.suggestion_id,),
                    connection=conn,
                )

        except psycopg.Error as e:
            logger.error(
                "Failed to apply suggestion transition",
                suggestion_id=transition.suggestion_id,
                target_status=transition.new_status.value,
                error=str(e),
            )
            raise SuggestionRepositoryError(
                f"Transition failed: {e}", operation="apply_transition"
            ) from e

        return self._row_to_suggestion(row)


suggestion_repository = SuggestionRepository()
