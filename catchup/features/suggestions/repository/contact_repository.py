"""
Read-side contact access for suggestion generation.

Builds one ContactSnapshot per user: contacts with their group and tag
labels, plus how often each pair and triple was mentioned together in voice
notes.
"""

from catchup.db.helpers import fetch_all, with_db_retry
from catchup.features.suggestions.domain import (
    CommunicationStyle,
    Contact,
    ContactSnapshot,
    FrequencyPreference,
)
from catchup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ContactRepository:
    """PostgreSQL implementation of the ContactProvider port."""

    CONTACT_QUERY = """
        SELECT c.id::text AS id, c.name, c.frequency_preference::text AS frequency_preference,
               c.last_contact_date, c.recently_met, c.communication_style,
               c.interests, c.location, c.archived,
               COALESCE(
                   (SELECT array_agg(DISTINCT g.name)
                    FROM contact_groups cg JOIN groups g ON g.id = cg.group_id
                    WHERE cg.contact_id = c.id AND NOT g.archived),
                   '{}'
               ) AS group_names,
               COALESCE(
                   (SELECT array_agg(DISTINCT LOWER(t.text))
                    FROM contact_tags ct JOIN tags t ON t.id = ct.tag_id
                    WHERE ct.contact_id = c.id),
                   '{}'
               ) AS tag_texts
        FROM contacts c
        WHERE c.user_id = %s
    """

    PAIR_CO_MENTIONS = """
        SELECT a.contact_id::text AS first, b.contact_id::text AS second, COUNT(*) AS mentions
        FROM voice_note_contacts a
        JOIN voice_note_contacts b
          ON b.voice_note_id = a.voice_note_id AND a.contact_id < b.contact_id
        JOIN voice_notes v ON v.id = a.voice_note_id
        WHERE v.user_id = %s
        GROUP BY a.contact_id, b.contact_id
    """

    TRIPLE_CO_MENTIONS = """
        SELECT a.contact_id::text AS first, b.contact_id::text AS second,
               c.contact_id::text AS third, COUNT(*) AS mentions
        FROM voice_note_contacts a
        JOIN voice_note_contacts b
          ON b.voice_note_id = a.voice_note_id AND a.contact_id < b.contact_id
        JOIN voice_note_contacts c
          ON c.voice_note_id = a.voice_note_id AND b.contact_id < c.contact_id
        JOIN voice_notes v ON v.id = a.voice_note_id
        WHERE v.user_id = %s
        GROUP BY a.contact_id, b.contact_id, c.contact_id
    """

    @staticmethod
    def _row_to_contact(row: dict) -> Contact:
        return Contact(
            id=row["id"],
            display_name=row["name"],
            frequency_preference=FrequencyPreference.parse(row.get("frequency_preference")),
            last_contact_date=row.get("last_contact_date"),
            recently_met=bool(row.get("recently_met")),
            tags=frozenset(row.get("tag_texts") or ()),
            groups=frozenset(row.get("group_names") or ()),
            communication_style=CommunicationStyle.parse(row.get("communication_style")),
            interests=frozenset(interest.lower() for interest in row.get("interests") or ()),
            location=row.get("location"),
            archived=bool(row.get("archived")),
        )

    @with_db_retry()
    async def get_snapshot(self, user_id: str) -> ContactSnapshot:
        contact_rows = await fetch_all(self.CONTACT_QUERY, (user_id,))
        co_mentions: dict[frozenset[str], int] = {}
        for row in await fetch_all(self.PAIR_CO_MENTIONS, (user_id,)):
            co_mentions[frozenset((row["first"], row["second"]))] = int(row["mentions"])
        for row in await fetch_all(self.TRIPLE_CO_MENTIONS, (user_id,)):
            co_mentions[frozenset((row["first"], row["second"], row["third"]))] = int(row["mentions"])

        contacts = tuple(self._row_to_contact(row) for row in contact_rows)
        logger.debug(
            "Contact snapshot loaded",
            user_id=user_id,
            contact_count=len(contacts),
            co_mention_sets=len(co_mentions),
        )
        return ContactSnapshot(user_id=user_id, contacts=contacts, co_mentions=co_mentions)

    @with_db_retry()
    async def get_contacts(self, user_id: str, contact_ids: tuple[str, ...]) -> list[Contact]:
        if not contact_ids:
            return []
        rows = await fetch_all(
            f"{self.CONTACT_QUERY} AND c.id = ANY(%s::uuid[])",
            (user_id, list(contact_ids)),
        )
        return [self._row_to_contact(row) for row in rows]


contact_repository = ContactRepository()
