from datetime import timedelta

from catchup.features.suggestions.domain import (
    AvailabilityParams,
    ContactSnapshot,
    SuggestionStatus,
    SuggestionType,
)
from catchup.features.suggestions.pipeline.generation import (
    GenerationInput,
    SuggestionGenerator,
    batch_id_for,
    suggestion_id_for,
    window_bucket,
)


def _build_request(now, contacts, **overrides):
    return GenerationInput.for_lookahead(
        "user-123",
        ContactSnapshot(user_id="user-123", contacts=tuple(contacts)),
        now,
        days=2,
        busy_intervals=(),
        params=AvailabilityParams(),
        **overrides,
    )


def test_window_bucket_is_stable_inside_a_window(now):
    assert window_bucket(now, 24) == window_bucket(now + timedelta(hours=14), 24)
    assert window_bucket(now, 24) != window_bucket(now + timedelta(hours=15), 24)
    assert window_bucket(now, 0) == window_bucket(now, 1)


def test_batch_and_suggestion_ids_are_deterministic():
    batch_id = batch_id_for("user-123", 20514)

    assert batch_id == batch_id_for("user-123", 20514)
    assert batch_id != batch_id_for("user-123", 20515)
    assert batch_id != batch_id_for("user-456", 20514)
    assert suggestion_id_for(batch_id, ("bob", "alice")) == suggestion_id_for(batch_id, ("alice", "bob"))


def test_generate_is_deterministic(now, make_contact):
    generator = SuggestionGenerator()
    contacts = [
        make_contact("alice", groups=frozenset({"Climbing", "Work"})),
        make_contact("bob", groups=frozenset({"Climbing", "Work"})),
        make_contact("cara", days_ago=100),
        make_contact("dan", days_ago=3),
    ]
    request = _build_request(now, contacts)
    batch_id = batch_id_for("user-123", window_bucket(now, 24))

    first = generator.generate(request, batch_id)
    second = generator.generate(request, batch_id)

    assert [(s.id, s.contact_ids, s.slot) for s in first] == [(s.id, s.contact_ids, s.slot) for s in second]
    assert first
    assert all(s.status is SuggestionStatus.PENDING for s in first)
    assert all(s.generation_batch_id == batch_id for s in first)
    assert all(s.user_id == "user-123" for s in first)


def test_generated_suggestions_respect_sizes_and_uniqueness(now, make_contact):
    generator = SuggestionGenerator()
    contacts = [make_contact(name, groups=frozenset({"Climbing", "Work"})) for name in ("alice", "bob", "cara")]
    contacts.append(make_contact("dan", days_ago=45))

    suggestions = generator.generate(_build_request(now, contacts), "1b4e28ba-2fa1-4d3b-a3f5-ef19b5a7633a")

    contact_ids = [cid for s in suggestions for cid in s.contact_ids]
    assert len(contact_ids) == len(set(contact_ids))
    assert len({s.slot for s in suggestions}) == len(suggestions)
    for suggestion in suggestions:
        expected = SuggestionType.INDIVIDUAL if len(suggestion.contact_ids) == 1 else SuggestionType.GROUP
        assert 1 <= len(suggestion.contact_ids) <= 3
        assert suggestion.type is expected
    groups = [s for s in suggestions if s.type is SuggestionType.GROUP]
    assert groups[0].contact_ids == ("alice", "bob")
    assert groups[0].shared_context_score == 50.0


def test_generate_without_busy_data_yields_nothing(now, make_contact):
    generator = SuggestionGenerator()
    request = GenerationInput.for_lookahead(
        "user-123",
        ContactSnapshot(user_id="user-123", contacts=(make_contact("alice"),)),
        now,
        days=2,
    )

    assert generator.generate(request, batch_id_for("user-123", 1)) == []


def test_outstanding_suggestions_reduce_the_batch(now, make_contact):
    generator = SuggestionGenerator()
    contacts = [make_contact(name) for name in ("alice", "bob", "cara")]

    suggestions = generator.generate(
        _build_request(now, contacts, outstanding_contact_ids=frozenset({"alice"}), outstanding_count=9),
        batch_id_for("user-123", 1),
    )

    assert [s.contact_ids for s in suggestions] == [("bob",)]
