"""
Tests for the suggestion routes with auth and lifecycle dependencies overridden.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from catchup.features.suggestions.api.router import get_lifecycle_manager
from catchup.features.suggestions.domain import ContactSnapshot, SuggestionStatus
from catchup.features.suggestions.lifecycle import SuggestionLifecycleManager
from catchup.main import app


@pytest.fixture
def client(store, feed, fakes, now, make_contact, make_suggestion, apply_auth_override):
    store.add(make_suggestion())
    store.add(make_suggestion("s-2", contact_ids=("bob",), priority=60.0))
    store.add(make_suggestion("s-other", user_id="someone-else"))
    provider = fakes.ContactProvider(
        {"user-123": ContactSnapshot(user_id="user-123", contacts=(make_contact("alice"), make_contact("bob")))}
    )
    manager = SuggestionLifecycleManager(store=store, contacts=provider, feed=feed, clock=lambda: now)

    apply_auth_override(app)
    app.dependency_overrides[get_lifecycle_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_list_suggestions_returns_actionable_for_user(client):
    response = client.get("/suggestions")

    assert response.status_code == 200
    data = response.json()
    assert data["total_count"] == 2
    assert [s["id"] for s in data["suggestions"]] == ["s-1", "s-2"]
    assert data["suggestions"][0]["status"] == "pending"
    assert data["suggestions"][0]["slot"]["timezone"] == "UTC"


def test_accept_then_accept_again_conflicts(client, store):
    first = client.post("/suggestions/s-1/accept")
    second = client.post("/suggestions/s-1/accept")

    assert first.status_code == 200
    body = first.json()
    assert body["suggestion"]["status"] == "accepted"
    assert body["published_to_feed"] is True
    assert body["draft_message"].startswith("Hey Alice!")
    assert second.status_code == 409
    assert store.suggestions["s-1"].status is SuggestionStatus.ACCEPTED


def test_other_users_suggestion_is_not_found(client):
    response = client.post("/suggestions/s-other/accept")

    assert response.status_code == 404


def test_dismiss_with_blank_reason_is_rejected(client, store):
    empty = client.post("/suggestions/s-1/dismiss", json={"reason": ""})
    whitespace = client.post("/suggestions/s-1/dismiss", json={"reason": "   "})

    assert empty.status_code == 422
    assert whitespace.status_code == 422
    assert store.suggestions["s-1"].status is SuggestionStatus.PENDING


def test_dismiss_records_reason(client, store):
    response = client.post("/suggestions/s-2/dismiss", json={"reason": "Met too recently"})

    assert response.status_code == 200
    assert response.json()["suggestion"]["dismissal_reason"] == "Met too recently"
    assert "bob" in store.recently_met


def test_snooze_validation_and_success(client, now):
    invalid = client.post("/suggestions/s-1/snooze", json={"hours": 0})
    valid = client.post("/suggestions/s-1/snooze", json={"hours": 3})

    assert invalid.status_code == 422
    assert valid.status_code == 200
    suggestion = valid.json()["suggestion"]
    assert suggestion["status"] == "snoozed"
    assert suggestion["snoozed_until"].startswith((now + timedelta(hours=3)).strftime("%Y-%m-%dT%H:%M"))


def test_dismissal_reasons_route(client):
    response = client.get("/suggestions/s-1/dismissal-reasons")

    assert response.status_code == 200
    assert "Monthly is too frequent" in response.json()["reasons"]


def test_routes_require_authentication():
    app.dependency_overrides.clear()
    unauthenticated = TestClient(app)

    response = unauthenticated.get("/suggestions")

    assert response.status_code in (401, 403)
