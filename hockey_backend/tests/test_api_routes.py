"""
HTTP-level tests for the API routes.

Service functions are mocked, so these tests check status codes, request
parsing and response shapes without a real database.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from hockey_backend.api.main import app
from hockey_backend.database.db import get_db_session
from hockey_backend.database.models import RegistrationOrigin, Team
from hockey_backend.services.demo_notification_store import get_demo_notification_store
from hockey_backend.services.notification_settings_service import UserNotFoundError
from hockey_backend.services.registration_service import (
    CapacityConflictError,
    InvalidTransitionError,
    MatchNotFoundError,
    PlayerNotFoundError,
)

REGISTRATION = {
    "id": 1,
    "match_id": 10,
    "player_id": 7,
    "player_name": "Jan Novak",
    "status": "REGISTERED",
    "team": "DARK",
    "position_in_match": None,
    "excuse_reason": None,
    "excuse_note": None,
    "admin_note": None,
    "origin": "user",
    "registered_at": "2030-01-01T10:00:00+00:00",
    "created_at": "2030-01-01T10:00:00+00:00",
    "updated_at": "2030-01-01T10:00:00+00:00",
}

MATCH = {
    "id": 10,
    "scheduled_at": "2030-01-15T18:30:00+00:00",
    "location": "Winter Stadium",
    "description": None,
    "price": None,
    "max_players": 12,
    "match_mode": None,
    "status": "SCHEDULED",
    "cancel_reason": None,
    "registered_count": 0,
    "created_at": None,
    "updated_at": None,
}


@pytest.fixture
def client():
    """TestClient whose database dependency hands out a mock session."""

    async def fake_db_session():
        yield MagicMock()

    app.dependency_overrides[get_db_session] = fake_db_session
    yield TestClient(app)
    app.dependency_overrides.pop(get_db_session, None)


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ============================================================================
# Registrations
# ============================================================================


@patch("hockey_backend.services.registration_service.upsert_registration", new_callable=AsyncMock)
def test_upsert_registration(mock_upsert, client):
    mock_upsert.return_value = REGISTRATION

    response = client.put("/api/matches/10/registrations/7", json={"team": "DARK"})

    assert response.status_code == 200
    assert response.json()["status"] == "REGISTERED"
    kwargs = mock_upsert.call_args.kwargs
    assert kwargs["team"] == Team.DARK
    assert kwargs["unregister"] is False
    assert kwargs["actor"] == RegistrationOrigin.USER


@patch("hockey_backend.services.registration_service.upsert_registration", new_callable=AsyncMock)
def test_player_upsert_ignores_actor_in_body(mock_upsert, client):
    mock_upsert.return_value = REGISTRATION

    for claimed in ("admin", "system"):
        response = client.put("/api/matches/10/registrations/7", json={"actor": claimed})

        assert response.status_code == 200
        assert mock_upsert.call_args.kwargs["actor"] == RegistrationOrigin.USER


@pytest.mark.parametrize(
    "error, status_code",
    [
        (MatchNotFoundError("Match 10 not found"), 404),
        (PlayerNotFoundError("Player 7 not found"), 404),
        (InvalidTransitionError("Match 10 is canceled"), 409),
        (CapacityConflictError("Position WING_LEFT is full"), 409),
        (ValueError("Position CENTER is not used in this match mode"), 400),
        (RuntimeError("database went away"), 500),
    ],
)
def test_upsert_registration_error_mapping(client, error, status_code):
    with patch(
        "hockey_backend.services.registration_service.upsert_registration",
        new=AsyncMock(side_effect=error),
    ):
        response = client.put("/api/matches/10/registrations/7", json={})

    assert response.status_code == status_code


def test_upsert_registration_rejects_unknown_excuse_reason(client):
    response = client.put(
        "/api/matches/10/registrations/7", json={"excuse_reason": "BORED"}
    )
    assert response.status_code == 422


@patch("hockey_backend.services.registration_service.upsert_registration", new_callable=AsyncMock)
def test_admin_upsert_forces_admin_actor(mock_upsert, client):
    mock_upsert.return_value = {**REGISTRATION, "origin": "admin"}

    response = client.put(
        "/api/admin/matches/10/registrations/7", json={"unregister": True, "actor": "user"}
    )

    assert response.status_code == 200
    assert mock_upsert.call_args.kwargs["actor"] == RegistrationOrigin.ADMIN
    assert mock_upsert.call_args.kwargs["unregister"] is True


@patch("hockey_backend.services.registration_service.get_registrations_for_match", new_callable=AsyncMock)
def test_list_registrations(mock_list, client):
    mock_list.return_value = [REGISTRATION]

    response = client.get("/api/matches/10/registrations?status=REGISTERED")

    assert response.status_code == 200
    assert [r["player_id"] for r in response.json()] == [7]


@patch("hockey_backend.services.registration_service.mark_no_excused", new_callable=AsyncMock)
def test_mark_no_excused_without_body(mock_mark, client):
    mock_mark.return_value = {**REGISTRATION, "status": "NO_EXCUSED", "origin": "admin"}

    response = client.post("/api/admin/matches/10/registrations/7/no-excused")

    assert response.status_code == 200
    assert response.json()["status"] == "NO_EXCUSED"
    assert mock_mark.call_args.kwargs["admin_note"] is None


@patch("hockey_backend.services.registration_service.cancel_no_excused", new_callable=AsyncMock)
def test_cancel_no_excused_conflict(mock_cancel, client):
    mock_cancel.side_effect = InvalidTransitionError("Player 7 is not marked as no-excused")

    response = client.post(
        "/api/admin/matches/10/registrations/7/cancel-no-excused",
        json={"excuse_reason": "ILLNESS"},
    )

    assert response.status_code == 409


@patch("hockey_backend.services.registration_service.change_position", new_callable=AsyncMock)
def test_change_position_full_slot(mock_change, client):
    mock_change.side_effect = CapacityConflictError("Position DEFENSE is full")

    response = client.put(
        "/api/matches/10/registrations/7/position", json={"position": "DEFENSE"}
    )

    assert response.status_code == 409


# ============================================================================
# Matches
# ============================================================================


@patch("hockey_backend.services.match_service.create_match", new_callable=AsyncMock)
def test_create_match(mock_create, client):
    mock_create.return_value = MATCH

    response = client.post(
        "/api/admin/matches",
        json={"scheduled_at": "2030-01-15T18:30:00Z", "max_players": 12},
    )

    assert response.status_code == 200
    assert response.json()["id"] == 10


def test_create_match_validates_capacity(client):
    response = client.post(
        "/api/admin/matches",
        json={"scheduled_at": "2030-01-15T18:30:00Z", "max_players": -3},
    )
    assert response.status_code == 422


@patch("hockey_backend.services.match_service.get_match", new_callable=AsyncMock)
def test_get_missing_match(mock_get, client):
    mock_get.side_effect = MatchNotFoundError("Match 99 not found")

    response = client.get("/api/matches/99")

    assert response.status_code == 404


@patch("hockey_backend.services.match_service.cancel_match", new_callable=AsyncMock)
def test_cancel_match(mock_cancel, client):
    mock_cancel.return_value = {**MATCH, "status": "CANCELED", "cancel_reason": "Storm"}

    response = client.post("/api/admin/matches/10/cancel", json={"reason": "Storm"})

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELED"
    assert mock_cancel.call_args.args[2] == "Storm"


@patch("hockey_backend.services.match_service.cancel_match", new_callable=AsyncMock)
def test_cancel_canceled_match(mock_cancel, client):
    mock_cancel.side_effect = InvalidTransitionError("Match 10 is already canceled")

    response = client.post("/api/admin/matches/10/cancel")

    assert response.status_code == 409


@patch("hockey_backend.services.match_service.change_match_capacity", new_callable=AsyncMock)
def test_change_capacity(mock_capacity, client):
    mock_capacity.return_value = {
        "match_id": 10,
        "max_players": 2,
        "demoted_player_ids": [3, 4],
        "promoted_player_ids": [],
    }

    response = client.put("/api/admin/matches/10/capacity", json={"max_players": 2})

    assert response.status_code == 200
    assert response.json()["demoted_player_ids"] == [3, 4]


@patch("hockey_backend.services.match_service.send_match_reminders", new_callable=AsyncMock)
def test_send_reminders(mock_reminders, client):
    mock_reminders.return_value = {"match_id": 10, "notified_player_ids": [1, 2]}

    response = client.post("/api/admin/matches/10/reminders")

    assert response.status_code == 200
    assert response.json()["notified_player_ids"] == [1, 2]


# ============================================================================
# Settings
# ============================================================================


@patch(
    "hockey_backend.services.notification_settings_service.update_user_settings",
    new_callable=AsyncMock,
)
def test_patch_user_settings_passes_only_given_fields(mock_update, client):
    mock_update.return_value = {
        "user_id": 5,
        "global_notification_level": "NONE",
        "copy_all_player_notifications_to_user_email": True,
        "receive_notifications_for_players_with_own_email": False,
        "updated_at": None,
    }

    response = client.patch(
        "/api/users/5/settings", json={"global_notification_level": "NONE"}
    )

    assert response.status_code == 200
    session, user_id, updates = mock_update.call_args.args
    assert user_id == 5
    assert list(updates) == ["global_notification_level"]


def test_patch_user_settings_rejects_unknown_fields(client):
    response = client.patch("/api/users/5/settings", json={"favourite_colour": "red"})
    assert response.status_code == 422


@patch(
    "hockey_backend.services.notification_settings_service.get_or_create_user_settings",
    new_callable=AsyncMock,
)
def test_get_settings_of_missing_user(mock_get, client):
    mock_get.side_effect = UserNotFoundError("User 5 not found")

    response = client.get("/api/users/5/settings")

    assert response.status_code == 404


# ============================================================================
# Notifications and demo capture
# ============================================================================


@patch("hockey_backend.services.notification_service.get_unread_count", new_callable=AsyncMock)
def test_unread_count(mock_count, client):
    mock_count.return_value = 3

    response = client.get("/api/users/5/notifications/unread-count")

    assert response.status_code == 200
    assert response.json() == {"count": 3}


@patch("hockey_backend.services.notification_service.mark_all_as_read", new_callable=AsyncMock)
def test_mark_all_read_is_not_taken_for_an_id(mock_mark_all, client):
    mock_mark_all.return_value = 4

    response = client.put("/api/users/5/notifications/mark-all-read")

    assert response.status_code == 200
    assert response.json() == {"success": True, "count": 4}


@patch("hockey_backend.services.notification_service.mark_as_read", new_callable=AsyncMock)
def test_mark_foreign_notification_as_read(mock_mark, client):
    mock_mark.side_effect = ValueError("Notification not found or access denied")

    response = client.put("/api/users/5/notifications/42/read")

    assert response.status_code == 404


@patch("hockey_backend.services.settings_service.is_demo_mode", new_callable=AsyncMock)
def test_demo_drain_hidden_outside_demo_mode(mock_demo, client):
    mock_demo.return_value = False

    assert client.get("/api/demo/notifications").status_code == 404
    assert client.delete("/api/demo/notifications").status_code == 404


@patch("hockey_backend.services.settings_service.is_demo_mode", new_callable=AsyncMock)
def test_demo_drain_returns_and_clears(mock_demo, client):
    mock_demo.return_value = True
    store = get_demo_notification_store()
    store.clear()
    store.add_email("p@example.com", "Subject", "Body", notification_type="MATCH_REMINDER")
    store.add_sms("+420111", "Text")

    first = client.get("/api/demo/notifications")
    second = client.get("/api/demo/notifications")

    assert first.status_code == 200
    assert [e["to"] for e in first.json()["emails"]] == ["p@example.com"]
    assert [s["to"] for s in first.json()["sms"]] == ["+420111"]
    assert second.json() == {"emails": [], "sms": []}


@patch("hockey_backend.services.settings_service.is_demo_mode", new_callable=AsyncMock)
def test_demo_clear(mock_demo, client):
    mock_demo.return_value = True
    store = get_demo_notification_store()
    store.add_sms("+420111", "Text")

    response = client.delete("/api/demo/notifications")

    assert response.status_code == 204
    assert store.get_and_clear() == {"emails": [], "sms": []}
