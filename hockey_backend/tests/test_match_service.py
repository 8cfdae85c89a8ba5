"""
Tests for the match lifecycle and the reminder entry points.
"""

from datetime import datetime

import pytest

from conftest import create_match, create_player
from hockey_backend.database.models import MatchMode, NotificationType, PlayerStatus
from hockey_backend.services import match_service, registration_service
from hockey_backend.services.registration_service import (
    InvalidTransitionError,
    MatchNotFoundError,
)


@pytest.mark.asyncio
async def test_create_and_get_match(db_session):
    created = await match_service.create_match(
        db_session,
        scheduled_at=datetime(2030, 3, 1, 19, 0),
        max_players=10,
        match_mode=MatchMode.THREE_ON_THREE_WITH_GOALIE,
        location="North Rink",
        price=150.0,
    )

    assert created["status"] == "SCHEDULED"
    assert created["registered_count"] == 0
    assert created["match_mode"] == "THREE_ON_THREE_WITH_GOALIE"

    player = await create_player(db_session, "Solo")
    await registration_service.upsert_registration(db_session, created["id"], player.id)

    fetched = await match_service.get_match(db_session, created["id"])
    assert fetched["registered_count"] == 1
    assert fetched["location"] == "North Rink"


@pytest.mark.asyncio
async def test_create_match_rejects_negative_capacity(db_session):
    with pytest.raises(ValueError):
        await match_service.create_match(db_session, datetime(2030, 3, 1), max_players=-1)


@pytest.mark.asyncio
async def test_get_missing_match(db_session):
    with pytest.raises(MatchNotFoundError):
        await match_service.get_match(db_session, 31337)


@pytest.mark.asyncio
async def test_cancel_notifies_active_players_and_keeps_registrations(
    db_session, demo_mode, demo_store
):
    match = await create_match(db_session, max_players=1)
    playing = await create_player(db_session, "Playing", contact_email="playing@example.com")
    waiting = await create_player(db_session, "Waiting", contact_email="waiting@example.com")
    excused = await create_player(db_session, "Excused", contact_email="excused@example.com")
    await registration_service.upsert_registration(db_session, match.id, playing.id)
    await registration_service.upsert_registration(db_session, match.id, waiting.id)
    await registration_service.upsert_registration(
        db_session, match.id, excused.id, excuse_reason="WORK"
    )

    result = await match_service.cancel_match(
        db_session, match.id, reason="Ice maintenance", demo_store=demo_store
    )

    assert result["status"] == "CANCELED"
    assert result["cancel_reason"] == "Ice maintenance"
    emails = demo_store.get_and_clear()["emails"]
    assert sorted(e["to"] for e in emails) == ["playing@example.com", "waiting@example.com"]
    assert {e["type"] for e in emails} == {NotificationType.MATCH_CANCELED.value}
    assert "Ice maintenance" in emails[0]["body"]

    registrations = await registration_service.get_registrations_for_match(db_session, match.id)
    assert len(registrations) == 3


@pytest.mark.asyncio
async def test_cancel_twice_and_register_on_canceled_match(db_session):
    match = await create_match(db_session)
    player = await create_player(db_session, "Late")
    await match_service.cancel_match(db_session, match.id)

    with pytest.raises(InvalidTransitionError):
        await match_service.cancel_match(db_session, match.id)
    with pytest.raises(InvalidTransitionError):
        await registration_service.upsert_registration(db_session, match.id, player.id)


@pytest.mark.asyncio
async def test_uncancel_restores_schedule(db_session, demo_mode, demo_store):
    match = await create_match(db_session)
    player = await create_player(db_session, "Back", contact_email="back@example.com")
    await registration_service.upsert_registration(db_session, match.id, player.id)
    await match_service.cancel_match(db_session, match.id, reason="Storm")
    demo_store.clear()

    restored = await match_service.uncancel_match(db_session, match.id, demo_store=demo_store)

    assert restored["status"] == "SCHEDULED"
    assert restored["cancel_reason"] is None
    emails = demo_store.get_and_clear()["emails"]
    assert [e["type"] for e in emails] == [NotificationType.MATCH_UNCANCELED.value]

    with pytest.raises(InvalidTransitionError):
        await match_service.uncancel_match(db_session, match.id)


@pytest.mark.asyncio
async def test_reschedule_notifies_time_change(db_session, demo_mode, demo_store):
    match = await create_match(db_session)
    player = await create_player(db_session, "Moved", contact_email="moved@example.com")
    await registration_service.upsert_registration(db_session, match.id, player.id)

    result = await match_service.reschedule_match(
        db_session, match.id, datetime(2030, 2, 1, 20, 0), demo_store=demo_store
    )

    assert result["scheduled_at"].startswith("2030-02-01T20:00")
    emails = demo_store.get_and_clear()["emails"]
    assert [e["type"] for e in emails] == [NotificationType.MATCH_TIME_CHANGED.value]
    assert "2030-02-01 20:00" in emails[0]["body"]


@pytest.mark.asyncio
async def test_change_capacity_goes_through_registration_rules(db_session):
    match = await create_match(db_session, max_players=2)
    players = [await create_player(db_session, f"P{i}") for i in range(3)]
    for player in players:
        await registration_service.upsert_registration(db_session, match.id, player.id)

    result = await match_service.change_match_capacity(db_session, match.id, 3)

    assert result["promoted_player_ids"] == [players[2].id]
    assert result["demoted_player_ids"] == []


@pytest.mark.asyncio
async def test_reminders_target_registered_players_only(db_session, demo_mode, demo_store):
    match = await create_match(db_session, max_players=1)
    keen = await create_player(
        db_session, "Keen", contact_email="keen@example.com", notify_reminders=True
    )
    quiet = await create_player(db_session, "Quiet", contact_email="quiet@example.com")
    await registration_service.upsert_registration(db_session, match.id, keen.id)
    await registration_service.upsert_registration(db_session, match.id, quiet.id)
    demo_store.clear()

    result = await match_service.send_match_reminders(db_session, match.id, demo_store=demo_store)

    # quiet is on the waiting list
    assert result["notified_player_ids"] == [keen.id]
    emails = demo_store.get_and_clear()["emails"]
    assert [e["to"] for e in emails] == ["keen@example.com"]


@pytest.mark.asyncio
async def test_reminder_respects_player_preference(db_session, demo_mode, demo_store):
    match = await create_match(db_session)
    player = await create_player(db_session, "Default", contact_email="default@example.com")
    await registration_service.upsert_registration(db_session, match.id, player.id)
    demo_store.clear()

    result = await match_service.send_match_reminders(db_session, match.id, demo_store=demo_store)

    assert result["notified_player_ids"] == [player.id]
    assert demo_store.get_and_clear()["emails"] == []


@pytest.mark.asyncio
async def test_no_response_reminders(db_session, demo_mode, demo_store):
    match = await create_match(db_session)
    answered = await create_player(db_session, "Answered")
    silent = await create_player(db_session, "Silent", contact_email="silent@example.com")
    pending = await create_player(db_session, "Pending")
    pending.status = PlayerStatus.PENDING
    await db_session.flush()
    await registration_service.upsert_registration(
        db_session, match.id, answered.id, excuse_reason="ILLNESS"
    )

    result = await match_service.send_no_response_reminders(
        db_session, match.id, demo_store=demo_store
    )

    assert result["notified_player_ids"] == [silent.id]
    emails = demo_store.get_and_clear()["emails"]
    assert [e["type"] for e in emails] == [NotificationType.MATCH_REGISTRATION_NO_RESPONSE.value]


@pytest.mark.asyncio
async def test_reminders_rejected_for_canceled_match(db_session):
    match = await create_match(db_session)
    await match_service.cancel_match(db_session, match.id)

    with pytest.raises(InvalidTransitionError):
        await match_service.send_match_reminders(db_session, match.id)
    with pytest.raises(InvalidTransitionError):
        await match_service.send_no_response_reminders(db_session, match.id)
