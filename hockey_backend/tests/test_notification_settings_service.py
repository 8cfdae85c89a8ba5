"""
Tests for account and player notification settings.
"""

import pytest

from conftest import create_player, create_user
from hockey_backend.services import notification_settings_service as settings_svc
from hockey_backend.services.notification_settings_service import UserNotFoundError
from hockey_backend.services.registration_service import PlayerNotFoundError


@pytest.mark.asyncio
async def test_user_settings_created_with_defaults(db_session):
    user = await create_user(db_session)

    settings = await settings_svc.get_or_create_user_settings(db_session, user.id)

    assert settings["user_id"] == user.id
    assert settings["global_notification_level"] == "ALL"
    assert settings["copy_all_player_notifications_to_user_email"] is True
    assert settings["receive_notifications_for_players_with_own_email"] is False


@pytest.mark.asyncio
async def test_user_settings_partial_update(db_session):
    user = await create_user(db_session)

    updated = await settings_svc.update_user_settings(
        db_session, user.id, {"global_notification_level": "IMPORTANT_ONLY"}
    )

    assert updated["global_notification_level"] == "IMPORTANT_ONLY"
    assert updated["copy_all_player_notifications_to_user_email"] is True


@pytest.mark.asyncio
async def test_user_settings_reject_bad_input(db_session):
    user = await create_user(db_session)

    with pytest.raises(ValueError):
        await settings_svc.update_user_settings(db_session, user.id, {"sms_enabled": True})
    with pytest.raises(ValueError):
        await settings_svc.update_user_settings(
            db_session, user.id, {"global_notification_level": "SOMETIMES"}
        )
    with pytest.raises(ValueError):
        await settings_svc.update_user_settings(
            db_session, user.id, {"copy_all_player_notifications_to_user_email": None}
        )


@pytest.mark.asyncio
async def test_user_settings_missing_user(db_session):
    with pytest.raises(UserNotFoundError):
        await settings_svc.get_or_create_user_settings(db_session, 999)


@pytest.mark.asyncio
async def test_player_settings_created_with_defaults(db_session):
    player = await create_player(db_session, "Fresh")

    settings = await settings_svc.get_or_create_player_settings(db_session, player.id)

    assert settings["email_enabled"] is True
    assert settings["sms_enabled"] is False
    assert settings["notify_reminders"] is False
    assert settings["reminder_hours_before"] == 24
    assert settings["contact_email"] is None

    again = await settings_svc.get_or_create_player_settings(db_session, player.id)
    assert again["player_id"] == player.id


@pytest.mark.asyncio
async def test_player_settings_partial_update(db_session):
    player = await create_player(db_session, "Changer", contact_phone="+420111")

    updated = await settings_svc.update_player_settings(
        db_session,
        player.id,
        {"sms_enabled": True, "contact_email": "  me@example.com ", "notify_reminders": True},
    )

    assert updated["sms_enabled"] is True
    assert updated["contact_email"] == "me@example.com"
    assert updated["contact_phone"] == "+420111"
    assert updated["notify_reminders"] is True


@pytest.mark.asyncio
async def test_player_contact_can_be_cleared(db_session):
    player = await create_player(db_session, "Clearer", contact_email="old@example.com")

    blank = await settings_svc.update_player_settings(db_session, player.id, {"contact_email": "   "})
    assert blank["contact_email"] is None

    await settings_svc.update_player_settings(db_session, player.id, {"contact_phone": "+1"})
    cleared = await settings_svc.update_player_settings(db_session, player.id, {"contact_phone": None})
    assert cleared["contact_phone"] is None


@pytest.mark.asyncio
async def test_player_settings_reject_bad_input(db_session):
    player = await create_player(db_session, "Strict")

    with pytest.raises(ValueError):
        await settings_svc.update_player_settings(
            db_session, player.id, {"global_notification_level": "ALL"}
        )
    with pytest.raises(ValueError):
        await settings_svc.update_player_settings(db_session, player.id, {"email_enabled": None})
    with pytest.raises(ValueError):
        await settings_svc.update_player_settings(
            db_session, player.id, {"reminder_hours_before": -1}
        )


@pytest.mark.asyncio
async def test_player_settings_missing_player(db_session):
    with pytest.raises(PlayerNotFoundError):
        await settings_svc.update_player_settings(db_session, 999, {"sms_enabled": True})
