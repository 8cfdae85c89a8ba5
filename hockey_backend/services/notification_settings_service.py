"""
Account and player notification settings.

Settings rows are created on first access with defaults and changed by
partial update; they live as long as their owner.
"""

import logging
from typing import Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_backend.database.models import (
    GlobalNotificationLevel,
    Player,
    PlayerSettings,
    User,
    UserSettings,
)
from hockey_backend.services.registration_service import PlayerNotFoundError, NotFoundError
from hockey_backend.utils.datetime_utils import isoformat_or_none

logger = logging.getLogger(__name__)


class UserNotFoundError(NotFoundError):
    pass


USER_SETTINGS_FIELDS = {
    "global_notification_level",
    "copy_all_player_notifications_to_user_email",
    "receive_notifications_for_players_with_own_email",
}

PLAYER_SETTINGS_FIELDS = {
    "contact_email",
    "contact_phone",
    "email_enabled",
    "sms_enabled",
    "registration_notifications_enabled",
    "excuse_notifications_enabled",
    "notify_on_match_cancel",
    "notify_on_match_change",
    "notify_reminders",
    "system_notifications_enabled",
    "reminder_hours_before",
    "possible_move_to_another_team",
    "possible_change_player_position",
}


def _user_settings_to_dict(settings: UserSettings) -> Dict:
    return {
        "user_id": settings.user_id,
        "global_notification_level": settings.global_notification_level.value,
        "copy_all_player_notifications_to_user_email": settings.copy_all_player_notifications_to_user_email,
        "receive_notifications_for_players_with_own_email": settings.receive_notifications_for_players_with_own_email,
        "updated_at": isoformat_or_none(settings.updated_at),
    }


def _player_settings_to_dict(settings: PlayerSettings) -> Dict:
    data = {"player_id": settings.player_id}
    for field in sorted(PLAYER_SETTINGS_FIELDS):
        data[field] = getattr(settings, field)
    data["updated_at"] = isoformat_or_none(settings.updated_at)
    return data


def _reject_unknown_fields(updates: Dict, allowed: set) -> None:
    unknown = set(updates) - allowed
    if unknown:
        raise ValueError(f"Unknown settings fields: {', '.join(sorted(unknown))}")


async def _get_or_create_user_settings_row(session: AsyncSession, user_id: int) -> UserSettings:
    user_result = await session.execute(select(User.id).where(User.id == user_id))
    if user_result.scalar_one_or_none() is None:
        raise UserNotFoundError(f"User {user_id} not found")

    result = await session.execute(select(UserSettings).where(UserSettings.user_id == user_id))
    settings = result.scalar_one_or_none()
    if settings is None:
        settings = UserSettings(
            user_id=user_id,
            global_notification_level=GlobalNotificationLevel.ALL,
            copy_all_player_notifications_to_user_email=True,
            receive_notifications_for_players_with_own_email=False,
        )
        session.add(settings)
        await session.flush()
        logger.info(f"Created default notification settings for user {user_id}")
    return settings


async def _get_or_create_player_settings_row(
    session: AsyncSession, player_id: int
) -> PlayerSettings:
    player_result = await session.execute(select(Player.id).where(Player.id == player_id))
    if player_result.scalar_one_or_none() is None:
        raise PlayerNotFoundError(f"Player {player_id} not found")

    result = await session.execute(
        select(PlayerSettings).where(PlayerSettings.player_id == player_id)
    )
    settings = result.scalar_one_or_none()
    if settings is None:
        settings = PlayerSettings(
            player_id=player_id,
            email_enabled=True,
            sms_enabled=False,
            registration_notifications_enabled=True,
            excuse_notifications_enabled=True,
            notify_on_match_cancel=True,
            notify_on_match_change=True,
            notify_reminders=False,
            system_notifications_enabled=True,
            reminder_hours_before=24,
            possible_move_to_another_team=False,
            possible_change_player_position=False,
        )
        session.add(settings)
        await session.flush()
        logger.info(f"Created default notification settings for player {player_id}")
    return settings


async def get_or_create_user_settings(session: AsyncSession, user_id: int) -> Dict:
    """
    Get account settings, creating defaults on first access.

    Raises:
        UserNotFoundError: If the user does not exist
    """
    settings = await _get_or_create_user_settings_row(session, user_id)
    return _user_settings_to_dict(settings)


async def update_user_settings(session: AsyncSession, user_id: int, updates: Dict) -> Dict:
    """
    Partially update account settings.

    Args:
        session: Database session
        user_id: User ID
        updates: Field -> new value; only given fields change

    Raises:
        UserNotFoundError: If the user does not exist
        ValueError: Unknown field or invalid level
    """
    _reject_unknown_fields(updates, USER_SETTINGS_FIELDS)
    settings = await _get_or_create_user_settings_row(session, user_id)

    for field, value in updates.items():
        if field == "global_notification_level":
            value = GlobalNotificationLevel(value)
        elif value is None:
            raise ValueError(f"{field} cannot be null")
        setattr(settings, field, value)

    await session.flush()
    return _user_settings_to_dict(settings)


async def get_or_create_player_settings(session: AsyncSession, player_id: int) -> Dict:
    """
    Get player settings, creating defaults on first access.

    Raises:
        PlayerNotFoundError: If the player does not exist
    """
    settings = await _get_or_create_player_settings_row(session, player_id)
    return _player_settings_to_dict(settings)


async def update_player_settings(session: AsyncSession, player_id: int, updates: Dict) -> Dict:
    """
    Partially update player settings.

    Contact email and phone may be cleared with None; flags may not.

    Raises:
        PlayerNotFoundError: If the player does not exist
        ValueError: Unknown field, null flag or invalid reminder hours
    """
    _reject_unknown_fields(updates, PLAYER_SETTINGS_FIELDS)
    settings = await _get_or_create_player_settings_row(session, player_id)

    for field, value in updates.items():
        if field in ("contact_email", "contact_phone"):
            value = (value.strip() or None) if isinstance(value, str) else value
        elif value is None:
            raise ValueError(f"{field} cannot be null")
        elif field == "reminder_hours_before" and int(value) < 0:
            raise ValueError("reminder_hours_before must be zero or positive")
        setattr(settings, field, value)

    await session.flush()
    return _player_settings_to_dict(settings)
