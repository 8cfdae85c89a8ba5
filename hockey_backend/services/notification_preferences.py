"""
Notification preference resolver.

Decides, for one player and one notification type, which email/SMS
recipients get a message. Combines three layers: the account settings of
the linked user, the player's own settings and the per-category flags.

evaluate() is pure: it only reads the player, its settings and its linked
user. Callers load those relationships eagerly (see
load_player_for_notification) before calling it.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hockey_backend.database.models import (
    GlobalNotificationLevel,
    NotificationCategory,
    NotificationType,
    Player,
    User,
)

# type -> (category, important)
NOTIFICATION_TYPE_META: Dict[NotificationType, Tuple[NotificationCategory, bool]] = {
    NotificationType.MATCH_REGISTRATION_CREATED: (NotificationCategory.REGISTRATION, True),
    NotificationType.MATCH_REGISTRATION_UPDATED: (NotificationCategory.REGISTRATION, True),
    NotificationType.MATCH_REGISTRATION_CANCELED: (NotificationCategory.REGISTRATION, True),
    NotificationType.MATCH_REGISTRATION_RESERVED: (NotificationCategory.REGISTRATION, True),
    NotificationType.MATCH_WAITING_LIST_MOVED_UP: (NotificationCategory.REGISTRATION, True),
    NotificationType.MATCH_REGISTRATION_NO_RESPONSE: (NotificationCategory.REGISTRATION, False),
    NotificationType.PLAYER_EXCUSED: (NotificationCategory.EXCUSE, True),
    NotificationType.PLAYER_NO_EXCUSED: (NotificationCategory.EXCUSE, True),
    NotificationType.MATCH_REMINDER: (NotificationCategory.MATCH_INFO, True),
    NotificationType.MATCH_CANCELED: (NotificationCategory.MATCH_INFO, True),
    NotificationType.MATCH_UNCANCELED: (NotificationCategory.MATCH_INFO, True),
    NotificationType.MATCH_TIME_CHANGED: (NotificationCategory.MATCH_INFO, True),
    NotificationType.PLAYER_CREATED: (NotificationCategory.SYSTEM, True),
    NotificationType.PLAYER_UPDATED: (NotificationCategory.SYSTEM, False),
    NotificationType.PLAYER_APPROVED: (NotificationCategory.SYSTEM, True),
    NotificationType.PLAYER_REJECTED: (NotificationCategory.SYSTEM, True),
    NotificationType.USER_CREATED: (NotificationCategory.SYSTEM, True),
    NotificationType.USER_UPDATED: (NotificationCategory.SYSTEM, True),
    NotificationType.PASSWORD_RESET: (NotificationCategory.SYSTEM, True),
    NotificationType.SECURITY_ALERT: (NotificationCategory.SYSTEM, True),
}

# Defaults applied when a settings row (or a single flag) is missing
DEFAULT_GLOBAL_LEVEL = GlobalNotificationLevel.ALL
DEFAULT_COPY_ALL_TO_USER = True
DEFAULT_INCLUDE_PLAYERS_WITH_OWN_EMAIL = False
DEFAULT_EMAIL_ENABLED = True
DEFAULT_SMS_ENABLED = False

# MATCH_INFO types are switched individually; value is (flag, default)
_MATCH_INFO_FLAGS = {
    NotificationType.MATCH_REMINDER: ("notify_reminders", False),
    NotificationType.MATCH_CANCELED: ("notify_on_match_cancel", True),
    NotificationType.MATCH_UNCANCELED: ("notify_on_match_change", True),
    NotificationType.MATCH_TIME_CHANGED: ("notify_on_match_change", True),
}

_CATEGORY_FLAGS = {
    NotificationCategory.REGISTRATION: ("registration_notifications_enabled", True),
    NotificationCategory.EXCUSE: ("excuse_notifications_enabled", True),
    NotificationCategory.SYSTEM: ("system_notifications_enabled", True),
}


@dataclass(frozen=True)
class NotificationDecision:
    """Which channels fire for one (player, type) pair, and where to."""

    send_email_to_user: bool = False
    send_email_to_player: bool = False
    send_sms_to_player: bool = False
    user_email: Optional[str] = None
    player_email: Optional[str] = None
    player_phone: Optional[str] = None

    @property
    def sends_anything(self) -> bool:
        return self.send_email_to_user or self.send_email_to_player or self.send_sms_to_player


def get_category(notification_type: NotificationType) -> Optional[NotificationCategory]:
    meta = NOTIFICATION_TYPE_META.get(NotificationType(notification_type))
    return meta[0] if meta else None


def is_important(notification_type: NotificationType) -> bool:
    meta = NOTIFICATION_TYPE_META.get(NotificationType(notification_type))
    return bool(meta and meta[1])


def _flag(settings, name: str, default: bool) -> bool:
    """Read a boolean flag; missing rows and unset columns fall back to default."""
    if settings is None:
        return default
    value = getattr(settings, name, None)
    return default if value is None else bool(value)


def level_allows(level: Optional[GlobalNotificationLevel], notification_type: NotificationType) -> bool:
    """Apply the account-wide notification level to one type."""
    level = GlobalNotificationLevel(level) if level is not None else DEFAULT_GLOBAL_LEVEL
    if level == GlobalNotificationLevel.NONE:
        return False
    if level == GlobalNotificationLevel.IMPORTANT_ONLY:
        return is_important(notification_type)
    return True


def is_type_enabled_for_player(player_settings, notification_type: NotificationType) -> bool:
    """Per-category (and for match info, per-type) switch on the player layer."""
    notification_type = NotificationType(notification_type)
    if notification_type in _MATCH_INFO_FLAGS:
        name, default = _MATCH_INFO_FLAGS[notification_type]
        return _flag(player_settings, name, default)

    category = get_category(notification_type)
    if category in _CATEGORY_FLAGS:
        name, default = _CATEGORY_FLAGS[category]
        return _flag(player_settings, name, default)
    return False


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def evaluate(player: Player, notification_type: NotificationType) -> NotificationDecision:
    """
    Decide who receives a notification about a player.

    Args:
        player: Player with settings, user and user.settings loaded
        notification_type: Type of the event

    Returns:
        NotificationDecision with channel flags and resolved addresses
    """
    notification_type = NotificationType(notification_type)
    player_settings = player.settings
    user: Optional[User] = player.user
    user_settings = user.settings if user is not None else None

    own_email = _blank_to_none(player_settings.contact_email) if player_settings else None
    user_email = _blank_to_none(user.email) if user is not None else None
    player_email = own_email or user_email
    own_phone = _blank_to_none(player_settings.contact_phone) if player_settings else None
    player_phone = own_phone or _blank_to_none(player.phone_number)

    category = get_category(notification_type)
    global_level = (
        user_settings.global_notification_level
        if user_settings is not None and user_settings.global_notification_level is not None
        else DEFAULT_GLOBAL_LEVEL
    )

    if category == NotificationCategory.SYSTEM:
        return NotificationDecision(
            send_email_to_user=user_email is not None
            and level_allows(global_level, notification_type),
            user_email=user_email,
            player_email=player_email,
            player_phone=player_phone,
        )

    if category not in (
        NotificationCategory.REGISTRATION,
        NotificationCategory.EXCUSE,
        NotificationCategory.MATCH_INFO,
    ):
        return NotificationDecision(
            user_email=user_email, player_email=player_email, player_phone=player_phone
        )

    type_enabled = is_type_enabled_for_player(player_settings, notification_type)
    email_channel = _flag(player_settings, "email_enabled", DEFAULT_EMAIL_ENABLED)
    sms_channel = _flag(player_settings, "sms_enabled", DEFAULT_SMS_ENABLED)

    copy_all = _flag(
        user_settings, "copy_all_player_notifications_to_user_email", DEFAULT_COPY_ALL_TO_USER
    )
    include_own = _flag(
        user_settings,
        "receive_notifications_for_players_with_own_email",
        DEFAULT_INCLUDE_PLAYERS_WITH_OWN_EMAIL,
    )

    send_to_user = (
        user_email is not None
        and level_allows(global_level, notification_type)
        and copy_all
        and (own_email is None or include_own)
    )

    return NotificationDecision(
        send_email_to_user=send_to_user,
        send_email_to_player=email_channel and type_enabled and player_email is not None,
        send_sms_to_player=sms_channel and type_enabled and player_phone is not None,
        user_email=user_email,
        player_email=player_email,
        player_phone=player_phone,
    )


def evaluate_for_user(user: User, notification_type: NotificationType) -> NotificationDecision:
    """Account-level decision: only the user email, gated by the global level."""
    user_email = _blank_to_none(user.email)
    user_settings = user.settings
    global_level = (
        user_settings.global_notification_level
        if user_settings is not None and user_settings.global_notification_level is not None
        else DEFAULT_GLOBAL_LEVEL
    )
    return NotificationDecision(
        send_email_to_user=user_email is not None
        and level_allows(global_level, notification_type),
        user_email=user_email,
    )


async def load_user_for_notification(session: AsyncSession, user_id: int) -> Optional[User]:
    """Load a user with its settings, refreshed from the database."""
    await session.flush()
    result = await session.execute(
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.settings))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def load_player_for_notification(session: AsyncSession, player_id: int) -> Optional[Player]:
    """Load a player with everything evaluate() reads, refreshed from the database."""
    await session.flush()
    result = await session.execute(
        select(Player)
        .where(Player.id == player_id)
        .options(
            selectinload(Player.settings),
            selectinload(Player.user).selectinload(User.settings),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
