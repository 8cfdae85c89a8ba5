"""
Notification service.

Dispatches registration and match events to players and their accounts
(in-app notification, email, SMS) and serves the in-app notification list.

Outgoing email/SMS pass through _deliver(), the single place that decides
between capturing into the demo store and calling the real transport.
Dispatch never raises: failures are logged and the triggering change stays.
"""

import enum
import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_backend.database.models import Notification, NotificationType
from hockey_backend.services import email_service, settings_service, sms_service
from hockey_backend.services.demo_notification_store import (
    DemoNotificationStore,
    get_demo_notification_store,
)
from hockey_backend.services.notification_content import (
    NotificationContext,
    RecipientKind,
    render,
)
from hockey_backend.services.notification_preferences import (
    NotificationDecision,
    evaluate,
    evaluate_for_user,
    load_player_for_notification,
    load_user_for_notification,
)
from hockey_backend.utils.datetime_utils import isoformat_or_none, utcnow

logger = logging.getLogger(__name__)


class Channel(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"


@dataclass(frozen=True)
class OutgoingMessage:
    """One email or SMS ready for delivery."""

    channel: Channel
    to: str
    subject: str
    body: str
    notification_type: NotificationType
    recipient_kind: RecipientKind
    is_html: bool = False


@dataclass
class PendingNotification:
    """Event collected inside a transaction, dispatched after commit."""

    player_id: int
    notification_type: NotificationType
    context: NotificationContext


def _notification_to_dict(notification: Notification) -> Dict:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "player_id": notification.player_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": json.loads(notification.data) if notification.data else None,
        "email_to": notification.email_to,
        "sms_to": notification.sms_to,
        "is_read": notification.is_read,
        "read_at": isoformat_or_none(notification.read_at),
        "created_at": isoformat_or_none(notification.created_at),
    }


async def create_notification(
    session: AsyncSession,
    type: str,
    title: str,
    message: str,
    user_id: Optional[int] = None,
    player_id: Optional[int] = None,
    data: Optional[Dict] = None,
    email_to: Optional[str] = None,
    sms_to: Optional[str] = None,
) -> Dict:
    """
    Store a single in-app notification.

    Args:
        session: Database session
        type: Notification type (NotificationType enum value)
        title: Notification title
        message: Notification message text
        user_id: Account the notification belongs to
        player_id: Player the notification is about
        data: Optional JSON metadata (dict will be serialized to JSON string)
        email_to: Email address the event was also sent to
        sms_to: Phone number the event was also sent to

    Returns:
        Dict containing the created notification data

    Raises:
        ValueError: If required fields are missing
    """
    if not user_id and not player_id:
        raise ValueError("user_id or player_id is required")
    if not type:
        raise ValueError("type is required")
    if not title:
        raise ValueError("title is required")
    if not message:
        raise ValueError("message is required")

    notification = Notification(
        user_id=user_id,
        player_id=player_id,
        type=NotificationType(type).value,
        title=title,
        message=message,
        data=json.dumps(data) if data is not None else None,
        email_to=email_to,
        sms_to=sms_to,
        is_read=False,
    )
    session.add(notification)
    await session.flush()

    return _notification_to_dict(notification)


def build_messages(
    notification_type: NotificationType,
    decision: NotificationDecision,
    context: NotificationContext,
) -> List[OutgoingMessage]:
    """
    Turn a decision into concrete messages.

    The account copy is dropped when it would go to the same address as the
    player email.
    """
    messages: List[OutgoingMessage] = []

    if decision.send_email_to_player and decision.player_email:
        content = render(notification_type, RecipientKind.PLAYER, context)
        if content is not None:
            messages.append(
                OutgoingMessage(
                    channel=Channel.EMAIL,
                    to=decision.player_email,
                    subject=content.subject,
                    body=content.body,
                    is_html=content.is_html,
                    notification_type=notification_type,
                    recipient_kind=RecipientKind.PLAYER,
                )
            )

    if decision.send_email_to_user and decision.user_email:
        duplicate = decision.send_email_to_player and decision.player_email == decision.user_email
        content = None if duplicate else render(notification_type, RecipientKind.USER, context)
        if content is not None:
            messages.append(
                OutgoingMessage(
                    channel=Channel.EMAIL,
                    to=decision.user_email,
                    subject=content.subject,
                    body=content.body,
                    is_html=content.is_html,
                    notification_type=notification_type,
                    recipient_kind=RecipientKind.USER,
                )
            )

    if decision.send_sms_to_player and decision.player_phone:
        content = render(notification_type, RecipientKind.SMS, context)
        if content is not None:
            messages.append(
                OutgoingMessage(
                    channel=Channel.SMS,
                    to=decision.player_phone,
                    subject="",
                    body=content.body,
                    notification_type=notification_type,
                    recipient_kind=RecipientKind.SMS,
                )
            )

    return messages


async def _deliver(
    session: Optional[AsyncSession],
    message: OutgoingMessage,
    demo_mode: bool,
    demo_store: DemoNotificationStore,
) -> bool:
    """Send one message, or capture it when demo mode is active."""
    if demo_mode:
        if message.channel == Channel.EMAIL:
            demo_store.add_email(
                message.to,
                message.subject,
                message.body,
                is_html=message.is_html,
                notification_type=message.notification_type.value,
                recipient_kind=message.recipient_kind.value,
            )
        else:
            demo_store.add_sms(
                message.to, message.body, notification_type=message.notification_type.value
            )
        return True

    if message.channel == Channel.EMAIL:
        return await email_service.send_email(
            message.to, message.subject, message.body, is_html=message.is_html, session=session
        )
    return await sms_service.send_sms(message.to, message.body, session=session)


async def _deliver_all(
    session: AsyncSession,
    messages: List[OutgoingMessage],
    demo_store: Optional[DemoNotificationStore],
) -> int:
    demo_mode = await settings_service.is_demo_mode(session)
    store = demo_store if demo_store is not None else get_demo_notification_store()

    delivered = 0
    for message in messages:
        try:
            if await _deliver(session, message, demo_mode, store):
                delivered += 1
            else:
                logger.warning(
                    f"Delivery of {message.notification_type.value} {message.channel.value} "
                    f"to {message.to} failed"
                )
        except Exception as e:
            logger.warning(
                f"Failed to deliver {message.notification_type.value} {message.channel.value} "
                f"to {message.to}: {e}"
            )
    return delivered


async def notify_player(
    session: AsyncSession,
    player_id: int,
    notification_type: NotificationType,
    context: Optional[NotificationContext] = None,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """
    Notify a player (and possibly the owning account) about an event.

    Stores an in-app notification, then sends the email/SMS the player's
    preferences allow.

    Args:
        session: Database session
        player_id: Player the event is about
        notification_type: Event type
        context: Event data for the templates
        demo_store: Store used in demo mode (defaults to the global store)

    Returns:
        Dict with the in-app notification (or None) and the count of delivered messages
    """
    notification_type = NotificationType(notification_type)
    context = context or NotificationContext()
    summary = {"notification": None, "messages": 0, "delivered": 0}

    try:
        player = await load_player_for_notification(session, player_id)
        if player is None:
            logger.warning(f"Cannot notify missing player {player_id} about {notification_type.value}")
            return summary

        if context.player_name is None:
            context.player_name = player.full_name

        decision = evaluate(player, notification_type)
        messages = build_messages(notification_type, decision, context)

        in_app = render(notification_type, RecipientKind.IN_APP, context)
        if in_app is not None:
            summary["notification"] = await create_notification(
                session,
                type=notification_type.value,
                title=in_app.subject,
                message=in_app.body,
                user_id=player.user_id,
                player_id=player.id,
                data=context.to_data(),
                email_to=decision.player_email if decision.send_email_to_player else None,
                sms_to=decision.player_phone if decision.send_sms_to_player else None,
            )

        summary["messages"] = len(messages)
        summary["delivered"] = await _deliver_all(session, messages, demo_store)
        logger.debug(
            f"Notified player {player_id} about {notification_type.value}: "
            f"{summary['delivered']}/{summary['messages']} messages delivered"
        )
    except Exception as e:
        # Notification failures never undo the change that triggered them
        logger.error(
            f"Failed to notify player {player_id} about {notification_type.value}: {e}",
            exc_info=True,
        )

    return summary


async def notify_user(
    session: AsyncSession,
    user_id: int,
    notification_type: NotificationType,
    context: Optional[NotificationContext] = None,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """Notify an account directly (system notifications)."""
    notification_type = NotificationType(notification_type)
    context = context or NotificationContext()
    summary = {"notification": None, "messages": 0, "delivered": 0}

    try:
        user = await load_user_for_notification(session, user_id)
        if user is None:
            logger.warning(f"Cannot notify missing user {user_id} about {notification_type.value}")
            return summary

        decision = evaluate_for_user(user, notification_type)
        messages = build_messages(notification_type, decision, context)

        in_app = render(notification_type, RecipientKind.IN_APP, context)
        if in_app is not None:
            summary["notification"] = await create_notification(
                session,
                type=notification_type.value,
                title=in_app.subject,
                message=in_app.body,
                user_id=user.id,
                data=context.to_data(),
                email_to=decision.user_email if decision.send_email_to_user else None,
            )

        summary["messages"] = len(messages)
        summary["delivered"] = await _deliver_all(session, messages, demo_store)
    except Exception as e:
        logger.error(
            f"Failed to notify user {user_id} about {notification_type.value}: {e}",
            exc_info=True,
        )

    return summary


async def dispatch_pending(
    session: AsyncSession,
    pending: List[PendingNotification],
    demo_store: Optional[DemoNotificationStore] = None,
) -> None:
    """
    Dispatch events collected during an already committed change.

    In-app notifications are committed at the end; a failure there is logged
    and rolled back without touching the committed change.
    """
    if not pending:
        return

    for event in pending:
        await notify_player(
            session, event.player_id, event.notification_type, event.context, demo_store
        )

    try:
        await session.commit()
    except Exception as e:
        logger.error(f"Failed to store in-app notifications: {e}", exc_info=True)
        await session.rollback()


async def get_user_notifications(
    session: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False
) -> Dict:
    """
    Fetch user notifications with pagination.

    Args:
        session: Database session
        user_id: ID of the user
        limit: Maximum number of notifications to return (default: 50)
        offset: Number of notifications to skip (default: 0)
        unread_only: If True, only return unread notifications (default: False)

    Returns:
        Dict containing:
            - notifications: List of notification dicts (newest first)
            - total_count: Total number of notifications matching the criteria
            - has_more: Boolean indicating if there are more notifications
    """
    query = select(Notification).where(Notification.user_id == user_id)

    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await session.execute(count_query)
    total_count = total_result.scalar_one() or 0

    query = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(query)
    notification_dicts = [_notification_to_dict(notif) for notif in result.scalars().all()]

    has_more = (offset + len(notification_dicts)) < total_count

    return {
        "notifications": notification_dicts,
        "total_count": total_count,
        "has_more": has_more,
    }


async def get_unread_count(session: AsyncSession, user_id: int) -> int:
    """Get count of unread notifications for a user."""
    result = await session.execute(
        select(func.count())
        .select_from(Notification)
        .where(
            and_(
                Notification.user_id == user_id,
                Notification.is_read == False  # noqa: E712
            )
        )
    )
    return result.scalar_one() or 0


async def mark_as_read(
    session: AsyncSession,
    notification_id: int,
    user_id: int
) -> Dict:
    """
    Mark a single notification as read.

    Args:
        session: Database session
        notification_id: ID of the notification
        user_id: ID of the user (ensures the user owns the notification)

    Returns:
        Updated notification dict

    Raises:
        ValueError: If notification not found or doesn't belong to user
    """
    result = await session.execute(
        select(Notification).where(
            and_(
                Notification.id == notification_id,
                Notification.user_id == user_id
            )
        )
    )
    notification = result.scalar_one_or_none()

    if not notification:
        raise ValueError("Notification not found or access denied")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await session.flush()

    return _notification_to_dict(notification)


async def mark_all_as_read(session: AsyncSession, user_id: int) -> int:
    """
    Mark all user notifications as read.

    Returns:
        Count of notifications marked as read
    """
    result = await session.execute(
        update(Notification)
        .where(
            and_(
                Notification.user_id == user_id,
                Notification.is_read == False  # noqa: E712
            )
        )
        .values(is_read=True, read_at=utcnow())
        .returning(Notification.id)
    )

    count = len(result.scalars().all())
    await session.flush()
    return count
