"""
Match lifecycle: creation, cancellation, rescheduling, capacity changes and
reminder entry points for external schedulers.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_backend.database.models import (
    Match,
    MatchMode,
    MatchRegistration,
    MatchStatus,
    NotificationType,
    Player,
    PlayerStatus,
    RegistrationStatus,
)
from hockey_backend.services import notification_service, registration_service
from hockey_backend.services.demo_notification_store import DemoNotificationStore
from hockey_backend.services.notification_content import NotificationContext
from hockey_backend.services.notification_service import PendingNotification
from hockey_backend.services.registration_service import (
    InvalidTransitionError,
    MatchNotFoundError,
    count_registered,
    get_match_lock,
)
from hockey_backend.utils.datetime_utils import isoformat_or_none

logger = logging.getLogger(__name__)


def _match_to_dict(match: Match, registered_count: Optional[int] = None) -> Dict:
    data = {
        "id": match.id,
        "scheduled_at": isoformat_or_none(match.scheduled_at),
        "location": match.location,
        "description": match.description,
        "price": match.price,
        "max_players": match.max_players,
        "match_mode": match.match_mode.value if match.match_mode else None,
        "status": match.status.value,
        "cancel_reason": match.cancel_reason,
        "created_at": isoformat_or_none(match.created_at),
        "updated_at": isoformat_or_none(match.updated_at),
    }
    if registered_count is not None:
        data["registered_count"] = registered_count
    return data


async def _get_match_row(session: AsyncSession, match_id: int, for_update: bool = False) -> Match:
    query = select(Match).where(Match.id == match_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    match = result.scalar_one_or_none()
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found")
    return match


async def _player_ids_with_status(
    session: AsyncSession, match_id: int, statuses
) -> List[int]:
    result = await session.execute(
        select(MatchRegistration.player_id)
        .where(
            and_(
                MatchRegistration.match_id == match_id,
                MatchRegistration.status.in_(list(statuses)),
            )
        )
        .order_by(MatchRegistration.registered_at, MatchRegistration.id)
    )
    return list(result.scalars().all())


async def _pending_for_players(
    session: AsyncSession,
    match: Match,
    player_ids: List[int],
    notification_type: NotificationType,
) -> List[PendingNotification]:
    registered_count = await count_registered(session, match.id)
    return [
        PendingNotification(
            player_id,
            notification_type,
            NotificationContext(
                match_id=match.id,
                match_datetime=match.scheduled_at,
                match_location=match.location,
                registered_count=registered_count,
                max_players=match.max_players,
                cancel_reason=match.cancel_reason,
            ),
        )
        for player_id in player_ids
    ]


async def create_match(
    session: AsyncSession,
    scheduled_at: datetime,
    max_players: int,
    match_mode: Optional[MatchMode] = None,
    location: Optional[str] = None,
    description: Optional[str] = None,
    price: Optional[float] = None,
) -> Dict:
    """
    Create a scheduled match.

    Raises:
        ValueError: Negative capacity
    """
    if max_players is None or max_players < 0:
        raise ValueError("max_players must be zero or positive")

    match = Match(
        scheduled_at=scheduled_at,
        max_players=max_players,
        match_mode=MatchMode(match_mode) if match_mode else None,
        location=location,
        description=description,
        price=price,
        status=MatchStatus.SCHEDULED,
    )
    session.add(match)
    await session.flush()
    logger.info(f"Created match {match.id} at {scheduled_at} for {max_players} players")
    return _match_to_dict(match, registered_count=0)


async def get_match(session: AsyncSession, match_id: int) -> Dict:
    """Get a match with its registered count."""
    match = await _get_match_row(session, match_id)
    registered = await count_registered(session, match_id)
    return _match_to_dict(match, registered_count=registered)


async def cancel_match(
    session: AsyncSession,
    match_id: int,
    reason: Optional[str] = None,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """
    Cancel a match and notify its registered and reserve players.

    Registrations are kept so that uncancelling restores them.

    Raises:
        MatchNotFoundError: If the match does not exist
        InvalidTransitionError: Match is already canceled
    """
    async with get_match_lock(match_id):
        match = await _get_match_row(session, match_id, for_update=True)
        if match.status == MatchStatus.CANCELED:
            raise InvalidTransitionError(f"Match {match_id} is already canceled")

        match.status = MatchStatus.CANCELED
        match.cancel_reason = reason
        await session.flush()

        player_ids = await _player_ids_with_status(
            session, match_id, (RegistrationStatus.REGISTERED, RegistrationStatus.RESERVE)
        )
        pending = await _pending_for_players(
            session, match, player_ids, NotificationType.MATCH_CANCELED
        )
        await session.commit()

    logger.info(f"Match {match_id} canceled, notifying {len(pending)} players")
    await notification_service.dispatch_pending(session, pending, demo_store)
    return _match_to_dict(match)


async def uncancel_match(
    session: AsyncSession,
    match_id: int,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """
    Put a canceled match back on the schedule.

    Raises:
        InvalidTransitionError: Match is not canceled
    """
    async with get_match_lock(match_id):
        match = await _get_match_row(session, match_id, for_update=True)
        if match.status != MatchStatus.CANCELED:
            raise InvalidTransitionError(f"Match {match_id} is not canceled")

        match.status = MatchStatus.SCHEDULED
        match.cancel_reason = None
        await session.flush()

        player_ids = await _player_ids_with_status(
            session, match_id, (RegistrationStatus.REGISTERED, RegistrationStatus.RESERVE)
        )
        pending = await _pending_for_players(
            session, match, player_ids, NotificationType.MATCH_UNCANCELED
        )
        await session.commit()

    logger.info(f"Match {match_id} restored, notifying {len(pending)} players")
    await notification_service.dispatch_pending(session, pending, demo_store)
    return _match_to_dict(match)


async def reschedule_match(
    session: AsyncSession,
    match_id: int,
    scheduled_at: datetime,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """Move a match to a new start time and notify active players."""
    async with get_match_lock(match_id):
        match = await _get_match_row(session, match_id, for_update=True)
        if match.status == MatchStatus.CANCELED:
            raise InvalidTransitionError(f"Match {match_id} is canceled")

        match.scheduled_at = scheduled_at
        await session.flush()

        player_ids = await _player_ids_with_status(
            session, match_id, (RegistrationStatus.REGISTERED, RegistrationStatus.RESERVE)
        )
        pending = await _pending_for_players(
            session, match, player_ids, NotificationType.MATCH_TIME_CHANGED
        )
        await session.commit()

    await notification_service.dispatch_pending(session, pending, demo_store)
    return _match_to_dict(match)


async def change_match_capacity(
    session: AsyncSession,
    match_id: int,
    max_players: int,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """Change capacity; statuses are recalculated by the registration service."""
    return await registration_service.apply_capacity(session, match_id, max_players, demo_store)


async def send_match_reminders(
    session: AsyncSession,
    match_id: int,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """
    Remind REGISTERED players of an upcoming match.

    Called by an external scheduler; player reminder preferences decide who
    actually gets a message.
    """
    match = await _get_match_row(session, match_id)
    if match.status == MatchStatus.CANCELED:
        raise InvalidTransitionError(f"Match {match_id} is canceled")

    player_ids = await _player_ids_with_status(session, match_id, (RegistrationStatus.REGISTERED,))
    pending = await _pending_for_players(session, match, player_ids, NotificationType.MATCH_REMINDER)
    await notification_service.dispatch_pending(session, pending, demo_store)
    return {"match_id": match_id, "notified_player_ids": player_ids}


async def send_no_response_reminders(
    session: AsyncSession,
    match_id: int,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """Remind approved players who have not responded to a match at all."""
    match = await _get_match_row(session, match_id)
    if match.status == MatchStatus.CANCELED:
        raise InvalidTransitionError(f"Match {match_id} is canceled")

    responded = select(MatchRegistration.player_id).where(MatchRegistration.match_id == match_id)
    result = await session.execute(
        select(Player.id)
        .where(and_(Player.status == PlayerStatus.APPROVED, Player.id.notin_(responded)))
        .order_by(Player.id)
    )
    player_ids = list(result.scalars().all())

    pending = await _pending_for_players(
        session, match, player_ids, NotificationType.MATCH_REGISTRATION_NO_RESPONSE
    )
    await notification_service.dispatch_pending(session, pending, demo_store)
    return {"match_id": match_id, "notified_player_ids": player_ids}
