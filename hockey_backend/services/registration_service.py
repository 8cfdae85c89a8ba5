"""
Match registration service.

Owns the registration state machine: who is REGISTERED, who waits as
RESERVE, and who is EXCUSED / UNREGISTERED / NO_EXCUSED. Every change to
one match runs under that match's lock and a row lock on the match, re-reads
occupancy inside the transaction and appends a history row. Notifications
go out after commit and never affect the stored result.
"""

import asyncio
import logging
import weakref
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hockey_backend.database.models import (
    ExcuseReason,
    Match,
    MatchRegistration,
    MatchRegistrationHistory,
    MatchStatus,
    NotificationType,
    Player,
    PlayerPosition,
    RegistrationOrigin,
    RegistrationStatus,
    Team,
)
from hockey_backend.services import notification_service
from hockey_backend.services.demo_notification_store import DemoNotificationStore
from hockey_backend.services.notification_content import NotificationContext
from hockey_backend.services.notification_service import PendingNotification
from hockey_backend.services.position_service import (
    is_position_slot_available,
    validate_position_for_match,
)
from hockey_backend.utils.datetime_utils import isoformat_or_none, utcnow
from hockey_backend.utils.match_layout import (
    normalize_position_for_mode,
    resolve_target_position,
)

logger = logging.getLogger(__name__)


# --- Custom exceptions ---


class NotFoundError(ValueError):
    """Referenced match, player or registration does not exist."""


class MatchNotFoundError(NotFoundError):
    pass


class PlayerNotFoundError(NotFoundError):
    pass


class RegistrationNotFoundError(NotFoundError):
    pass


class CapacityConflictError(ValueError):
    """Requested slot is already taken."""


class InvalidTransitionError(ValueError):
    """Status change not allowed from the current state."""


class DuplicateRegistrationError(ValueError):
    """A concurrent request created the same (match, player) registration."""


# --- Module-level constants ---

ACTIVE_STATUSES = (RegistrationStatus.REGISTERED, RegistrationStatus.RESERVE)
INACTIVE_STATUSES = (
    RegistrationStatus.EXCUSED,
    RegistrationStatus.UNREGISTERED,
    RegistrationStatus.NO_EXCUSED,
)

DEFAULT_NO_EXCUSED_NOTE = "Did not show up without an excuse"
DEFAULT_CANCEL_NO_EXCUSED_NOTE = "Could not make it after all"

STATUS_NOTIFICATIONS = {
    RegistrationStatus.REGISTERED: NotificationType.MATCH_REGISTRATION_CREATED,
    RegistrationStatus.RESERVE: NotificationType.MATCH_REGISTRATION_RESERVED,
    RegistrationStatus.UNREGISTERED: NotificationType.MATCH_REGISTRATION_CANCELED,
    RegistrationStatus.EXCUSED: NotificationType.PLAYER_EXCUSED,
    RegistrationStatus.NO_EXCUSED: NotificationType.PLAYER_NO_EXCUSED,
}

# History actions
ACTION_REGISTER = "REGISTER"
ACTION_RESERVE = "RESERVE"
ACTION_UNREGISTER = "UNREGISTER"
ACTION_EXCUSE = "EXCUSE"
ACTION_NO_EXCUSED = "NO_EXCUSED"
ACTION_CANCEL_NO_EXCUSED = "CANCEL_NO_EXCUSED"
ACTION_PROMOTE = "PROMOTE"
ACTION_DEMOTE = "DEMOTE"
ACTION_CHANGE_TEAM = "CHANGE_TEAM"
ACTION_CHANGE_POSITION = "CHANGE_POSITION"
ACTION_AUTO_LINEUP = "AUTO_LINEUP"

# One lock per match id, per running event loop. A lock lives only while a
# coroutine holds or awaits it.
_match_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, weakref.WeakValueDictionary[int, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def get_match_lock(match_id: int) -> asyncio.Lock:
    """Lock serializing registration changes of one match in this process."""
    loop = asyncio.get_running_loop()
    locks = _match_locks.get(loop)
    if locks is None:
        locks = weakref.WeakValueDictionary()
        _match_locks[loop] = locks
    lock = locks.get(match_id)
    if lock is None:
        lock = asyncio.Lock()
        locks[match_id] = lock
    return lock


def registration_to_dict(registration: MatchRegistration, player_name: Optional[str] = None) -> Dict:
    data = {
        "id": registration.id,
        "match_id": registration.match_id,
        "player_id": registration.player_id,
        "status": registration.status.value,
        "team": registration.team.value if registration.team else None,
        "position_in_match": (
            registration.position_in_match.value if registration.position_in_match else None
        ),
        "excuse_reason": registration.excuse_reason.value if registration.excuse_reason else None,
        "excuse_note": registration.excuse_note,
        "admin_note": registration.admin_note,
        "origin": registration.origin.value if registration.origin else None,
        "registered_at": isoformat_or_none(registration.registered_at),
        "created_at": isoformat_or_none(registration.created_at),
        "updated_at": isoformat_or_none(registration.updated_at),
    }
    if player_name is not None:
        data["player_name"] = player_name
    return data


def _history_to_dict(entry: MatchRegistrationHistory) -> Dict:
    return {
        "id": entry.id,
        "registration_id": entry.registration_id,
        "match_id": entry.match_id,
        "player_id": entry.player_id,
        "action": entry.action,
        "old_status": entry.old_status.value if entry.old_status else None,
        "new_status": entry.new_status.value,
        "team": entry.team.value if entry.team else None,
        "position_in_match": entry.position_in_match.value if entry.position_in_match else None,
        "excuse_reason": entry.excuse_reason.value if entry.excuse_reason else None,
        "changed_by": entry.changed_by.value,
        "changed_at": isoformat_or_none(entry.changed_at),
    }


# --- Loading helpers ---


async def _load_match_for_update(session: AsyncSession, match_id: int) -> Match:
    result = await session.execute(select(Match).where(Match.id == match_id).with_for_update())
    match = result.scalar_one_or_none()
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found")
    return match


async def _load_open_match_for_update(session: AsyncSession, match_id: int) -> Match:
    match = await _load_match_for_update(session, match_id)
    if match.status == MatchStatus.CANCELED:
        raise InvalidTransitionError(f"Match {match_id} is canceled")
    return match


async def _get_player(session: AsyncSession, player_id: int) -> Player:
    result = await session.execute(
        select(Player).where(Player.id == player_id).options(selectinload(Player.settings))
    )
    player = result.scalar_one_or_none()
    if player is None:
        raise PlayerNotFoundError(f"Player {player_id} not found")
    return player


async def _get_registration(
    session: AsyncSession, match_id: int, player_id: int
) -> Optional[MatchRegistration]:
    result = await session.execute(
        select(MatchRegistration).where(
            and_(
                MatchRegistration.match_id == match_id,
                MatchRegistration.player_id == player_id,
            )
        )
    )
    return result.scalar_one_or_none()


async def _get_registration_or_raise(
    session: AsyncSession, match_id: int, player_id: int
) -> MatchRegistration:
    registration = await _get_registration(session, match_id, player_id)
    if registration is None:
        raise RegistrationNotFoundError(
            f"Player {player_id} has no registration for match {match_id}"
        )
    return registration


async def count_registered(
    session: AsyncSession, match_id: int, exclude_player_id: Optional[int] = None
) -> int:
    """Count REGISTERED players of a match, optionally without one player."""
    conditions = [
        MatchRegistration.match_id == match_id,
        MatchRegistration.status == RegistrationStatus.REGISTERED,
    ]
    if exclude_player_id is not None:
        conditions.append(MatchRegistration.player_id != exclude_player_id)
    result = await session.execute(
        select(func.count()).select_from(MatchRegistration).where(and_(*conditions))
    )
    return result.scalar_one() or 0


async def _team_sizes(
    session: AsyncSession, match_id: int, exclude_player_id: Optional[int] = None
) -> Dict[Team, int]:
    conditions = [
        MatchRegistration.match_id == match_id,
        MatchRegistration.status == RegistrationStatus.REGISTERED,
        MatchRegistration.team.isnot(None),
    ]
    if exclude_player_id is not None:
        conditions.append(MatchRegistration.player_id != exclude_player_id)
    result = await session.execute(
        select(MatchRegistration.team, func.count())
        .where(and_(*conditions))
        .group_by(MatchRegistration.team)
    )
    sizes = {Team.DARK: 0, Team.LIGHT: 0}
    for team, count in result.all():
        sizes[Team(team)] = count
    return sizes


async def _smaller_team(
    session: AsyncSession, match_id: int, exclude_player_id: Optional[int] = None
) -> Team:
    """Team with fewer registered players; DARK on a tie."""
    sizes = await _team_sizes(session, match_id, exclude_player_id)
    return Team.LIGHT if sizes[Team.LIGHT] < sizes[Team.DARK] else Team.DARK


async def append_history(
    session: AsyncSession,
    registration: MatchRegistration,
    action: str,
    old_status: Optional[RegistrationStatus],
    actor: RegistrationOrigin,
) -> None:
    session.add(
        MatchRegistrationHistory(
            registration_id=registration.id,
            match_id=registration.match_id,
            player_id=registration.player_id,
            action=action,
            old_status=old_status,
            new_status=registration.status,
            team=registration.team,
            position_in_match=registration.position_in_match,
            excuse_reason=registration.excuse_reason,
            changed_by=actor,
            changed_at=utcnow(),
        )
    )
    await session.flush()


async def _flush_registration(session: AsyncSession, match_id: int, player_id: int) -> None:
    """Flush, mapping a unique-constraint race to DuplicateRegistrationError."""
    try:
        await session.flush()
    except IntegrityError as e:
        await session.rollback()
        logger.warning(
            f"Duplicate registration for player {player_id} on match {match_id}: {e}"
        )
        raise DuplicateRegistrationError(
            f"Player {player_id} is already registered for match {match_id}"
        )


async def _build_pending(
    session: AsyncSession,
    match: Match,
    events: List[Tuple[MatchRegistration, NotificationType]],
    actor: RegistrationOrigin,
    **extra,
) -> List[PendingNotification]:
    """Freeze notification contexts before commit."""
    if not events:
        return []
    registered_count = await count_registered(session, match.id)
    pending = []
    for registration, notification_type in events:
        context = NotificationContext(
            match_id=match.id,
            match_datetime=match.scheduled_at,
            match_location=match.location,
            status=registration.status,
            registered_count=registered_count,
            max_players=match.max_players,
            team=registration.team.value if registration.team else None,
            position=(
                registration.position_in_match.value if registration.position_in_match else None
            ),
            excuse_reason=registration.excuse_reason.value if registration.excuse_reason else None,
            excuse_note=registration.excuse_note,
            admin_note=registration.admin_note,
            changed_by=actor.value,
            extra=dict(extra),
        )
        pending.append(PendingNotification(registration.player_id, notification_type, context))
    return pending


# --- Placement and promotion ---


async def _place_registration(
    session: AsyncSession,
    match: Match,
    player: Player,
    registration: Optional[MatchRegistration],
    team: Optional[Team],
    position: Optional[PlayerPosition],
) -> Tuple[RegistrationStatus, Optional[Team], Optional[PlayerPosition]]:
    """
    Decide REGISTERED vs RESERVE for a player asking to play.

    A player who is already REGISTERED keeps the slot; a requested change of
    team or position must fit or CapacityConflictError is raised.
    """
    if position is not None:
        validate_position_for_match(match, position)

    old_status = registration.status if registration else None
    existing_team = registration.team if registration else None
    target_position = (
        position
        or (registration.position_in_match if registration else None)
        or normalize_position_for_mode(match.match_mode, player.primary_position)
    )

    if old_status == RegistrationStatus.REGISTERED:
        target_team = team or existing_team or await _smaller_team(session, match.id, player.id)
        changed = target_team != registration.team or target_position != registration.position_in_match
        if changed and not await is_position_slot_available(
            session, match, target_team, target_position, exclude_player_id=player.id
        ):
            raise CapacityConflictError(
                f"Position {target_position.value} on team {target_team.value} is full"
            )
        return RegistrationStatus.REGISTERED, target_team, target_position

    if team or existing_team:
        team_options = [team or existing_team]
    else:
        preferred = await _smaller_team(session, match.id, player.id)
        team_options = [preferred, preferred.opposite]

    registered = await count_registered(session, match.id, exclude_player_id=player.id)
    if registered < match.max_players:
        for option in team_options:
            if await is_position_slot_available(
                session, match, option, target_position, exclude_player_id=player.id
            ):
                return RegistrationStatus.REGISTERED, option, target_position

    return RegistrationStatus.RESERVE, team_options[0], target_position


async def _promote_from_reserve(
    session: AsyncSession,
    match: Match,
    freed_team: Optional[Team] = None,
    freed_position: Optional[PlayerPosition] = None,
) -> Optional[MatchRegistration]:
    """
    Promote the oldest reserve that fits into a free slot.

    Occupancy is re-read first; at most one player is promoted. A reserve
    takes the freed team only if they allow team moves, and the freed
    position only when resolve_target_position() allows it.
    """
    if await count_registered(session, match.id) >= match.max_players:
        return None

    result = await session.execute(
        select(MatchRegistration)
        .where(
            and_(
                MatchRegistration.match_id == match.id,
                MatchRegistration.status == RegistrationStatus.RESERVE,
            )
        )
        .order_by(MatchRegistration.registered_at, MatchRegistration.id)
        .options(selectinload(MatchRegistration.player).selectinload(Player.settings))
    )

    for candidate in result.scalars().all():
        settings = candidate.player.settings
        can_move = bool(settings and settings.possible_move_to_another_team)
        can_change = bool(settings and settings.possible_change_player_position)
        own_position = candidate.position_in_match or normalize_position_for_mode(
            match.match_mode, candidate.player.primary_position
        )

        team = candidate.team
        if freed_team is not None and (team is None or (team != freed_team and can_move)):
            team = freed_team
        if team is None:
            team = await _smaller_team(session, match.id)

        position = own_position
        if team == freed_team:
            position = resolve_target_position(freed_position, own_position, can_change)

        if not await is_position_slot_available(
            session, match, team, position, exclude_player_id=candidate.player_id
        ):
            continue

        candidate.status = RegistrationStatus.REGISTERED
        candidate.team = team
        candidate.position_in_match = position
        candidate.origin = RegistrationOrigin.SYSTEM
        await session.flush()
        await append_history(
            session, candidate, ACTION_PROMOTE, RegistrationStatus.RESERVE, RegistrationOrigin.SYSTEM
        )
        logger.info(
            f"Promoted player {candidate.player_id} from reserve on match {match.id} "
            f"({team.value}, {position.value if position else 'no position'})"
        )
        return candidate

    return None


# --- Commands ---


async def upsert_registration(
    session: AsyncSession,
    match_id: int,
    player_id: int,
    team: Optional[Team] = None,
    position: Optional[PlayerPosition] = None,
    excuse_reason: Optional[ExcuseReason] = None,
    excuse_note: Optional[str] = None,
    admin_note: Optional[str] = None,
    unregister: bool = False,
    actor: RegistrationOrigin = RegistrationOrigin.USER,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """
    Create or update a player's registration for a match.

    unregister wins over an excuse; an excuse wins over registering. When
    registering, the player gets REGISTERED if the match has room (and the
    requested position is free), otherwise RESERVE. Freeing a REGISTERED
    slot promotes the oldest fitting reserve.

    Args:
        session: Database session
        match_id: Match ID
        player_id: Player ID
        team: Requested team (defaults to existing team, then the smaller team)
        position: Requested position (defaults to existing, then primary position)
        excuse_reason: Excuse the player from the match
        excuse_note: Free-text note for the excuse
        admin_note: Organizer note stored on the registration
        unregister: Withdraw from the match
        actor: Who makes the change

    Returns:
        Registration dict after the change

    Raises:
        MatchNotFoundError, PlayerNotFoundError: Unknown IDs
        RegistrationNotFoundError: Unregistering without a registration
        InvalidTransitionError: Match is canceled
        CapacityConflictError: Registered player asks for a full slot
        DuplicateRegistrationError: Concurrent insert of the same registration
        ValueError: Position not used in the match mode
    """
    team = Team(team) if team else None
    position = PlayerPosition(position) if position else None
    excuse_reason = ExcuseReason(excuse_reason) if excuse_reason else None
    actor = RegistrationOrigin(actor)

    async with get_match_lock(match_id):
        match = await _load_open_match_for_update(session, match_id)
        player = await _get_player(session, player_id)
        registration = await _get_registration(session, match_id, player_id)
        old_status = registration.status if registration else None

        if unregister:
            if registration is None:
                raise RegistrationNotFoundError(
                    f"Player {player_id} has no registration for match {match_id}"
                )
            new_status, action = RegistrationStatus.UNREGISTERED, ACTION_UNREGISTER
            new_team, new_position = registration.team, registration.position_in_match
        elif excuse_reason is not None:
            new_status, action = RegistrationStatus.EXCUSED, ACTION_EXCUSE
            new_team = registration.team if registration else None
            new_position = registration.position_in_match if registration else None
        else:
            new_status, new_team, new_position = await _place_registration(
                session, match, player, registration, team, position
            )
            action = (
                ACTION_REGISTER if new_status == RegistrationStatus.REGISTERED else ACTION_RESERVE
            )

        now = utcnow()
        if registration is None:
            registration = MatchRegistration(
                match_id=match_id,
                player_id=player_id,
                registered_at=now,
                created_at=now,
            )
            session.add(registration)
        elif old_status in INACTIVE_STATUSES and new_status in ACTIVE_STATUSES:
            # Re-entering the queue puts the player behind current occupants
            registration.registered_at = now

        registration.status = new_status
        registration.team = new_team
        registration.position_in_match = new_position
        registration.origin = actor
        if new_status == RegistrationStatus.EXCUSED:
            registration.excuse_reason = excuse_reason
            registration.excuse_note = excuse_note
        elif new_status in ACTIVE_STATUSES:
            registration.excuse_reason = None
            registration.excuse_note = None
        if admin_note is not None:
            registration.admin_note = admin_note

        await _flush_registration(session, match_id, player_id)
        await append_history(session, registration, action, old_status, actor)
        logger.info(
            f"Registration of player {player_id} on match {match_id}: "
            f"{old_status.value if old_status else 'NO_RESPONSE'} -> {new_status.value}"
        )

        events = [(registration, STATUS_NOTIFICATIONS[new_status])]
        if old_status == RegistrationStatus.REGISTERED and new_status in INACTIVE_STATUSES:
            promoted = await _promote_from_reserve(
                session, match, registration.team, registration.position_in_match
            )
            if promoted is not None:
                events.append((promoted, NotificationType.MATCH_WAITING_LIST_MOVED_UP))

        pending = await _build_pending(session, match, events, actor)
        await session.commit()

    await notification_service.dispatch_pending(session, pending, demo_store)
    return registration_to_dict(registration)


async def mark_no_excused(
    session: AsyncSession,
    match_id: int,
    player_id: int,
    admin_note: Optional[str] = None,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """
    Mark a player as absent without excuse (admin action).

    Allowed from any existing registration state, including NO_EXCUSED.
    Frees a registered slot like an excuse does.

    Raises:
        MatchNotFoundError, PlayerNotFoundError, RegistrationNotFoundError: Unknown IDs
        InvalidTransitionError: Match is canceled
    """
    async with get_match_lock(match_id):
        match = await _load_open_match_for_update(session, match_id)
        await _get_player(session, player_id)
        registration = await _get_registration_or_raise(session, match_id, player_id)
        old_status = registration.status

        registration.status = RegistrationStatus.NO_EXCUSED
        registration.excuse_reason = None
        registration.excuse_note = None
        registration.admin_note = (
            admin_note if admin_note and admin_note.strip() else DEFAULT_NO_EXCUSED_NOTE
        )
        registration.origin = RegistrationOrigin.ADMIN
        await session.flush()
        await append_history(
            session, registration, ACTION_NO_EXCUSED, old_status, RegistrationOrigin.ADMIN
        )
        logger.info(f"Player {player_id} marked NO_EXCUSED on match {match_id}")

        events = [(registration, NotificationType.PLAYER_NO_EXCUSED)]
        if old_status == RegistrationStatus.REGISTERED:
            promoted = await _promote_from_reserve(
                session, match, registration.team, registration.position_in_match
            )
            if promoted is not None:
                events.append((promoted, NotificationType.MATCH_WAITING_LIST_MOVED_UP))

        pending = await _build_pending(session, match, events, RegistrationOrigin.ADMIN)
        await session.commit()

    await notification_service.dispatch_pending(session, pending, demo_store)
    return registration_to_dict(registration)


async def cancel_no_excused(
    session: AsyncSession,
    match_id: int,
    player_id: int,
    excuse_reason: Optional[ExcuseReason] = None,
    excuse_note: Optional[str] = None,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """
    Turn a NO_EXCUSED mark into an excuse (admin correction).

    Raises:
        InvalidTransitionError: Registration is not NO_EXCUSED
    """
    async with get_match_lock(match_id):
        match = await _load_match_for_update(session, match_id)
        await _get_player(session, player_id)
        registration = await _get_registration_or_raise(session, match_id, player_id)
        if registration.status != RegistrationStatus.NO_EXCUSED:
            raise InvalidTransitionError(
                f"Only NO_EXCUSED registrations can be excused afterwards "
                f"(current status: {registration.status.value})"
            )

        old_status = registration.status
        registration.status = RegistrationStatus.EXCUSED
        registration.excuse_reason = ExcuseReason(excuse_reason) if excuse_reason else ExcuseReason.OTHER
        registration.excuse_note = (
            excuse_note if excuse_note and excuse_note.strip() else DEFAULT_CANCEL_NO_EXCUSED_NOTE
        )
        registration.admin_note = None
        registration.origin = RegistrationOrigin.ADMIN
        await session.flush()
        await append_history(
            session, registration, ACTION_CANCEL_NO_EXCUSED, old_status, RegistrationOrigin.ADMIN
        )

        pending = await _build_pending(
            session, match, [(registration, NotificationType.PLAYER_EXCUSED)], RegistrationOrigin.ADMIN
        )
        await session.commit()

    await notification_service.dispatch_pending(session, pending, demo_store)
    return registration_to_dict(registration)


async def change_team(
    session: AsyncSession,
    match_id: int,
    player_id: int,
    actor: RegistrationOrigin = RegistrationOrigin.USER,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """
    Move a REGISTERED player to the other team.

    The position is kept when it is free on the new team, otherwise cleared.

    Raises:
        InvalidTransitionError: Registration is not REGISTERED
    """
    actor = RegistrationOrigin(actor)
    async with get_match_lock(match_id):
        match = await _load_open_match_for_update(session, match_id)
        await _get_player(session, player_id)
        registration = await _get_registration_or_raise(session, match_id, player_id)
        if registration.status != RegistrationStatus.REGISTERED:
            raise InvalidTransitionError("Team can only be changed for REGISTERED players")

        new_team = registration.team.opposite if registration.team else Team.DARK
        if not await is_position_slot_available(
            session, match, new_team, registration.position_in_match, exclude_player_id=player_id
        ):
            registration.position_in_match = None
        registration.team = new_team
        registration.origin = actor
        await session.flush()
        await append_history(session, registration, ACTION_CHANGE_TEAM, registration.status, actor)
        logger.info(f"Player {player_id} moved to team {new_team.value} on match {match_id}")

        pending = await _build_pending(
            session, match, [(registration, NotificationType.MATCH_REGISTRATION_UPDATED)], actor
        )
        await session.commit()

    await notification_service.dispatch_pending(session, pending, demo_store)
    return registration_to_dict(registration)


async def change_position(
    session: AsyncSession,
    match_id: int,
    player_id: int,
    position: Optional[PlayerPosition],
    actor: RegistrationOrigin = RegistrationOrigin.USER,
) -> Dict:
    """
    Set the position of an active (REGISTERED or RESERVE) registration.

    Raises:
        InvalidTransitionError: Registration is not active
        CapacityConflictError: Position is full on the player's team
        ValueError: Position not used in the match mode
    """
    position = PlayerPosition(position) if position else None
    actor = RegistrationOrigin(actor)
    async with get_match_lock(match_id):
        match = await _load_open_match_for_update(session, match_id)
        registration = await _get_registration_or_raise(session, match_id, player_id)
        if registration.status not in ACTIVE_STATUSES:
            raise InvalidTransitionError("Position can only be changed for active registrations")
        validate_position_for_match(match, position)

        if registration.status == RegistrationStatus.REGISTERED and not await is_position_slot_available(
            session, match, registration.team, position, exclude_player_id=player_id
        ):
            raise CapacityConflictError(f"Position {position.value} is full")

        registration.position_in_match = position
        registration.origin = actor
        await session.flush()
        await append_history(
            session, registration, ACTION_CHANGE_POSITION, registration.status, actor
        )
        await session.commit()

    return registration_to_dict(registration)


async def apply_capacity(
    session: AsyncSession,
    match_id: int,
    max_players: int,
    demo_store: Optional[DemoNotificationStore] = None,
) -> Dict:
    """
    Change a match's capacity and recalculate statuses.

    On a decrease the newest REGISTERED players become RESERVE; on an
    increase the oldest reserves are promoted while they fit.

    Returns:
        Dict with the new capacity and the IDs of demoted/promoted players

    Raises:
        ValueError: Negative capacity
    """
    if max_players is None or max_players < 0:
        raise ValueError("max_players must be zero or positive")

    async with get_match_lock(match_id):
        match = await _load_match_for_update(session, match_id)
        match.max_players = max_players
        await session.flush()
        events, demoted, promoted = await _recalculate_statuses(session, match)
        pending = await _build_pending(session, match, events, RegistrationOrigin.SYSTEM)
        await session.commit()

    await notification_service.dispatch_pending(session, pending, demo_store)
    logger.info(
        f"Capacity of match {match_id} set to {max_players}: "
        f"{len(demoted)} demoted, {len(promoted)} promoted"
    )
    return {
        "match_id": match_id,
        "max_players": max_players,
        "demoted_player_ids": demoted,
        "promoted_player_ids": promoted,
    }


async def _recalculate_statuses(
    session: AsyncSession, match: Match
) -> Tuple[List[Tuple[MatchRegistration, NotificationType]], List[int], List[int]]:
    result = await session.execute(
        select(MatchRegistration)
        .where(
            and_(
                MatchRegistration.match_id == match.id,
                MatchRegistration.status == RegistrationStatus.REGISTERED,
            )
        )
        .order_by(MatchRegistration.registered_at, MatchRegistration.id)
    )
    registered = result.scalars().all()

    events = []
    demoted: List[int] = []
    promoted: List[int] = []

    overflow = registered[match.max_players:]
    for registration in overflow:
        registration.status = RegistrationStatus.RESERVE
        registration.origin = RegistrationOrigin.SYSTEM
        await session.flush()
        await append_history(
            session, registration, ACTION_DEMOTE, RegistrationStatus.REGISTERED, RegistrationOrigin.SYSTEM
        )
        events.append((registration, NotificationType.MATCH_REGISTRATION_RESERVED))
        demoted.append(registration.player_id)

    if not overflow:
        while True:
            candidate = await _promote_from_reserve(session, match)
            if candidate is None:
                break
            events.append((candidate, NotificationType.MATCH_WAITING_LIST_MOVED_UP))
            promoted.append(candidate.player_id)

    return events, demoted, promoted


# --- Queries ---


async def get_registration(session: AsyncSession, match_id: int, player_id: int) -> Dict:
    """Get one registration or raise RegistrationNotFoundError."""
    registration = await _get_registration_or_raise(session, match_id, player_id)
    return registration_to_dict(registration)


async def get_registrations_for_match(
    session: AsyncSession,
    match_id: int,
    status: Optional[RegistrationStatus] = None,
) -> List[Dict]:
    """
    List registrations of a match in queue order.

    Raises:
        MatchNotFoundError: If the match does not exist
    """
    match_result = await session.execute(select(Match.id).where(Match.id == match_id))
    if match_result.scalar_one_or_none() is None:
        raise MatchNotFoundError(f"Match {match_id} not found")

    query = (
        select(MatchRegistration, Player.full_name)
        .join(Player, Player.id == MatchRegistration.player_id)
        .where(MatchRegistration.match_id == match_id)
    )
    if status is not None:
        query = query.where(MatchRegistration.status == RegistrationStatus(status))
    query = query.order_by(MatchRegistration.registered_at, MatchRegistration.id)

    result = await session.execute(query)
    return [registration_to_dict(registration, name) for registration, name in result.all()]


async def get_registration_history(
    session: AsyncSession, match_id: int, player_id: Optional[int] = None
) -> List[Dict]:
    """History rows of a match (optionally one player), oldest first."""
    query = select(MatchRegistrationHistory).where(MatchRegistrationHistory.match_id == match_id)
    if player_id is not None:
        query = query.where(MatchRegistrationHistory.player_id == player_id)
    query = query.order_by(MatchRegistrationHistory.changed_at, MatchRegistrationHistory.id)
    result = await session.execute(query)
    return [_history_to_dict(entry) for entry in result.scalars().all()]
