"""
Auto-lineup: place registered players onto ice positions.

plan_lineup() is a pure greedy planner; auto_arrange_lineup() loads a
match, applies the plan and records it in the registration history.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hockey_backend.database.models import (
    Match,
    MatchRegistration,
    MatchMode,
    PlayerPosition,
    RegistrationOrigin,
    RegistrationStatus,
    Team,
)
from hockey_backend.services import registration_service
from hockey_backend.services.registration_service import (
    ACTION_AUTO_LINEUP,
    MatchNotFoundError,
    get_match_lock,
)
from hockey_backend.utils.match_layout import (
    build_position_capacity_for_mode,
    get_ice_positions_for_mode,
    get_position_category,
    is_unrestricted_position,
    normalize_position_for_mode,
    positions_in_category,
    slots_per_team,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineupCandidate:
    """A registered player as the planner sees them."""

    player_id: int
    team: Team
    primary_position: Optional[PlayerPosition] = None
    secondary_position: Optional[PlayerPosition] = None
    current_position: Optional[PlayerPosition] = None


@dataclass
class LineupPlan:
    assignments: Dict[int, PlayerPosition]
    kept: Dict[int, PlayerPosition]
    unassigned: List[int]


def _position_preferences(
    mode: Optional[MatchMode], candidate: LineupCandidate
) -> List[PlayerPosition]:
    """
    Ordered positions to try for one player.

    Primary, secondary, the rest of the primary's line, then any skater
    position. GOALIE is only tried when the player prefers it.
    """
    layout = get_ice_positions_for_mode(mode)
    preferences: List[PlayerPosition] = []

    def add(position: Optional[PlayerPosition]) -> None:
        if position is not None and position in layout and position not in preferences:
            preferences.append(position)

    primary = normalize_position_for_mode(mode, candidate.primary_position)
    secondary = normalize_position_for_mode(mode, candidate.secondary_position)
    add(primary)
    add(secondary)

    # A generic FORWARD/DEFENSE preference still points at its line
    for preferred in (candidate.primary_position, candidate.secondary_position):
        if is_unrestricted_position(preferred):
            continue
        for position in positions_in_category(mode, get_position_category(preferred)):
            add(position)

    for position in layout:
        if position != PlayerPosition.GOALIE:
            add(position)
    return preferences


def plan_lineup(
    mode: Optional[MatchMode],
    max_players: int,
    candidates: Sequence[LineupCandidate],
    regenerate: bool = False,
) -> LineupPlan:
    """
    Greedy placement in the given order (queue order).

    Args:
        mode: Match mode
        max_players: Match capacity
        candidates: REGISTERED players, oldest registration first
        regenerate: Ignore current positions and place everybody again

    Returns:
        LineupPlan with new assignments, kept placements and players that
        fit nowhere
    """
    capacity = build_position_capacity_for_mode(mode, slots_per_team(max_players))
    free = {team: dict(capacity) for team in Team}
    kept: Dict[int, PlayerPosition] = {}

    to_place: List[LineupCandidate] = []
    for candidate in candidates:
        current = candidate.current_position
        if (
            not regenerate
            and not is_unrestricted_position(current)
            and free[candidate.team].get(current, 0) > 0
        ):
            free[candidate.team][current] -= 1
            kept[candidate.player_id] = current
        else:
            to_place.append(candidate)

    assignments: Dict[int, PlayerPosition] = {}
    unassigned: List[int] = []
    for candidate in to_place:
        team_free = free[candidate.team]
        chosen = next(
            (p for p in _position_preferences(mode, candidate) if team_free.get(p, 0) > 0),
            None,
        )
        if chosen is None:
            unassigned.append(candidate.player_id)
            continue
        team_free[chosen] -= 1
        assignments[candidate.player_id] = chosen

    return LineupPlan(assignments=assignments, kept=kept, unassigned=unassigned)


async def auto_arrange_lineup(
    session: AsyncSession, match_id: int, regenerate: bool = False
) -> Dict:
    """
    Assign ice positions to the registered players of a match.

    By default only players without a valid placement are placed and
    existing placements count toward capacity. With regenerate=True every
    placement is recomputed. Players that fit nowhere are left without a
    position and reported.

    Raises:
        MatchNotFoundError: If the match does not exist
    """
    async with get_match_lock(match_id):
        result = await session.execute(select(Match).where(Match.id == match_id).with_for_update())
        match = result.scalar_one_or_none()
        if match is None:
            raise MatchNotFoundError(f"Match {match_id} not found")

        reg_result = await session.execute(
            select(MatchRegistration)
            .where(
                and_(
                    MatchRegistration.match_id == match_id,
                    MatchRegistration.status == RegistrationStatus.REGISTERED,
                )
            )
            .order_by(MatchRegistration.registered_at, MatchRegistration.id)
            .options(selectinload(MatchRegistration.player))
        )
        registrations = reg_result.scalars().all()

        candidates = []
        for registration in registrations:
            if registration.team is None:
                registration.team = Team.DARK
            candidates.append(
                LineupCandidate(
                    player_id=registration.player_id,
                    team=Team(registration.team),
                    primary_position=registration.player.primary_position,
                    secondary_position=registration.player.secondary_position,
                    current_position=registration.position_in_match,
                )
            )

        plan = plan_lineup(match.match_mode, match.max_players, candidates, regenerate)

        for registration in registrations:
            new_position = plan.kept.get(registration.player_id) or plan.assignments.get(
                registration.player_id
            )
            if new_position == registration.position_in_match:
                continue
            registration.position_in_match = new_position
            registration.origin = RegistrationOrigin.SYSTEM
            await session.flush()
            await registration_service.append_history(
                session,
                registration,
                ACTION_AUTO_LINEUP,
                registration.status,
                RegistrationOrigin.SYSTEM,
            )

        await session.commit()

    if plan.unassigned:
        logger.warning(
            f"Auto-lineup for match {match_id} left {len(plan.unassigned)} players without position"
        )
    logger.info(
        f"Auto-lineup for match {match_id}: {len(plan.assignments)} placed, {len(plan.kept)} kept"
    )
    return {
        "match_id": match_id,
        "regenerate": regenerate,
        "assigned": {str(pid): pos.value for pid, pos in plan.assignments.items()},
        "kept": {str(pid): pos.value for pid, pos in plan.kept.items()},
        "unassigned_player_ids": plan.unassigned,
    }
