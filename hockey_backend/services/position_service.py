"""
Position and team allocation for matches.

Works out how many slots each ice position has per team and how many of
them registered players already hold.
"""

import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_backend.database.models import (
    Match,
    MatchRegistration,
    PlayerPosition,
    RegistrationStatus,
    Team,
)
from hockey_backend.utils.match_layout import (
    build_position_capacity_for_mode,
    get_ice_positions_for_mode,
    is_unrestricted_position,
    slots_per_team,
)

logger = logging.getLogger(__name__)


def get_capacity_for_match(match: Match) -> Dict[PlayerPosition, int]:
    """Per-team slot table of a match."""
    return build_position_capacity_for_mode(match.match_mode, slots_per_team(match.max_players))


def validate_position_for_match(match: Match, position: Optional[PlayerPosition]) -> None:
    """
    Reject a concrete position the match mode does not use.

    Raises:
        ValueError: If the position is not on the ice in this match mode
    """
    if is_unrestricted_position(position):
        return
    if PlayerPosition(position) not in get_ice_positions_for_mode(match.match_mode):
        mode = match.match_mode.value if match.match_mode else "default"
        raise ValueError(f"Position {PlayerPosition(position).value} is not used in match mode {mode}")


def compute_occupancy(
    match: Match,
    registrations: Iterable[MatchRegistration],
    include_reserve: bool = False,
) -> Dict:
    """
    Count held slots per team and position.

    Registered players without a position (or with a position outside the
    layout) count toward the team total only.

    Args:
        match: Match whose capacity applies
        registrations: Registrations of the match
        include_reserve: Also count RESERVE registrations as holding slots

    Returns:
        Dict with capacity, per-team totals and per-position rows
    """
    capacity = get_capacity_for_match(match)
    counted = {RegistrationStatus.REGISTERED}
    if include_reserve:
        counted.add(RegistrationStatus.RESERVE)

    teams = {}
    for team in Team:
        teams[team] = {
            "team": team.value,
            "player_count": 0,
            "unplaced_count": 0,
            "positions": {
                position: {
                    "position": position.value,
                    "capacity": slots,
                    "occupied": 0,
                    "free": slots,
                    "player_ids": [],
                }
                for position, slots in capacity.items()
            },
        }

    for registration in registrations:
        if registration.status not in counted or registration.team is None:
            continue
        team_row = teams[Team(registration.team)]
        team_row["player_count"] += 1

        position = registration.position_in_match
        if is_unrestricted_position(position) or PlayerPosition(position) not in capacity:
            team_row["unplaced_count"] += 1
            continue

        row = team_row["positions"][PlayerPosition(position)]
        row["occupied"] += 1
        row["free"] = max(0, row["capacity"] - row["occupied"])
        row["player_ids"].append(registration.player_id)

    return {
        "match_id": match.id,
        "match_mode": match.match_mode.value if match.match_mode else None,
        "max_players": match.max_players,
        "slots_per_team": slots_per_team(match.max_players),
        "include_reserve": include_reserve,
        "teams": {
            team.value: {**row, "positions": list(row["positions"].values())}
            for team, row in teams.items()
        },
    }


async def _get_match(session: AsyncSession, match_id: int) -> Match:
    from hockey_backend.services.registration_service import MatchNotFoundError

    result = await session.execute(select(Match).where(Match.id == match_id))
    match = result.scalar_one_or_none()
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found")
    return match


async def get_position_overview_for_match(
    session: AsyncSession, match_id: int, include_reserve: bool = False
) -> Dict:
    """
    Position overview for both teams of a match.

    Raises:
        MatchNotFoundError: If the match does not exist
    """
    match = await _get_match(session, match_id)
    result = await session.execute(
        select(MatchRegistration).where(MatchRegistration.match_id == match_id)
    )
    return compute_occupancy(match, result.scalars().all(), include_reserve=include_reserve)


async def get_position_overview_for_team(
    session: AsyncSession, match_id: int, team: Team, include_reserve: bool = False
) -> Dict:
    """Position overview for one team of a match."""
    overview = await get_position_overview_for_match(session, match_id, include_reserve)
    team = Team(team)
    return {
        "match_id": overview["match_id"],
        "match_mode": overview["match_mode"],
        "max_players": overview["max_players"],
        "slots_per_team": overview["slots_per_team"],
        "include_reserve": include_reserve,
        **overview["teams"][team.value],
    }


async def count_position_holders(
    session: AsyncSession,
    match_id: int,
    team: Team,
    position: PlayerPosition,
    exclude_player_id: Optional[int] = None,
) -> int:
    """Count REGISTERED players holding a position on a team."""
    conditions = [
        MatchRegistration.match_id == match_id,
        MatchRegistration.status == RegistrationStatus.REGISTERED,
        MatchRegistration.team == Team(team),
        MatchRegistration.position_in_match == PlayerPosition(position),
    ]
    if exclude_player_id is not None:
        conditions.append(MatchRegistration.player_id != exclude_player_id)

    result = await session.execute(
        select(func.count()).select_from(MatchRegistration).where(and_(*conditions))
    )
    return result.scalar_one() or 0


async def is_position_slot_available(
    session: AsyncSession,
    match: Match,
    team: Optional[Team],
    position: Optional[PlayerPosition],
    exclude_player_id: Optional[int] = None,
) -> bool:
    """
    Check whether a position on a team still has a free slot.

    Only positions with slots in the match layout are limited. No team, an
    unrestricted position (None/ANY), a match without a mode or capacity, or
    a position the layout gives no slots to never blocks; the match-wide
    player limit still applies.
    """
    if team is None or is_unrestricted_position(position):
        return True
    if match.match_mode is None or not match.max_players or match.max_players <= 0:
        return True

    capacity = get_capacity_for_match(match)
    slots = capacity.get(PlayerPosition(position), 0)
    if slots <= 0:
        return True

    occupied = await count_position_holders(
        session, match.id, team, position, exclude_player_id=exclude_player_id
    )
    return occupied < slots
