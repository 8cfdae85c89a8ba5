"""
Capacity and position model for a match.

Pure functions: which ice positions a match mode uses, how many slots
each position gets per team, and how positions group into lines.
"""

from typing import Dict, List, Optional, Tuple

from hockey_backend.database.models import (
    MatchMode,
    PlayerPosition,
    PositionCategory,
)

# (skaters per team, goalie)
MODE_SHAPES: Dict[MatchMode, Tuple[int, bool]] = {
    MatchMode.THREE_ON_THREE_NO_GOALIE: (3, False),
    MatchMode.THREE_ON_THREE_WITH_GOALIE: (3, True),
    MatchMode.FOUR_ON_FOUR_NO_GOALIE: (4, False),
    MatchMode.FOUR_ON_FOUR_WITH_GOALIE: (4, True),
    MatchMode.FIVE_ON_FIVE_NO_GOALIE: (5, False),
    MatchMode.FIVE_ON_FIVE_WITH_GOALIE: (5, True),
    MatchMode.SIX_ON_SIX_NO_GOALIE: (6, False),
}

_THREE_ON_THREE = [PlayerPosition.WING_LEFT, PlayerPosition.WING_RIGHT, PlayerPosition.DEFENSE]
_FOUR_ON_FOUR = [
    PlayerPosition.WING_LEFT,
    PlayerPosition.WING_RIGHT,
    PlayerPosition.DEFENSE_LEFT,
    PlayerPosition.DEFENSE_RIGHT,
]
_FIVE_ON_FIVE = [
    PlayerPosition.WING_LEFT,
    PlayerPosition.CENTER,
    PlayerPosition.WING_RIGHT,
    PlayerPosition.DEFENSE_LEFT,
    PlayerPosition.DEFENSE_RIGHT,
]
_SIX_ON_SIX = [
    PlayerPosition.WING_LEFT,
    PlayerPosition.CENTER,
    PlayerPosition.WING_RIGHT,
    PlayerPosition.DEFENSE,
    PlayerPosition.DEFENSE_LEFT,
    PlayerPosition.DEFENSE_RIGHT,
]
DEFAULT_ICE_POSITIONS = [
    PlayerPosition.GOALIE,
    PlayerPosition.DEFENSE_LEFT,
    PlayerPosition.DEFENSE_RIGHT,
    PlayerPosition.WING_LEFT,
    PlayerPosition.CENTER,
    PlayerPosition.WING_RIGHT,
]

_SKATER_LAYOUTS = {3: _THREE_ON_THREE, 4: _FOUR_ON_FOUR, 5: _FIVE_ON_FIVE, 6: _SIX_ON_SIX}

POSITION_CATEGORIES: Dict[PlayerPosition, Optional[PositionCategory]] = {
    PlayerPosition.GOALIE: PositionCategory.GOALIE,
    PlayerPosition.DEFENSE_LEFT: PositionCategory.DEFENSE,
    PlayerPosition.DEFENSE_RIGHT: PositionCategory.DEFENSE,
    PlayerPosition.DEFENSE: PositionCategory.DEFENSE,
    PlayerPosition.CENTER: PositionCategory.FORWARD,
    PlayerPosition.WING_LEFT: PositionCategory.FORWARD,
    PlayerPosition.WING_RIGHT: PositionCategory.FORWARD,
    PlayerPosition.FORWARD: PositionCategory.FORWARD,
    PlayerPosition.ANY: None,
}


def skaters_per_team(mode: MatchMode) -> int:
    return MODE_SHAPES[mode][0]


def has_goalie(mode: MatchMode) -> bool:
    return MODE_SHAPES[mode][1]


def players_per_team(mode: MatchMode) -> int:
    """Skaters on both lines (two shifts) plus the goalie."""
    skaters, goalie = MODE_SHAPES[mode]
    return skaters * 2 + (1 if goalie else 0)


def total_players(mode: MatchMode) -> int:
    return players_per_team(mode) * 2


def slots_per_team(max_players: Optional[int]) -> int:
    """Each team gets half of the match capacity."""
    if not max_players or max_players < 0:
        return 0
    return max_players // 2


def get_position_category(position: Optional[PlayerPosition]) -> Optional[PositionCategory]:
    """Return the line of a position; None for ANY or no position."""
    if position is None:
        return None
    return POSITION_CATEGORIES.get(PlayerPosition(position))


def is_unrestricted_position(position: Optional[PlayerPosition]) -> bool:
    """ANY or no position never blocks a slot."""
    return position is None or position == PlayerPosition.ANY


def get_ice_positions_for_mode(mode: Optional[MatchMode]) -> List[PlayerPosition]:
    """
    Return the ordered ice positions used by a match mode.

    Args:
        mode: Match mode, or None for the default layout

    Returns:
        List of positions; GOALIE comes first when the mode has a goalie
    """
    if mode is None:
        return list(DEFAULT_ICE_POSITIONS)

    skaters, goalie = MODE_SHAPES[MatchMode(mode)]
    positions = list(_SKATER_LAYOUTS[skaters])
    if goalie:
        positions.insert(0, PlayerPosition.GOALIE)
    return positions


def build_position_capacity_for_mode(
    mode: Optional[MatchMode], slots_for_team: int
) -> Dict[PlayerPosition, int]:
    """
    Build the per-team slot table for a match mode.

    GOALIE gets one slot when the layout has one; remaining slots are dealt
    round-robin over the skater positions in layout order.

    Args:
        mode: Match mode (None uses the default layout)
        slots_for_team: Total number of slots one team has

    Returns:
        Dict mapping each ice position to its capacity per team. Empty when
        the team has no slots.
    """
    if slots_for_team <= 0:
        return {}

    positions = get_ice_positions_for_mode(mode)
    capacity: Dict[PlayerPosition, int] = {position: 0 for position in positions}

    remaining = slots_for_team
    if PlayerPosition.GOALIE in capacity:
        capacity[PlayerPosition.GOALIE] = 1
        remaining -= 1

    skaters = [p for p in positions if p != PlayerPosition.GOALIE]
    if not skaters:
        return capacity

    index = 0
    while remaining > 0:
        capacity[skaters[index % len(skaters)]] += 1
        index += 1
        remaining -= 1

    return capacity


def positions_in_category(
    mode: Optional[MatchMode], category: Optional[PositionCategory]
) -> List[PlayerPosition]:
    """Ice positions of a mode belonging to one line, in layout order."""
    if category is None:
        return []
    return [
        position
        for position in get_ice_positions_for_mode(mode)
        if get_position_category(position) == category
    ]


def resolve_target_position(
    freed_position: Optional[PlayerPosition],
    candidate_position: Optional[PlayerPosition],
    can_change_position: bool,
) -> Optional[PlayerPosition]:
    """
    Decide which position a promoted player takes when filling a freed slot.

    A goalie slot is only ever taken by a goalie. Players without a fixed
    position, or on the same line as the freed slot, take the freed position.
    A cross-line move happens only when the player allows position changes;
    otherwise the player keeps their own position.
    """
    if is_unrestricted_position(freed_position):
        return candidate_position

    if freed_position == PlayerPosition.GOALIE:
        return candidate_position

    if is_unrestricted_position(candidate_position):
        return freed_position

    candidate_category = get_position_category(candidate_position)
    if candidate_category == PositionCategory.GOALIE:
        return candidate_position

    if candidate_position == freed_position:
        return freed_position
    if candidate_category == get_position_category(freed_position):
        return freed_position
    if can_change_position:
        return freed_position
    return candidate_position


def normalize_position_for_mode(
    mode: Optional[MatchMode], position: Optional[PlayerPosition]
) -> Optional[PlayerPosition]:
    """Drop a preferred position that the mode does not put on the ice."""
    if is_unrestricted_position(position):
        return None
    if PlayerPosition(position) in get_ice_positions_for_mode(mode):
        return PlayerPosition(position)
    return None
