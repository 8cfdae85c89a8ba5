"""Match lifecycle, position overview and lineup route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_backend.api.routes import CONFLICT_ERRORS
from hockey_backend.database.db import get_db_session
from hockey_backend.database.models import Team
from hockey_backend.models.schemas import (
    AutoLineupResponse,
    CapacityChangeRequest,
    CapacityChangeResponse,
    MatchCancelRequest,
    MatchCreateRequest,
    MatchPositionOverviewResponse,
    MatchRescheduleRequest,
    MatchResponse,
    ReminderResponse,
    TeamPositionOverviewResponse,
)
from hockey_backend.services import lineup_service, match_service, position_service
from hockey_backend.services.registration_service import NotFoundError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "message": "API is running"}


@router.post("/api/admin/matches", response_model=MatchResponse)
async def create_match(
    payload: MatchCreateRequest,
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await match_service.create_match(
            session,
            scheduled_at=payload.scheduled_at,
            max_players=payload.max_players,
            match_mode=payload.match_mode,
            location=payload.location,
            description=payload.description,
            price=payload.price,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating match: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating match: {str(e)}")


@router.get("/api/matches/{match_id}", response_model=MatchResponse)
async def get_match(match_id: int, session: AsyncSession = Depends(get_db_session)):
    try:
        return await match_service.get_match(session, match_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error fetching match: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching match: {str(e)}")


@router.post("/api/admin/matches/{match_id}/cancel", response_model=MatchResponse)
async def cancel_match(
    match_id: int,
    payload: Optional[MatchCancelRequest] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a match. Registered and reserve players are notified."""
    try:
        return await match_service.cancel_match(
            session, match_id, payload.reason if payload else None
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error canceling match: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error canceling match: {str(e)}")


@router.post("/api/admin/matches/{match_id}/uncancel", response_model=MatchResponse)
async def uncancel_match(match_id: int, session: AsyncSession = Depends(get_db_session)):
    try:
        return await match_service.uncancel_match(session, match_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error restoring match: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error restoring match: {str(e)}")


@router.put("/api/admin/matches/{match_id}/schedule", response_model=MatchResponse)
async def reschedule_match(
    match_id: int,
    payload: MatchRescheduleRequest,
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await match_service.reschedule_match(session, match_id, payload.scheduled_at)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error rescheduling match: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error rescheduling match: {str(e)}")


@router.put("/api/admin/matches/{match_id}/capacity", response_model=CapacityChangeResponse)
async def change_capacity(
    match_id: int,
    payload: CapacityChangeRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Change the number of players a match accepts.

    Registered players beyond the new capacity are moved to reserve (newest
    first); freed capacity is filled from reserve in queue order.
    """
    try:
        return await match_service.change_match_capacity(session, match_id, payload.max_players)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error changing capacity: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error changing capacity: {str(e)}")


@router.post("/api/admin/matches/{match_id}/reminders", response_model=ReminderResponse)
async def send_reminders(match_id: int, session: AsyncSession = Depends(get_db_session)):
    try:
        return await match_service.send_match_reminders(session, match_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error sending reminders: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error sending reminders: {str(e)}")


@router.post(
    "/api/admin/matches/{match_id}/no-response-reminders", response_model=ReminderResponse
)
async def send_no_response_reminders(
    match_id: int, session: AsyncSession = Depends(get_db_session)
):
    try:
        return await match_service.send_no_response_reminders(session, match_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error sending no-response reminders: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=500, detail=f"Error sending no-response reminders: {str(e)}"
        )


@router.get(
    "/api/matches/{match_id}/positions", response_model=MatchPositionOverviewResponse
)
async def get_positions(
    match_id: int,
    include_reserve: bool = False,
    session: AsyncSession = Depends(get_db_session),
):
    """Capacity and occupancy of every ice position, for both teams."""
    try:
        return await position_service.get_position_overview_for_match(
            session, match_id, include_reserve
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error fetching position overview: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching position overview: {str(e)}")


@router.get(
    "/api/matches/{match_id}/positions/{team}", response_model=TeamPositionOverviewResponse
)
async def get_team_positions(
    match_id: int,
    team: Team,
    include_reserve: bool = False,
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await position_service.get_position_overview_for_team(
            session, match_id, team, include_reserve
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error fetching team position overview: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"Error fetching team position overview: {str(e)}"
        )


@router.post("/api/admin/matches/{match_id}/auto-lineup", response_model=AutoLineupResponse)
async def auto_lineup(
    match_id: int,
    regenerate: bool = False,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Assign ice positions to registered players.

    Existing valid placements are kept unless regenerate=true.
    """
    try:
        return await lineup_service.auto_arrange_lineup(session, match_id, regenerate)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error arranging lineup: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error arranging lineup: {str(e)}")
