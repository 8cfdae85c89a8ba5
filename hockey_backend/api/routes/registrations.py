"""Match registration route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_backend.api.routes import CONFLICT_ERRORS
from hockey_backend.database.db import get_db_session
from hockey_backend.database.models import RegistrationOrigin, RegistrationStatus
from hockey_backend.models.schemas import (
    CancelNoExcusedRequest,
    ChangePositionRequest,
    NoExcusedRequest,
    RegistrationHistoryResponse,
    RegistrationResponse,
    RegistrationUpsertRequest,
)
from hockey_backend.services import registration_service
from hockey_backend.services.registration_service import NotFoundError

logger = logging.getLogger(__name__)
router = APIRouter()


async def _upsert(
    session: AsyncSession,
    match_id: int,
    player_id: int,
    payload: RegistrationUpsertRequest,
    actor: RegistrationOrigin,
):
    try:
        return await registration_service.upsert_registration(
            session,
            match_id,
            player_id,
            team=payload.team,
            position=payload.position,
            excuse_reason=payload.excuse_reason,
            excuse_note=payload.excuse_note,
            admin_note=payload.admin_note,
            unregister=payload.unregister,
            actor=actor,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating registration: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating registration: {str(e)}")


@router.put(
    "/api/matches/{match_id}/registrations/{player_id}", response_model=RegistrationResponse
)
async def upsert_registration(
    match_id: int,
    player_id: int,
    payload: RegistrationUpsertRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Register, excuse or unregister a player.

    The resulting status (REGISTERED or RESERVE when registering) is decided
    by the match capacity and position slots. The change is always recorded
    as made by the player.
    """
    return await _upsert(session, match_id, player_id, payload, RegistrationOrigin.USER)


@router.get(
    "/api/matches/{match_id}/registrations", response_model=List[RegistrationResponse]
)
async def list_registrations(
    match_id: int,
    status: Optional[RegistrationStatus] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """List registrations of a match in queue order."""
    try:
        return await registration_service.get_registrations_for_match(session, match_id, status)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error fetching registrations: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching registrations: {str(e)}")


@router.get(
    "/api/matches/{match_id}/registrations/history",
    response_model=List[RegistrationHistoryResponse],
)
async def registration_history(
    match_id: int,
    player_id: Optional[int] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Registration history of a match, oldest first."""
    try:
        return await registration_service.get_registration_history(session, match_id, player_id)
    except Exception as e:
        logger.error(f"Error fetching registration history: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"Error fetching registration history: {str(e)}"
        )


@router.post(
    "/api/matches/{match_id}/registrations/{player_id}/team",
    response_model=RegistrationResponse,
)
async def change_team(
    match_id: int,
    player_id: int,
    session: AsyncSession = Depends(get_db_session),
):
    """Move a registered player to the other team."""
    try:
        return await registration_service.change_team(session, match_id, player_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error changing team: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error changing team: {str(e)}")


@router.put(
    "/api/matches/{match_id}/registrations/{player_id}/position",
    response_model=RegistrationResponse,
)
async def change_position(
    match_id: int,
    player_id: int,
    payload: ChangePositionRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Set the ice position of an active registration."""
    try:
        return await registration_service.change_position(
            session, match_id, player_id, payload.position
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error changing position: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error changing position: {str(e)}")


@router.post(
    "/api/admin/matches/{match_id}/registrations/{player_id}/no-excused",
    response_model=RegistrationResponse,
)
async def mark_no_excused(
    match_id: int,
    player_id: int,
    payload: Optional[NoExcusedRequest] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Mark a player as absent without excuse."""
    try:
        admin_note = payload.admin_note if payload else None
        return await registration_service.mark_no_excused(
            session, match_id, player_id, admin_note=admin_note
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error marking player as no-excused: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=500, detail=f"Error marking player as no-excused: {str(e)}"
        )


@router.post(
    "/api/admin/matches/{match_id}/registrations/{player_id}/cancel-no-excused",
    response_model=RegistrationResponse,
)
async def cancel_no_excused(
    match_id: int,
    player_id: int,
    payload: Optional[CancelNoExcusedRequest] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Turn a no-excused mark into an excuse."""
    try:
        return await registration_service.cancel_no_excused(
            session,
            match_id,
            player_id,
            excuse_reason=payload.excuse_reason if payload else None,
            excuse_note=payload.excuse_note if payload else None,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CONFLICT_ERRORS as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error canceling no-excused: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error canceling no-excused: {str(e)}")


@router.put(
    "/api/admin/matches/{match_id}/registrations/{player_id}",
    response_model=RegistrationResponse,
)
async def admin_upsert_registration(
    match_id: int,
    player_id: int,
    payload: RegistrationUpsertRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Register, excuse or unregister a player on their behalf."""
    return await _upsert(session, match_id, player_id, payload, RegistrationOrigin.ADMIN)
