"""Account and player notification settings route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_backend.database.db import get_db_session
from hockey_backend.models.schemas import (
    PlayerSettingsResponse,
    PlayerSettingsUpdateRequest,
    UserSettingsResponse,
    UserSettingsUpdateRequest,
)
from hockey_backend.services import notification_settings_service
from hockey_backend.services.registration_service import NotFoundError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/users/{user_id}/settings", response_model=UserSettingsResponse)
async def get_user_settings(user_id: int, session: AsyncSession = Depends(get_db_session)):
    try:
        return await notification_settings_service.get_or_create_user_settings(session, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error fetching user settings: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching user settings: {str(e)}")


@router.patch("/api/users/{user_id}/settings", response_model=UserSettingsResponse)
async def update_user_settings(
    user_id: int,
    payload: UserSettingsUpdateRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Partially update account notification settings."""
    try:
        return await notification_settings_service.update_user_settings(
            session, user_id, payload.model_dump(exclude_unset=True)
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating user settings: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating user settings: {str(e)}")


@router.get("/api/players/{player_id}/settings", response_model=PlayerSettingsResponse)
async def get_player_settings(player_id: int, session: AsyncSession = Depends(get_db_session)):
    try:
        return await notification_settings_service.get_or_create_player_settings(
            session, player_id
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error fetching player settings: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching player settings: {str(e)}")


@router.patch("/api/players/{player_id}/settings", response_model=PlayerSettingsResponse)
async def update_player_settings(
    player_id: int,
    payload: PlayerSettingsUpdateRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Partially update player notification settings.

    Contact email and phone can be cleared by sending null or an empty string.
    """
    try:
        return await notification_settings_service.update_player_settings(
            session, player_id, payload.model_dump(exclude_unset=True)
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating player settings: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating player settings: {str(e)}")
