"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from hockey_backend.database.models import (
    ExcuseReason,
    GlobalNotificationLevel,
    MatchMode,
    PlayerPosition,
    Team,
)


# ============================================================================
# Registrations
# ============================================================================


class RegistrationUpsertRequest(BaseModel):
    """Create or update a registration. unregister wins over excuse_reason."""

    team: Optional[Team] = None
    position: Optional[PlayerPosition] = None
    excuse_reason: Optional[ExcuseReason] = None
    excuse_note: Optional[str] = Field(default=None, max_length=1000)
    admin_note: Optional[str] = Field(default=None, max_length=1000)
    unregister: bool = False


class NoExcusedRequest(BaseModel):
    admin_note: Optional[str] = Field(default=None, max_length=1000)


class CancelNoExcusedRequest(BaseModel):
    excuse_reason: Optional[ExcuseReason] = None
    excuse_note: Optional[str] = Field(default=None, max_length=1000)


class ChangePositionRequest(BaseModel):
    position: Optional[PlayerPosition] = None


class RegistrationResponse(BaseModel):
    """Registration of a player on a match."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    match_id: int
    player_id: int
    player_name: Optional[str] = None
    status: str
    team: Optional[str] = None
    position_in_match: Optional[str] = None
    excuse_reason: Optional[str] = None
    excuse_note: Optional[str] = None
    admin_note: Optional[str] = None
    origin: Optional[str] = None
    registered_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class RegistrationHistoryResponse(BaseModel):
    id: int
    registration_id: int
    match_id: int
    player_id: int
    action: str
    old_status: Optional[str] = None
    new_status: str
    team: Optional[str] = None
    position_in_match: Optional[str] = None
    excuse_reason: Optional[str] = None
    changed_by: str
    changed_at: Optional[str] = None


# ============================================================================
# Positions and lineup
# ============================================================================


class PositionSlotResponse(BaseModel):
    position: str
    capacity: int
    occupied: int
    free: int
    player_ids: List[int] = []


class TeamOverviewResponse(BaseModel):
    team: str
    player_count: int
    unplaced_count: int
    positions: List[PositionSlotResponse]


class TeamPositionOverviewResponse(TeamOverviewResponse):
    """Position overview for a single team."""

    match_id: int
    match_mode: Optional[str] = None
    max_players: int
    slots_per_team: int
    include_reserve: bool


class MatchPositionOverviewResponse(BaseModel):
    """Position overview for both teams."""

    match_id: int
    match_mode: Optional[str] = None
    max_players: int
    slots_per_team: int
    include_reserve: bool
    teams: Dict[str, TeamOverviewResponse]


class AutoLineupResponse(BaseModel):
    match_id: int
    regenerate: bool
    assigned: Dict[str, str]
    kept: Dict[str, str]
    unassigned_player_ids: List[int]


# ============================================================================
# Matches
# ============================================================================


class MatchCreateRequest(BaseModel):
    scheduled_at: datetime
    max_players: int = Field(ge=0)
    match_mode: Optional[MatchMode] = None
    location: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)


class MatchCancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class MatchRescheduleRequest(BaseModel):
    scheduled_at: datetime


class CapacityChangeRequest(BaseModel):
    max_players: int = Field(ge=0)


class MatchResponse(BaseModel):
    id: int
    scheduled_at: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    max_players: int
    match_mode: Optional[str] = None
    status: str
    cancel_reason: Optional[str] = None
    registered_count: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CapacityChangeResponse(BaseModel):
    match_id: int
    max_players: int
    demoted_player_ids: List[int]
    promoted_player_ids: List[int]


class ReminderResponse(BaseModel):
    match_id: int
    notified_player_ids: List[int]


# ============================================================================
# Settings
# ============================================================================


class UserSettingsResponse(BaseModel):
    user_id: int
    global_notification_level: str
    copy_all_player_notifications_to_user_email: bool
    receive_notifications_for_players_with_own_email: bool
    updated_at: Optional[str] = None


class UserSettingsUpdateRequest(BaseModel):
    """Partial update; omitted fields stay unchanged."""

    model_config = ConfigDict(extra="forbid")
    global_notification_level: Optional[GlobalNotificationLevel] = None
    copy_all_player_notifications_to_user_email: Optional[bool] = None
    receive_notifications_for_players_with_own_email: Optional[bool] = None


class PlayerSettingsResponse(BaseModel):
    player_id: int
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    email_enabled: bool
    sms_enabled: bool
    registration_notifications_enabled: bool
    excuse_notifications_enabled: bool
    notify_on_match_cancel: bool
    notify_on_match_change: bool
    notify_reminders: bool
    system_notifications_enabled: bool
    reminder_hours_before: int
    possible_move_to_another_team: bool
    possible_change_player_position: bool
    updated_at: Optional[str] = None


class PlayerSettingsUpdateRequest(BaseModel):
    """Partial update; omitted fields stay unchanged."""

    model_config = ConfigDict(extra="forbid")
    contact_email: Optional[str] = Field(default=None, max_length=255)
    contact_phone: Optional[str] = Field(default=None, max_length=30)
    email_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    registration_notifications_enabled: Optional[bool] = None
    excuse_notifications_enabled: Optional[bool] = None
    notify_on_match_cancel: Optional[bool] = None
    notify_on_match_change: Optional[bool] = None
    notify_reminders: Optional[bool] = None
    system_notifications_enabled: Optional[bool] = None
    reminder_hours_before: Optional[int] = Field(default=None, ge=0)
    possible_move_to_another_team: Optional[bool] = None
    possible_change_player_position: Optional[bool] = None

    @model_validator(mode="after")
    def validate_flags_not_null(self):
        for name in self.model_fields_set:
            if name in ("contact_email", "contact_phone"):
                continue
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


# ============================================================================
# Notifications
# ============================================================================


class NotificationResponse(BaseModel):
    """Notification response."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: Optional[int] = None
    player_id: Optional[int] = None
    type: str
    title: str
    message: str
    data: Optional[dict] = None
    email_to: Optional[str] = None
    sms_to: Optional[str] = None
    is_read: bool
    read_at: Optional[str] = None
    created_at: Optional[str] = None


class NotificationListResponse(BaseModel):
    """Paginated notification list response."""

    notifications: List[NotificationResponse]
    total_count: int
    has_more: bool


class UnreadCountResponse(BaseModel):
    """Unread notification count response."""

    count: int


class DemoEmailItem(BaseModel):
    to: str
    subject: str
    body: str
    is_html: bool = False
    type: Optional[str] = None
    recipient_kind: Optional[str] = None


class DemoSmsItem(BaseModel):
    to: str
    text: str
    type: Optional[str] = None


class DemoNotificationsResponse(BaseModel):
    """Messages captured in demo mode since the last drain."""

    emails: List[DemoEmailItem]
    sms: List[DemoSmsItem]
