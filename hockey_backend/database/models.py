"""
SQLAlchemy ORM models for the hockey club registration system.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hockey_backend.database.db import Base
from hockey_backend.utils.datetime_utils import utcnow


class MatchMode(str, enum.Enum):
    """Match mode: skaters per team plus goalie on/off."""

    THREE_ON_THREE_NO_GOALIE = "THREE_ON_THREE_NO_GOALIE"
    THREE_ON_THREE_WITH_GOALIE = "THREE_ON_THREE_WITH_GOALIE"
    FOUR_ON_FOUR_NO_GOALIE = "FOUR_ON_FOUR_NO_GOALIE"
    FOUR_ON_FOUR_WITH_GOALIE = "FOUR_ON_FOUR_WITH_GOALIE"
    FIVE_ON_FIVE_NO_GOALIE = "FIVE_ON_FIVE_NO_GOALIE"
    FIVE_ON_FIVE_WITH_GOALIE = "FIVE_ON_FIVE_WITH_GOALIE"
    SIX_ON_SIX_NO_GOALIE = "SIX_ON_SIX_NO_GOALIE"


class MatchStatus(str, enum.Enum):
    """Match status enum."""

    SCHEDULED = "SCHEDULED"
    CANCELED = "CANCELED"


class PlayerStatus(str, enum.Enum):
    """Player approval status."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PlayerPosition(str, enum.Enum):
    """Ice positions a player can prefer or be placed on."""

    GOALIE = "GOALIE"
    DEFENSE_LEFT = "DEFENSE_LEFT"
    DEFENSE_RIGHT = "DEFENSE_RIGHT"
    DEFENSE = "DEFENSE"
    CENTER = "CENTER"
    WING_LEFT = "WING_LEFT"
    WING_RIGHT = "WING_RIGHT"
    FORWARD = "FORWARD"
    ANY = "ANY"


class PositionCategory(str, enum.Enum):
    """Line a position belongs to."""

    GOALIE = "GOALIE"
    DEFENSE = "DEFENSE"
    FORWARD = "FORWARD"


class Team(str, enum.Enum):
    """Match team (jersey color)."""

    DARK = "DARK"
    LIGHT = "LIGHT"

    @property
    def opposite(self) -> "Team":
        return Team.LIGHT if self is Team.DARK else Team.DARK


class RegistrationStatus(str, enum.Enum):
    """
    Player participation status on a match.

    NO_RESPONSE is implicit: a player without a registration row.
    """

    REGISTERED = "REGISTERED"
    RESERVE = "RESERVE"
    EXCUSED = "EXCUSED"
    UNREGISTERED = "UNREGISTERED"
    NO_EXCUSED = "NO_EXCUSED"


class ExcuseReason(str, enum.Enum):
    """Reason given with an excuse."""

    ILLNESS = "ILLNESS"
    WORK = "WORK"
    FAMILY = "FAMILY"
    INJURY = "INJURY"
    OTHER = "OTHER"


class RegistrationOrigin(str, enum.Enum):
    """Who made a registration change."""

    USER = "user"
    SYSTEM = "system"
    ADMIN = "admin"


class GlobalNotificationLevel(str, enum.Enum):
    """Account-wide email notification level."""

    NONE = "NONE"
    IMPORTANT_ONLY = "IMPORTANT_ONLY"
    ALL = "ALL"


class NotificationCategory(str, enum.Enum):
    """Notification category enum."""

    SYSTEM = "SYSTEM"
    REGISTRATION = "REGISTRATION"
    EXCUSE = "EXCUSE"
    MATCH_INFO = "MATCH_INFO"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    MATCH_REGISTRATION_CREATED = "MATCH_REGISTRATION_CREATED"
    MATCH_REGISTRATION_UPDATED = "MATCH_REGISTRATION_UPDATED"
    MATCH_REGISTRATION_CANCELED = "MATCH_REGISTRATION_CANCELED"
    MATCH_REGISTRATION_RESERVED = "MATCH_REGISTRATION_RESERVED"
    MATCH_WAITING_LIST_MOVED_UP = "MATCH_WAITING_LIST_MOVED_UP"
    MATCH_REGISTRATION_NO_RESPONSE = "MATCH_REGISTRATION_NO_RESPONSE"
    PLAYER_EXCUSED = "PLAYER_EXCUSED"
    PLAYER_NO_EXCUSED = "PLAYER_NO_EXCUSED"
    MATCH_REMINDER = "MATCH_REMINDER"
    MATCH_CANCELED = "MATCH_CANCELED"
    MATCH_UNCANCELED = "MATCH_UNCANCELED"
    MATCH_TIME_CHANGED = "MATCH_TIME_CHANGED"
    PLAYER_CREATED = "PLAYER_CREATED"
    PLAYER_UPDATED = "PLAYER_UPDATED"
    PLAYER_APPROVED = "PLAYER_APPROVED"
    PLAYER_REJECTED = "PLAYER_REJECTED"
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RESET = "PASSWORD_RESET"
    SECURITY_ALERT = "SECURITY_ALERT"


class User(Base):
    """Account that owns zero or more players."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=True, unique=True)
    full_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    players = relationship("Player", back_populates="user")
    settings = relationship(
        "UserSettings", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )


class UserSettings(Base):
    """Account-level notification preferences."""

    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    global_notification_level = Column(
        Enum(GlobalNotificationLevel), nullable=False, default=GlobalNotificationLevel.ALL
    )
    copy_all_player_notifications_to_user_email = Column(Boolean, nullable=False, default=True)
    receive_notifications_for_players_with_own_email = Column(
        Boolean, nullable=False, default=False
    )
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="settings")


class Player(Base):
    """Club player."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String, nullable=False)
    phone_number = Column(String, nullable=True)
    status = Column(Enum(PlayerStatus), nullable=False, default=PlayerStatus.APPROVED)
    primary_position = Column(Enum(PlayerPosition), nullable=True)
    secondary_position = Column(Enum(PlayerPosition), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    user = relationship("User", back_populates="players")
    settings = relationship(
        "PlayerSettings", back_populates="player", uselist=False, cascade="all, delete-orphan"
    )
    registrations = relationship("MatchRegistration", back_populates="player")

    __table_args__ = (Index("idx_players_user", "user_id"),)


class PlayerSettings(Base):
    """Player-level contact details and notification preferences."""

    __tablename__ = "player_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(
        Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    contact_email = Column(String, nullable=True)
    contact_phone = Column(String, nullable=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    sms_enabled = Column(Boolean, nullable=False, default=False)
    registration_notifications_enabled = Column(Boolean, nullable=False, default=True)
    excuse_notifications_enabled = Column(Boolean, nullable=False, default=True)
    notify_on_match_cancel = Column(Boolean, nullable=False, default=True)
    notify_on_match_change = Column(Boolean, nullable=False, default=True)
    notify_reminders = Column(Boolean, nullable=False, default=False)
    system_notifications_enabled = Column(Boolean, nullable=False, default=True)
    reminder_hours_before = Column(Integer, nullable=False, default=24)
    possible_move_to_another_team = Column(Boolean, nullable=False, default=False)
    possible_change_player_position = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    player = relationship("Player", back_populates="settings")


class Match(Base):
    """Scheduled match. Cancellation is a status change, never a delete."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    location = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=True)
    max_players = Column(Integer, nullable=False)
    match_mode = Column(Enum(MatchMode), nullable=True)
    status = Column(Enum(MatchStatus), nullable=False, default=MatchStatus.SCHEDULED)
    cancel_reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    registrations = relationship("MatchRegistration", back_populates="match")

    __table_args__ = (
        CheckConstraint("max_players >= 0", name="ck_matches_max_players"),
        Index("idx_matches_scheduled_at", "scheduled_at"),
    )


class MatchRegistration(Base):
    """
    A player's participation on a match.

    registered_at is the waitlist FIFO key; it is reset when the player
    re-enters the queue after unregistering or being excused.
    """

    __tablename__ = "match_registrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    status = Column(Enum(RegistrationStatus), nullable=False)
    team = Column(Enum(Team), nullable=True)
    position_in_match = Column(Enum(PlayerPosition), nullable=True)
    excuse_reason = Column(Enum(ExcuseReason), nullable=True)
    excuse_note = Column(Text, nullable=True)
    admin_note = Column(Text, nullable=True)
    origin = Column(Enum(RegistrationOrigin), nullable=False, default=RegistrationOrigin.USER)
    registered_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    match = relationship("Match", back_populates="registrations")
    player = relationship("Player", back_populates="registrations")

    __table_args__ = (
        UniqueConstraint("match_id", "player_id", name="uq_match_registration_player"),
        Index("idx_match_registrations_queue", "match_id", "status", "registered_at"),
    )


class MatchRegistrationHistory(Base):
    """Append-only audit of registration changes."""

    __tablename__ = "match_registration_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    registration_id = Column(
        Integer, ForeignKey("match_registrations.id", ondelete="CASCADE"), nullable=False
    )
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    action = Column(String(50), nullable=False)
    old_status = Column(Enum(RegistrationStatus), nullable=True)
    new_status = Column(Enum(RegistrationStatus), nullable=False)
    team = Column(Enum(Team), nullable=True)
    position_in_match = Column(Enum(PlayerPosition), nullable=True)
    excuse_reason = Column(Enum(ExcuseReason), nullable=True)
    changed_by = Column(Enum(RegistrationOrigin), nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_registration_history_registration", "registration_id", "changed_at"),
        Index("idx_registration_history_match", "match_id"),
    )


class Notification(Base):
    """In-app notifications for users and players."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=True)
    type = Column(String, nullable=False)  # NotificationType enum value
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(Text, nullable=True)  # JSON string (match_id, status, ...)
    email_to = Column(String, nullable=True)
    sms_to = Column(String, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read", "created_at"),
        Index("idx_notifications_player_created", "player_id", "created_at"),
    )


class Setting(Base):
    """Application configuration."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
