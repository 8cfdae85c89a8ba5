"""
Content templates for outgoing notifications.

Content is looked up in TEMPLATES by (notification type, recipient kind).
A missing entry means there is nothing to send for that pair.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from hockey_backend.database.models import NotificationType, RegistrationStatus
from hockey_backend.utils.datetime_utils import format_match_date, format_match_datetime

logger = logging.getLogger(__name__)

APP_NAME = "Hockey Club"


class RecipientKind(str, enum.Enum):
    """Who a piece of content is written for."""

    PLAYER = "PLAYER"  # email to the player
    USER = "USER"  # email copy to the owning account
    SMS = "SMS"  # text message to the player
    IN_APP = "IN_APP"  # stored in-app notification


@dataclass
class NotificationContext:
    """Event data the templates draw from."""

    player_name: Optional[str] = None
    match_id: Optional[int] = None
    match_datetime: Optional[datetime] = None
    match_location: Optional[str] = None
    status: Optional[RegistrationStatus] = None
    registered_count: Optional[int] = None
    max_players: Optional[int] = None
    team: Optional[str] = None
    position: Optional[str] = None
    excuse_reason: Optional[str] = None
    excuse_note: Optional[str] = None
    admin_note: Optional[str] = None
    cancel_reason: Optional[str] = None
    changed_by: Optional[str] = None
    extra: Dict = field(default_factory=dict)

    def to_data(self) -> Dict:
        """JSON-safe subset stored with in-app notifications."""
        data = {
            "match_id": self.match_id,
            "status": self.status.value if self.status else None,
            "team": self.team,
            "position": self.position,
        }
        data.update(self.extra)
        return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class RenderedContent:
    subject: str
    body: str
    is_html: bool = False


Template = Callable[[NotificationContext], RenderedContent]

# type -> (short title, sentence describing the event)
HEADLINES: Dict[NotificationType, Tuple[str, str]] = {
    NotificationType.MATCH_REGISTRATION_CREATED: (
        "Registered for match",
        "is registered for the match.",
    ),
    NotificationType.MATCH_REGISTRATION_UPDATED: (
        "Registration updated",
        "has an updated registration for the match.",
    ),
    NotificationType.MATCH_REGISTRATION_CANCELED: (
        "Registration canceled",
        "is no longer registered for the match.",
    ),
    NotificationType.MATCH_REGISTRATION_RESERVED: (
        "On the waiting list",
        "is on the waiting list for the match.",
    ),
    NotificationType.MATCH_WAITING_LIST_MOVED_UP: (
        "Moved up from the waiting list",
        "moved up from the waiting list and is now registered.",
    ),
    NotificationType.MATCH_REGISTRATION_NO_RESPONSE: (
        "Waiting for your response",
        "has not responded to the match yet.",
    ),
    NotificationType.PLAYER_EXCUSED: (
        "Excused from match",
        "is excused from the match.",
    ),
    NotificationType.PLAYER_NO_EXCUSED: (
        "Missed match without excuse",
        "was marked as absent without an excuse.",
    ),
    NotificationType.MATCH_REMINDER: (
        "Match reminder",
        "has a match coming up.",
    ),
    NotificationType.MATCH_CANCELED: (
        "Match canceled",
        "was affected by a match cancellation.",
    ),
    NotificationType.MATCH_UNCANCELED: (
        "Match restored",
        "is invited again: the match is back on the schedule.",
    ),
    NotificationType.MATCH_TIME_CHANGED: (
        "Match time changed",
        "has a match with a new start time.",
    ),
}

SYSTEM_HEADLINES: Dict[NotificationType, Tuple[str, str]] = {
    NotificationType.PLAYER_CREATED: ("Player created", "A new player was created on your account."),
    NotificationType.PLAYER_UPDATED: ("Player updated", "A player on your account was updated."),
    NotificationType.PLAYER_APPROVED: ("Player approved", "A player on your account was approved."),
    NotificationType.PLAYER_REJECTED: ("Player rejected", "A player on your account was rejected."),
    NotificationType.USER_CREATED: ("Welcome", "Your account was created."),
    NotificationType.USER_UPDATED: ("Account updated", "Your account details were updated."),
    NotificationType.PASSWORD_RESET: ("Password reset", "Your password was reset."),
    NotificationType.SECURITY_ALERT: ("Security alert", "We noticed unusual activity on your account."),
}

STATUS_LABELS = {
    RegistrationStatus.REGISTERED: "registered",
    RegistrationStatus.RESERVE: "waiting list",
    RegistrationStatus.EXCUSED: "excused",
    RegistrationStatus.UNREGISTERED: "unregistered",
    RegistrationStatus.NO_EXCUSED: "absent without excuse",
}

# SMS omits the occupancy for these types
_NO_OCCUPANCY_SMS = {NotificationType.PLAYER_EXCUSED, NotificationType.PLAYER_NO_EXCUSED}


def _match_label(ctx: NotificationContext) -> str:
    if ctx.match_datetime is None:
        return f"match #{ctx.match_id}" if ctx.match_id else "match"
    return format_match_datetime(ctx.match_datetime)


def _occupancy(ctx: NotificationContext) -> Optional[str]:
    if ctx.registered_count is None or ctx.max_players is None:
        return None
    return f"{ctx.registered_count}/{ctx.max_players}"


def _detail_lines(ctx: NotificationContext) -> list:
    lines = [f"Match: {_match_label(ctx)}"]
    if ctx.match_location:
        lines.append(f"Location: {ctx.match_location}")
    if ctx.status:
        lines.append(f"Status: {STATUS_LABELS.get(ctx.status, ctx.status.value)}")
    if ctx.team:
        lines.append(f"Team: {ctx.team}")
    if ctx.position:
        lines.append(f"Position: {ctx.position}")
    occupancy = _occupancy(ctx)
    if occupancy:
        lines.append(f"Registered players: {occupancy}")
    if ctx.excuse_reason:
        note = f" ({ctx.excuse_note})" if ctx.excuse_note else ""
        lines.append(f"Excuse: {ctx.excuse_reason}{note}")
    if ctx.admin_note:
        lines.append(f"Note from the organizer: {ctx.admin_note}")
    if ctx.cancel_reason:
        lines.append(f"Reason: {ctx.cancel_reason}")
    return lines


def _player_email(notification_type: NotificationType) -> Template:
    title, sentence = HEADLINES[notification_type]

    def render(ctx: NotificationContext) -> RenderedContent:
        name = ctx.player_name or "Player"
        body_lines = [
            f"Hello {name},",
            "",
            f"{name} {sentence}",
            "",
            *_detail_lines(ctx),
            "",
            "---",
            f"This is an automated message from {APP_NAME}.",
        ]
        return RenderedContent(
            subject=f"{APP_NAME} - {title} ({_match_label(ctx)})",
            body="\n".join(body_lines),
        )

    return render


def _user_email(notification_type: NotificationType) -> Template:
    title, sentence = HEADLINES[notification_type]

    def render(ctx: NotificationContext) -> RenderedContent:
        name = ctx.player_name or "Your player"
        body_lines = [
            "Hello,",
            "",
            f"This is a copy of a notification for your player {name}.",
            f"{name} {sentence}",
            "",
            *_detail_lines(ctx),
            "",
            "---",
            f"You can change which copies you receive in your {APP_NAME} account settings.",
        ]
        return RenderedContent(
            subject=f"{APP_NAME} - [{name}] {title}",
            body="\n".join(body_lines),
        )

    return render


def _sms(notification_type: NotificationType) -> Template:
    title, _ = HEADLINES[notification_type]

    def render(ctx: NotificationContext) -> RenderedContent:
        parts = []
        if ctx.match_datetime is not None:
            parts.append(f"date: {format_match_date(ctx.match_datetime)}")
        occupancy = _occupancy(ctx)
        if occupancy and notification_type not in _NO_OCCUPANCY_SMS:
            parts.append(occupancy)
        if ctx.player_name:
            parts.append(f"player: {ctx.player_name}")
        if ctx.status:
            parts.append(f"status: {STATUS_LABELS.get(ctx.status, ctx.status.value)}")
        else:
            parts.append(title.lower())
        return RenderedContent(subject="", body=f"{APP_NAME} - " + ", ".join(parts))

    return render


def _in_app(notification_type: NotificationType) -> Template:
    title, sentence = HEADLINES[notification_type]

    def render(ctx: NotificationContext) -> RenderedContent:
        name = ctx.player_name or "Player"
        message = f"{name} {sentence} ({_match_label(ctx)})"
        return RenderedContent(subject=title, body=message)

    return render


def _system_email(notification_type: NotificationType) -> Template:
    title, sentence = SYSTEM_HEADLINES[notification_type]

    def render(ctx: NotificationContext) -> RenderedContent:
        body_lines = ["Hello,", "", sentence]
        if ctx.player_name:
            body_lines.append(f"Player: {ctx.player_name}")
        body_lines.extend(["", "---", f"This is an automated message from {APP_NAME}."])
        return RenderedContent(subject=f"{APP_NAME} - {title}", body="\n".join(body_lines))

    return render


def _system_in_app(notification_type: NotificationType) -> Template:
    title, sentence = SYSTEM_HEADLINES[notification_type]

    def render(ctx: NotificationContext) -> RenderedContent:
        suffix = f" ({ctx.player_name})" if ctx.player_name else ""
        return RenderedContent(subject=title, body=f"{sentence}{suffix}")

    return render


def _build_templates() -> Dict[Tuple[NotificationType, RecipientKind], Template]:
    templates: Dict[Tuple[NotificationType, RecipientKind], Template] = {}
    for notification_type in HEADLINES:
        templates[(notification_type, RecipientKind.PLAYER)] = _player_email(notification_type)
        templates[(notification_type, RecipientKind.USER)] = _user_email(notification_type)
        templates[(notification_type, RecipientKind.SMS)] = _sms(notification_type)
        templates[(notification_type, RecipientKind.IN_APP)] = _in_app(notification_type)
    for notification_type in SYSTEM_HEADLINES:
        templates[(notification_type, RecipientKind.USER)] = _system_email(notification_type)
        templates[(notification_type, RecipientKind.IN_APP)] = _system_in_app(notification_type)
    return templates


TEMPLATES = _build_templates()


def render(
    notification_type: NotificationType,
    recipient_kind: RecipientKind,
    context: NotificationContext,
) -> Optional[RenderedContent]:
    """
    Build content for one (type, recipient kind) pair.

    Returns:
        RenderedContent, or None when no template exists for the pair
    """
    template = TEMPLATES.get((NotificationType(notification_type), RecipientKind(recipient_kind)))
    if template is None:
        logger.debug(f"No {recipient_kind} template for {notification_type}, skipping")
        return None
    return template(context)
