"""
Unit tests for the notification preference resolver.

Players are built in memory; the resolver never touches the database.
"""

import pytest

from hockey_backend.database.models import (
    GlobalNotificationLevel,
    NotificationType,
    Player,
    PlayerSettings,
    User,
    UserSettings,
)
from hockey_backend.services.notification_preferences import (
    evaluate,
    evaluate_for_user,
    is_important,
    level_allows,
)

CREATED = NotificationType.MATCH_REGISTRATION_CREATED


def make_player(
    user_email="owner@example.com",
    level=GlobalNotificationLevel.ALL,
    copy_all=True,
    include_own=False,
    contact_email=None,
    contact_phone=None,
    phone_number=None,
    with_user=True,
    **player_flags,
):
    player = Player(full_name="Jan Novak", phone_number=phone_number)
    player.settings = PlayerSettings(
        contact_email=contact_email, contact_phone=contact_phone, **player_flags
    )
    if with_user:
        user = User(email=user_email)
        user.settings = UserSettings(
            global_notification_level=level,
            copy_all_player_notifications_to_user_email=copy_all,
            receive_notifications_for_players_with_own_email=include_own,
        )
        player.user = user
    return player


class TestUserCopy:
    @pytest.mark.parametrize("copy_all", [True, False])
    @pytest.mark.parametrize("include_own", [True, False])
    def test_level_none_never_copies_to_user(self, copy_all, include_own):
        player = make_player(
            level=GlobalNotificationLevel.NONE, copy_all=copy_all, include_own=include_own
        )
        assert evaluate(player, CREATED).send_email_to_user is False

    def test_level_all_with_copy_all_and_no_own_email_copies(self):
        decision = evaluate(make_player(), CREATED)
        assert decision.send_email_to_user is True
        assert decision.user_email == "owner@example.com"

    def test_copy_all_off_blocks_copy(self):
        assert evaluate(make_player(copy_all=False), CREATED).send_email_to_user is False

    def test_player_with_own_email_needs_include_flag(self):
        own = make_player(contact_email="player@example.com")
        assert evaluate(own, CREATED).send_email_to_user is False

        included = make_player(contact_email="player@example.com", include_own=True)
        assert evaluate(included, CREATED).send_email_to_user is True

    def test_important_only_filters_unimportant_types(self):
        player = make_player(level=GlobalNotificationLevel.IMPORTANT_ONLY)
        assert evaluate(player, CREATED).send_email_to_user is True
        assert (
            evaluate(player, NotificationType.MATCH_REGISTRATION_NO_RESPONSE).send_email_to_user
            is False
        )

    def test_no_linked_user(self):
        decision = evaluate(make_player(with_user=False), CREATED)
        assert decision.send_email_to_user is False
        assert decision.user_email is None
        assert decision.player_email is None


class TestPlayerChannels:
    def test_player_email_falls_back_to_user_email(self):
        decision = evaluate(make_player(), CREATED)
        assert decision.player_email == "owner@example.com"
        assert decision.send_email_to_player is True

    def test_contact_email_preferred(self):
        decision = evaluate(make_player(contact_email="  player@example.com "), CREATED)
        assert decision.player_email == "player@example.com"

    def test_sms_off_by_default(self):
        decision = evaluate(make_player(phone_number="+420111222333"), CREATED)
        assert decision.send_sms_to_player is False
        assert decision.player_phone == "+420111222333"

    def test_sms_uses_contact_phone_when_enabled(self):
        decision = evaluate(
            make_player(
                phone_number="+420111222333", contact_phone="+420999888777", sms_enabled=True
            ),
            CREATED,
        )
        assert decision.send_sms_to_player is True
        assert decision.player_phone == "+420999888777"

    def test_sms_needs_a_phone(self):
        decision = evaluate(make_player(sms_enabled=True), CREATED)
        assert decision.send_sms_to_player is False

    def test_email_channel_switch(self):
        decision = evaluate(make_player(email_enabled=False), CREATED)
        assert decision.send_email_to_player is False

    def test_category_switches(self):
        player = make_player(
            registration_notifications_enabled=False,
            sms_enabled=True,
            phone_number="+420111222333",
        )
        registration = evaluate(player, CREATED)
        assert registration.send_email_to_player is False
        assert registration.send_sms_to_player is False

        excuse = evaluate(player, NotificationType.PLAYER_EXCUSED)
        assert excuse.send_email_to_player is True

    def test_reminders_off_unless_enabled(self):
        assert evaluate(make_player(), NotificationType.MATCH_REMINDER).send_email_to_player is False
        enabled = make_player(notify_reminders=True)
        assert evaluate(enabled, NotificationType.MATCH_REMINDER).send_email_to_player is True

    def test_match_change_flag_covers_time_change_and_uncancel(self):
        player = make_player(notify_on_match_change=False)
        assert evaluate(player, NotificationType.MATCH_TIME_CHANGED).send_email_to_player is False
        assert evaluate(player, NotificationType.MATCH_UNCANCELED).send_email_to_player is False
        assert evaluate(player, NotificationType.MATCH_CANCELED).send_email_to_player is True

    def test_missing_settings_use_defaults(self):
        player = Player(full_name="Bare", phone_number="+420111222333")
        player.user = User(email="owner@example.com")

        decision = evaluate(player, CREATED)

        assert decision.send_email_to_player is True
        assert decision.send_email_to_user is True
        assert decision.send_sms_to_player is False


class TestSystemNotifications:
    def test_system_type_goes_to_user_only(self):
        player = make_player(sms_enabled=True, phone_number="+420111222333")
        decision = evaluate(player, NotificationType.PLAYER_APPROVED)
        assert decision.send_email_to_user is True
        assert decision.send_email_to_player is False
        assert decision.send_sms_to_player is False

    def test_evaluate_for_user_respects_level(self):
        user = User(email="owner@example.com")
        user.settings = UserSettings(global_notification_level=GlobalNotificationLevel.NONE)
        assert evaluate_for_user(user, NotificationType.PASSWORD_RESET).sends_anything is False

        user.settings.global_notification_level = GlobalNotificationLevel.IMPORTANT_ONLY
        assert evaluate_for_user(user, NotificationType.PASSWORD_RESET).send_email_to_user is True


def test_level_helpers():
    assert level_allows(None, CREATED) is True
    assert level_allows(GlobalNotificationLevel.NONE, NotificationType.SECURITY_ALERT) is False
    assert is_important(NotificationType.PLAYER_UPDATED) is False
    assert is_important(NotificationType.MATCH_CANCELED) is True
