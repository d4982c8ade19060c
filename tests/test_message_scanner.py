# tests/test_message_scanner.py

from datetime import datetime, timedelta

import pytest

from nophish.schemas import MessageEvent
from nophish.services.message_scanner import MessageScanner

GUILD_ID = 1


@pytest.fixture
def scanner(checker, store, guild_settings, reveals):
    return MessageScanner(checker, store, guild_settings, reveals)


@pytest.fixture
def defended(guild_settings):
    guild_settings.set_defending_mode(GUILD_ID, True, activated_by="admin", guild_name="Test Guild")


def message(content, **overrides):
    fields = dict(
        content=content, guild_id=GUILD_ID, guild_name="Test Guild", user_id=7, username="alice",
        channel_id=3, channel_name="general", message_id=99
    )
    fields.update(overrides)
    return MessageEvent(**fields)


def history(store):
    return store.detection_history(GUILD_ID, datetime.utcnow() - timedelta(days=1))


def test_inactive_guild_is_not_scanned(scanner, community):
    outcome = scanner.scan_message(message("https://evil.com"))

    assert outcome.skipped_reason == "defending mode inactive"
    assert not outcome.is_scam
    assert community.calls == []


def test_bot_messages_are_ignored(scanner, defended):
    outcome = scanner.scan_message(message("https://evil.com", author_is_bot=True))
    assert outcome.skipped_reason == "bot author"


def test_message_without_links(scanner, defended):
    outcome = scanner.scan_message(message("hello there"))
    assert not outcome.is_scam
    assert outcome.skipped_reason is None


def test_scam_link_is_deleted_and_logged(scanner, store, reveals, defended):
    store.upsert_scam("evil.com", "Manual")

    outcome = scanner.scan_message(message("free nitro https://evil.com/gift"))

    assert outcome.is_scam
    assert outcome.delete_message
    assert outcome.post_warning
    assert outcome.action_taken == "Message deleted and warning sent"
    assert outcome.detections[0].domain == "evil.com"
    assert outcome.detections[0].sources == ["tier1"]
    assert reveals.reveal(outcome.reveal_token) == [("https://evil.com/gift", "Database")]

    logged = history(store)
    assert len(logged) == 1
    assert logged[0].detection_sources == ["tier1"]
    assert logged[0].was_deleted


def test_whitelist_wins_over_blacklist(scanner, checker, store, defended):
    store.upsert_scam("evil.com", "Manual")
    store.add_whitelist("evil.com", GUILD_ID, 7, "alice")

    outcome = scanner.scan_message(message("https://evil.com/gift"))

    assert not outcome.is_scam
    assert outcome.whitelisted == ["evil.com"]
    assert history(store) == []

    # A manual check still reports what the database knows
    assert checker.check("evil.com").sources == ["tier1"]


def test_whitelist_only_applies_to_its_guild(scanner, store, guild_settings, defended):
    store.upsert_scam("evil.com", "Manual")
    store.add_whitelist("evil.com", 2, 7, "alice")

    assert scanner.scan_message(message("https://evil.com")).is_scam


def test_manual_review_keeps_message(scanner, store, guild_settings, defended):
    store.upsert_scam("evil.com", "Manual")
    guild_settings.update_setting(GUILD_ID, "manual_review", "true", user_id=7, username="alice")

    outcome = scanner.scan_message(message("https://evil.com"))

    assert outcome.is_scam
    assert not outcome.delete_message
    assert outcome.action_taken == "Flagged for manual review and warning sent"


def test_threshold_requires_agreeing_tiers(scanner, store, community, guild_settings, defended):
    store.upsert_scam("evil.com", "Manual")
    guild_settings.update_setting(GUILD_ID, "scam_threshold", "2", user_id=7, username="alice")

    assert not scanner.scan_message(message("https://evil.com")).is_scam

    community.flagged = {"evil.com"}
    outcome = scanner.scan_message(message("https://evil.com"))
    assert outcome.is_scam
    assert outcome.detections[0].sources == ["tier1", "tier2"]


def test_logging_can_be_disabled(scanner, store, guild_settings, defended):
    store.upsert_scam("evil.com", "Manual")
    guild_settings.update_setting(GUILD_ID, "log_detections", "false", user_id=7, username="alice")

    assert scanner.scan_message(message("https://evil.com")).is_scam
    assert history(store) == []
