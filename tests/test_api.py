# tests/test_api.py

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from nophish.config import settings
from nophish.core.feed_importer import FeedImporter
from nophish.main import create_app
from nophish.services.protection import ProtectionEngine

OWNER_ID = 42
PREFIX = settings.API_PREFIX


@pytest.fixture
def feed_session():
    session = MagicMock()
    session.get.return_value = MagicMock(status_code=200, text="scam-one.com\nscam-two.com\n")
    return session


@pytest.fixture
def protection_engine(store, cache, community, analysis, guild_settings, reveals, feed_session):
    return ProtectionEngine(
        cache=cache,
        store=store,
        community_client=community,
        analysis_client=analysis,
        importer=FeedImporter(store, http_session=feed_session),
        guild_settings=guild_settings,
        reveals=reveals,
        import_feed_on_startup=False,
        owner_id=OWNER_ID
    )


@pytest.fixture
def client(protection_engine, db_engine):
    app = create_app(engine=protection_engine, bind=db_engine)
    with TestClient(app) as test_client:
        yield test_client


def invoker(user_id=7, username="alice"):
    return {"user_id": user_id, "username": username, "guild_name": "Test Guild"}


def test_health(client):
    resp = client.get(f"{PREFIX}/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_check_endpoint(client, store):
    store.upsert_scam("evil.com", "Manual")

    body = client.get(f"{PREFIX}/check", params={"domain": "https://www.evil.com/gift"}).json()

    assert body["domain"] == "evil.com"
    assert body["is_scam"]
    assert body["sources"] == ["tier1"]


def test_scan_and_reveal_flow(client, store):
    store.upsert_scam("evil.com", "Manual")
    client.post(f"{PREFIX}/guilds/1/activate", json={"invoker": invoker()})

    outcome = client.post(f"{PREFIX}/messages/scan", json={
        "content": "free nitro https://evil.com/gift",
        "guild_id": 1, "user_id": 7, "username": "alice",
        "channel_id": 3, "channel_name": "general", "message_id": 99
    }).json()

    assert outcome["is_scam"]
    assert outcome["delete_message"]

    revealed = client.post(f"{PREFIX}/reveals/{outcome['reveal_token']}").json()
    assert revealed["urls"] == [{"url": "https://evil.com/gift", "source": "Database"}]

    assert client.post(f"{PREFIX}/reveals/reveal_scam_unknown").status_code == 404


def test_blacklist_endpoints(client):
    resp = client.post(f"{PREFIX}/blacklist", json={"domain": "Evil.com", "invoker": invoker()})
    assert resp.json()["status"] == "success"

    resp = client.post(f"{PREFIX}/blacklist", json={"domain": "evil.com", "invoker": invoker()})
    assert resp.json()["message"] == "evil.com is already blacklisted"

    assert [d["domain"] for d in client.get(f"{PREFIX}/blacklist").json()] == ["evil.com"]

    assert client.delete(f"{PREFIX}/blacklist/evil.com").status_code == 200
    assert client.delete(f"{PREFIX}/blacklist/evil.com").status_code == 404


def test_whitelist_endpoints(client):
    resp = client.post(f"{PREFIX}/guilds/1/whitelist", json={"domain": "good.com", "invoker": invoker()})
    assert resp.status_code == 200

    entries = client.get(f"{PREFIX}/guilds/1/whitelist").json()
    assert [e["domain"] for e in entries] == ["good.com"]

    assert client.delete(f"{PREFIX}/guilds/1/whitelist/good.com").status_code == 200
    assert client.get(f"{PREFIX}/guilds/1/whitelist").json() == []


def test_guild_commands_need_a_guild(client):
    assert client.get(f"{PREFIX}/guilds/0/config").status_code == 400


def test_config_update(client):
    resp = client.patch(f"{PREFIX}/guilds/1/config",
                        json={"setting": "scam_threshold", "value": "2", "invoker": invoker()})
    assert resp.status_code == 200
    assert resp.json()["scam_threshold"] == 2

    resp = client.patch(f"{PREFIX}/guilds/1/config",
                        json={"setting": "scam_threshold", "value": "9", "invoker": invoker()})
    assert resp.status_code == 400


def test_status_tracks_defending_mode(client):
    assert not client.get(f"{PREFIX}/guilds/1/status").json()["defending_mode_active"]

    client.post(f"{PREFIX}/guilds/1/activate", json={"invoker": invoker()})
    status = client.get(f"{PREFIX}/guilds/1/status").json()
    assert status["defending_mode_active"]
    assert status["activated_by"] == "alice"

    client.post(f"{PREFIX}/guilds/1/deactivate", json={"invoker": invoker()})
    assert not client.get(f"{PREFIX}/guilds/1/status").json()["defending_mode_active"]


def test_history_window_is_bounded(client):
    assert client.get(f"{PREFIX}/guilds/1/history", params={"days": 91}).status_code == 400

    resp = client.get(f"{PREFIX}/guilds/1/history", params={"days": 90})
    assert resp.status_code == 200
    assert resp.json()["total"] == 0


def test_stats(client, store):
    store.log_detection(domain="evil.com", guild_id=1, username="alice", detection_sources=["tier1"])

    stats = client.get(f"{PREFIX}/guilds/1/stats").json()

    assert stats["total_detections"] == 1
    assert stats["top_domains"] == [{"domain": "evil.com", "count": 1}]


def test_report_submission(client):
    resp = client.post(f"{PREFIX}/reports", json={
        "domain": "phish.com", "reason": "fake login", "guild_id": 1, "invoker": invoker()
    })

    body = resp.json()
    assert body["success"]
    assert body["developer_notified"]


def test_feed_update_is_owner_only(client, store):
    assert client.post(f"{PREFIX}/feed/update", json={"invoker": invoker()}).status_code == 403

    resp = client.post(f"{PREFIX}/feed/update", json={"invoker": invoker(user_id=OWNER_ID, username="owner")})

    assert resp.status_code == 200
    assert resp.json()["imported"] == 2
    assert store.is_active_scam("scam-two.com")
