# tests/test_reputation_clients.py

from unittest.mock import MagicMock

import pytest
import requests

from nophish.core.exceptions import NetworkError, ParseError
from nophish.core.reputation_clients import AnalysisClient, CommunityListClient, build_http_session


def make_response(status_code=200, json_data=None, bad_json=False):
    response = MagicMock()
    response.status_code = status_code
    if bad_json:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = json_data
    return response


def make_session(response=None, error=None):
    session = MagicMock()
    if error is not None:
        session.request.side_effect = error
    else:
        session.request.return_value = response
    return session


def test_http_session_sends_user_agent():
    session = build_http_session("NoPhish-Test/1.0")
    assert session.headers["User-Agent"] == "NoPhish-Test/1.0"


# ===== Community list =====

def test_community_list_matches_listed_domains():
    session = make_session(make_response(json_data={"domains": ["Discord-Gift.com", "steam-trade.ru/login"]}))
    client = CommunityListClient(api_url="https://list.test/all", http_session=session)

    assert client.check("https://www.discord-gift.com/claim")
    assert client.check("free.discord-gift.com")
    assert client.check("steam-trade.ru")
    assert not client.check("example.org")


def test_community_list_accepts_bare_list():
    session = make_session(make_response(json_data=["evil.com"]))
    client = CommunityListClient(http_session=session)
    assert client.check("evil.com")


def test_community_list_snapshot_is_reused_within_ttl():
    session = make_session(make_response(json_data={"domains": ["evil.com"]}))
    client = CommunityListClient(http_session=session, snapshot_ttl=300)

    client.check("evil.com")
    client.check("other.com")

    assert session.request.call_count == 1


def test_community_list_refetches_when_ttl_is_zero():
    session = make_session(make_response(json_data={"domains": []}))
    client = CommunityListClient(http_session=session, snapshot_ttl=0)

    client.check("a.com")
    client.check("b.com")

    assert session.request.call_count == 2


def test_community_list_timeout_raises_network_error():
    client = CommunityListClient(http_session=make_session(error=requests.Timeout("slow")))
    with pytest.raises(NetworkError) as exc_info:
        client.check("evil.com")
    assert exc_info.value.service == "Phish.Sinking.Yachts"


def test_community_list_error_status_raises_network_error():
    client = CommunityListClient(http_session=make_session(make_response(status_code=503)))
    with pytest.raises(NetworkError):
        client.check("evil.com")


def test_community_list_malformed_body_raises_parse_error():
    client = CommunityListClient(http_session=make_session(make_response(bad_json=True)))
    with pytest.raises(ParseError):
        client.check("evil.com")

    client = CommunityListClient(http_session=make_session(make_response(json_data={"count": 3})))
    with pytest.raises(ParseError):
        client.check("evil.com")


# ===== Real-time analysis =====

def test_analysis_posts_raw_message():
    session = make_session(make_response(json_data={
        "match": True,
        "matches": [{"domain": "evil.com", "source": "phish.surf", "type": "PHISHING", "trust": 1}]
    }))
    client = AnalysisClient(api_url="https://analysis.test/check", http_session=session)

    verdict = client.lookup("https://evil.com/login", timeout=5)

    session.request.assert_called_once_with(
        "POST", "https://analysis.test/check", timeout=5, json={"message": "https://evil.com/login"}
    )
    assert verdict.match
    assert verdict.matches[0].domain == "evil.com"
    assert verdict.matches[0].trust is True


def test_analysis_check_follows_match_flag():
    safe = AnalysisClient(http_session=make_session(make_response(json_data={"match": False})))
    assert safe.check("example.org") is False


def test_analysis_without_match_flag_raises_parse_error():
    client = AnalysisClient(http_session=make_session(make_response(json_data={"matches": []})))
    with pytest.raises(ParseError):
        client.check("evil.com")


def test_analysis_connection_error_raises_network_error():
    client = AnalysisClient(http_session=make_session(error=requests.ConnectionError("refused")))
    with pytest.raises(NetworkError):
        client.check("evil.com")
