import abc
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Set

import requests

from nophish.config import settings
from nophish.core.exceptions import NetworkError, ParseError
from nophish.core.normalizer import normalize_domain

logger = logging.getLogger(__name__)


def build_http_session(user_agent: Optional[str] = None) -> requests.Session:
    """One pooled session shared by every client"""
    session = requests.Session()
    session.headers.update({'User-Agent': user_agent or settings.USER_AGENT})
    return session


class ReputationClient(abc.ABC):
    """
    A single external reputation source.

    ``check`` answers True/False, or raises NetworkError / ParseError. Callers
    decide what a failure means; clients never swallow them.
    """

    #: tier label reported in check results
    name: str = ""
    #: value stored as ScamDomain.detection_source when a match is promoted
    source_name: str = ""

    def __init__(self, http_session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.http_session = http_session or build_http_session()
        self.timeout = timeout or settings.CHECK_TIMEOUT

    @abc.abstractmethod
    def check(self, domain_or_url: str, timeout: Optional[float] = None) -> bool:
        ...

    def _request(self, method: str, url: str, timeout: Optional[float], **kwargs) -> requests.Response:
        try:
            response = self.http_session.request(method, url, timeout=timeout or self.timeout, **kwargs)
        except requests.Timeout as e:
            raise NetworkError(self.source_name, f"request timed out ({e})") from e
        except requests.RequestException as e:
            raise NetworkError(self.source_name, f"request failed ({e})") from e

        if not 200 <= response.status_code < 300:
            raise NetworkError(self.source_name, f"returned status code {response.status_code}")
        return response

    def _json(self, response: requests.Response):
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(self.source_name, f"response is not valid JSON ({e})") from e


class CommunityListClient(ReputationClient):
    """
    Community-maintained list of phishing domains (Phish.Sinking.Yachts).

    The whole list is fetched and matched locally. A domain matches when it
    contains a listed domain or is contained by one, which also catches
    subdomains and listed entries carrying stray path fragments.
    """

    name = "tier2"
    source_name = "Phish.Sinking.Yachts"

    def __init__(self, api_url: Optional[str] = None, snapshot_ttl: Optional[int] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_url = api_url or settings.COMMUNITY_LIST_API_URL
        self.snapshot_ttl = settings.COMMUNITY_LIST_SNAPSHOT_TTL if snapshot_ttl is None else snapshot_ttl
        self._snapshot: Optional[Set[str]] = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def fetch_snapshot(self, timeout: Optional[float] = None) -> Set[str]:
        response = self._request("GET", self.api_url, timeout)
        data = self._json(response)

        if isinstance(data, dict):
            domains = data.get("domains")
        elif isinstance(data, list):
            domains = data
        else:
            domains = None

        if not isinstance(domains, list):
            raise ParseError(self.source_name, "response has no list of domains")

        snapshot = {normalize_domain(d) for d in domains if isinstance(d, str) and d.strip()}
        logger.info(f"✓ Loaded {len(snapshot)} domains from {self.source_name}")
        return snapshot

    def snapshot(self, timeout: Optional[float] = None) -> Set[str]:
        """Cached list; refetched once older than the snapshot TTL"""
        with self._lock:
            fresh = self._snapshot is not None and (time.monotonic() - self._fetched_at) < self.snapshot_ttl
            if fresh:
                return self._snapshot

        # Fetch outside the lock so one slow download does not stall other checks
        snapshot = self.fetch_snapshot(timeout)
        with self._lock:
            self._snapshot = snapshot
            self._fetched_at = time.monotonic()
        return snapshot

    @staticmethod
    def matches(domain: str, listed: Set[str]) -> bool:
        if not domain:
            return False
        if domain in listed:
            return True
        return any(entry and (entry in domain or domain in entry) for entry in listed)

    def check(self, domain_or_url: str, timeout: Optional[float] = None) -> bool:
        domain = normalize_domain(domain_or_url)
        listed = self.snapshot(timeout)
        if self.matches(domain, listed):
            logger.warning(f"🚨 {self.source_name} flagged: {domain}")
            return True
        logger.debug(f"{self.source_name}: domain appears safe: {domain}")
        return False


@dataclass
class AnalysisMatch:
    domain: Optional[str] = None
    source: Optional[str] = None
    type: Optional[str] = None
    trust: bool = False


@dataclass
class AnalysisVerdict:
    match: bool
    matches: List[AnalysisMatch] = field(default_factory=list)


class AnalysisClient(ReputationClient):
    """Real-time link analysis service (Anti-Fish). Its ``match`` flag is final."""

    name = "tier3"
    source_name = "Anti-Fish API"

    def __init__(self, api_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_url = api_url or settings.ANALYSIS_API_URL

    def lookup(self, domain_or_url: str, timeout: Optional[float] = None) -> AnalysisVerdict:
        response = self._request("POST", self.api_url, timeout, json={"message": domain_or_url})
        data = self._json(response)

        if not isinstance(data, dict) or not isinstance(data.get("match"), bool):
            raise ParseError(self.source_name, "response has no boolean 'match' field")

        matches = []
        for item in data.get("matches") or []:
            if not isinstance(item, dict):
                continue
            matches.append(AnalysisMatch(
                domain=item.get("domain"),
                source=item.get("source"),
                type=item.get("type"),
                trust=bool(item.get("trust", False))
            ))
        return AnalysisVerdict(match=data["match"], matches=matches)

    def check(self, domain_or_url: str, timeout: Optional[float] = None) -> bool:
        verdict = self.lookup(domain_or_url, timeout)
        if verdict.match:
            logger.warning(f"🚨 {self.source_name} detected scam: {domain_or_url}")
        return verdict.match
