# tests/conftest.py

import pytest

from nophish.core.checker import ThreeTierChecker
from nophish.core.domain_store import DomainStore
from nophish.core.normalizer import normalize_domain
from nophish.core.promotion import PromotionWorker
from nophish.core.reputation_cache import ReputationCache
from nophish.core.reputation_clients import ReputationClient
from nophish.database import build_engine, build_session_factory, init_db
from nophish.services.guild_settings import GuildSettingsService
from nophish.services.reveal_store import RevealStore


class FakeClient(ReputationClient):
    """Reputation source that flags a fixed set of domains, or fails"""

    def __init__(self, name, source_name, flagged=(), error=None):
        super().__init__()
        self.name = name
        self.source_name = source_name
        self.flagged = {normalize_domain(d) for d in flagged}
        self.error = error
        self.calls = []

    def check(self, domain_or_url, timeout=None):
        self.calls.append(domain_or_url)
        if self.error is not None:
            raise self.error
        return normalize_domain(domain_or_url) in self.flagged


@pytest.fixture
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'nophish-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def cache():
    return ReputationCache()


@pytest.fixture
def store(session_factory, cache):
    return DomainStore(session_factory, cache)


@pytest.fixture
def community():
    return FakeClient("tier2", "Phish.Sinking.Yachts")


@pytest.fixture
def analysis():
    return FakeClient("tier3", "Anti-Fish API")


@pytest.fixture
def promotions(store):
    worker = PromotionWorker(store)
    yield worker
    worker.stop()


@pytest.fixture
def checker(store, cache, community, analysis, promotions):
    return ThreeTierChecker(store, cache, community, analysis, promotions)


@pytest.fixture
def guild_settings(session_factory):
    return GuildSettingsService(session_factory)


@pytest.fixture
def reveals():
    return RevealStore(ttl=600)
