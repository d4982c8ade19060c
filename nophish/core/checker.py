import logging
from dataclasses import dataclass, field
from typing import List, Optional

from nophish.config import settings
from nophish.core.domain_store import DomainStore
from nophish.core.exceptions import ReputationServiceError
from nophish.core.normalizer import normalize_domain
from nophish.core.promotion import PromotionWorker
from nophish.core.reputation_cache import ReputationCache
from nophish.core.reputation_clients import ReputationClient

logger = logging.getLogger(__name__)

LOCAL_TIER = "tier1"


@dataclass
class DomainCheckResult:
    domain: str
    is_scam: bool = False
    sources: List[str] = field(default_factory=list)
    details: List[str] = field(default_factory=list)
    # tier name -> source name, for the tiers that matched
    source_names: dict = field(default_factory=dict)

    def mark(self, tier: str, source_name: str, detail: str):
        self.is_scam = True
        if tier not in self.sources:
            self.sources.append(tier)
        self.source_names[tier] = source_name
        self.details.append(detail)


class ThreeTierChecker:
    """
    Decision pipeline: local list (cache, then store), the community list,
    then real-time analysis. Tiers always run in that order.

    ``check`` evaluates every tier for the manual command. ``scan`` is the
    message path: it stops at a local hit and skips analysis once the
    community list matched.
    """

    def __init__(self, store: DomainStore, cache: ReputationCache,
                 community_client: ReputationClient, analysis_client: ReputationClient,
                 promotions: PromotionWorker):
        self.store = store
        self.cache = cache
        self.community_client = community_client
        self.analysis_client = analysis_client
        self.promotions = promotions

    def check(self, domain_or_url: str, timeout: Optional[float] = None) -> DomainCheckResult:
        return self._run(domain_or_url, timeout or settings.CHECK_TIMEOUT, short_circuit=False)

    def scan(self, domain_or_url: str, timeout: Optional[float] = None) -> DomainCheckResult:
        return self._run(domain_or_url, timeout or settings.SCAN_TIMEOUT, short_circuit=True)

    def is_locally_known(self, domain: str) -> bool:
        if self.cache.contains(domain):
            return True
        return self.store.cache_if_active(domain)

    def _run(self, domain_or_url: str, timeout: float, short_circuit: bool) -> DomainCheckResult:
        domain = normalize_domain(domain_or_url)
        result = DomainCheckResult(domain=domain)
        promoted_by = []

        logger.debug(f"Starting three-tier domain check for: {domain}")

        # Tier 1: cache, then database
        local_hit = self.is_locally_known(domain)
        if local_hit:
            if short_circuit:
                result.mark(LOCAL_TIER, "Database", "Found in local database")
                return result
            result.mark(LOCAL_TIER, "Database",
                        f"Found in local database ({self.store.count_active_scams()} domains)")
        else:
            result.details.append("Not found in local database")

        # Tier 2: community list, tier 3: real-time analysis
        for client, target in ((self.community_client, domain), (self.analysis_client, domain_or_url)):
            if short_circuit and client is self.analysis_client and result.sources:
                break

            if self._ask(client, target, timeout, result):
                if not local_hit:
                    promoted_by.append(client.source_name)
                    self.promotions.submit(domain, client.source_name)

        if promoted_by:
            result.details.append(
                f"Domain queued for addition to database (detected by: {' + '.join(promoted_by)})"
            )

        status = "MALICIOUS" if result.is_scam else "SAFE"
        logger.info(f"Three-tier check complete for {domain}: {status} (sources: {', '.join(result.sources) or 'none'})")
        return result

    def _ask(self, client: ReputationClient, target: str, timeout: float, result: DomainCheckResult) -> bool:
        try:
            matched = client.check(target, timeout=timeout)
        except ReputationServiceError as e:
            logger.warning(f"⚠️ {client.name}: {e}")
            result.details.append(f"{client.source_name} error: {e}")
            return False

        if matched:
            result.mark(client.name, client.source_name, f"Flagged by {client.source_name}")
        else:
            result.details.append(f"Not flagged by {client.source_name}")
        return matched
