import logging
from typing import List, Tuple

from nophish.config import settings
from nophish.core.checker import DomainCheckResult, ThreeTierChecker
from nophish.core.domain_store import DomainStore
from nophish.core.normalizer import extract_urls, normalize_domain
from nophish.models import ServerConfig
from nophish.schemas import Detection, MessageEvent, ScanOutcome
from nophish.services.guild_settings import GuildSettingsService
from nophish.services.reveal_store import RevealStore

logger = logging.getLogger(__name__)


class MessageScanner:
    """Scans inbound chat messages and decides the moderation response"""

    def __init__(self, checker: ThreeTierChecker, store: DomainStore,
                 guild_settings: GuildSettingsService, reveals: RevealStore):
        self.checker = checker
        self.store = store
        self.guild_settings = guild_settings
        self.reveals = reveals

    def scan_message(self, event: MessageEvent) -> ScanOutcome:
        outcome = ScanOutcome(message_id=event.message_id, guild_id=event.guild_id)

        if event.author_is_bot:
            outcome.skipped_reason = "bot author"
            return outcome

        config = self.guild_settings.get_config(event.guild_id)
        if not config.defending_mode_active:
            outcome.skipped_reason = "defending mode inactive"
            return outcome

        urls = extract_urls(event.content)
        if not urls:
            return outcome

        # 1. Check every link
        flagged = self._check_urls(urls, event.guild_id, config, outcome)
        if not flagged:
            return outcome

        # 2. Decide the response
        outcome.is_scam = True
        outcome.detections = [
            Detection(
                url=url,
                domain=result.domain,
                sources=list(result.sources),
                source_names=[result.source_names[tier] for tier in result.sources],
                details=list(result.details)
            )
            for url, result in flagged
        ]
        self._decide_actions(outcome, config)

        # 3. Keep the links for a reveal request
        outcome.reveal_token = self.reveals.create([
            (url, ", ".join(result.source_names[tier] for tier in result.sources))
            for url, result in flagged
        ])

        # 4. Record the detection
        if config.log_detections:
            self._log_detections(event, flagged, outcome)

        logger.warning(
            f"🚨 Scam link detected in message from {event.username} ({event.user_id}): "
            + ", ".join(f"{url} ({', '.join(result.sources)})" for url, result in flagged)
        )
        return outcome

    def _check_urls(self, urls: List[str], guild_id: int, config: ServerConfig,
                    outcome: ScanOutcome) -> List[Tuple[str, DomainCheckResult]]:
        threshold = config.scam_threshold or 1
        flagged = []

        for url in urls:
            domain = normalize_domain(url)

            if self.store.is_whitelisted(domain, guild_id):
                logger.info(f"Skipping whitelisted domain: {domain}")
                outcome.whitelisted.append(domain)
                continue

            # A threshold above one needs every tier's opinion
            if threshold > 1:
                result = self.checker.check(url, timeout=settings.SCAN_TIMEOUT)
            else:
                result = self.checker.scan(url)

            if result.is_scam and len(result.sources) >= threshold:
                flagged.append((url, result))

        return flagged

    def _decide_actions(self, outcome: ScanOutcome, config: ServerConfig):
        outcome.delete_message = bool(config.auto_delete_scam_messages) and not config.require_manual_review
        outcome.post_warning = bool(config.send_warning_messages)
        outcome.log_channel_id = config.log_channel_id

        if config.require_manual_review:
            actions = ["Flagged for manual review"]
        elif outcome.delete_message:
            actions = ["Message deleted"]
        else:
            actions = ["Message kept"]
        if outcome.post_warning:
            actions.append("warning sent")
        outcome.action_taken = " and ".join(actions)

    def _log_detections(self, event: MessageEvent, flagged: List[Tuple[str, DomainCheckResult]],
                        outcome: ScanOutcome):
        for url, result in flagged:
            saved = self.store.log_detection(
                domain=result.domain,
                guild_id=event.guild_id,
                guild_name=event.guild_name,
                user_id=event.user_id,
                username=event.username,
                channel_id=event.channel_id,
                channel_name=event.channel_name,
                message_id=event.message_id,
                message_content=event.content,
                detection_sources=list(result.sources),
                was_deleted=outcome.delete_message,
                was_warned=outcome.post_warning,
                action_taken=outcome.action_taken
            )
            if not saved:
                logger.warning(f"⚠️ Detection of {result.domain} was not logged")
