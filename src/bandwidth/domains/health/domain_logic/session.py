"""Wiring of the scoring pipeline for one session.

Services read the bound user from the identity on every call, and score
settings are resolved per user.
"""

from __future__ import annotations

from dataclasses import dataclass

from bandwidth.core.audit.logger import AuditLogger
from bandwidth.core.auth.identity import IdentityProvider
from bandwidth.core.clock import DayClock
from bandwidth.core.notify.dispatch import NotificationDispatch
from bandwidth.core.storage.repository import BandwidthRepository
from bandwidth.domains.health.connectors import BiometricSource
from bandwidth.domains.health.domain_logic.alerts import AlertDispatcher
from bandwidth.domains.health.domain_logic.bandwidth import BandwidthAggregator
from bandwidth.domains.health.domain_logic.baseline import BaselineCalculator
from bandwidth.domains.health.domain_logic.component_scorers import default_scorers
from bandwidth.domains.health.domain_logic.daily_metrics import DailyMetricFetcher
from bandwidth.domains.health.domain_logic.daily_tasks import DailyTaskOrchestrator
from bandwidth.domains.health.domain_logic.metric_store import MetricStore
from bandwidth.domains.health.domain_logic.percentile import PercentileAnalyzer
from bandwidth.domains.health.domain_logic.score_settings import SettingsManager, SettingsRegistry


@dataclass
class ScoringSession:
    identity: IdentityProvider
    repository: BandwidthRepository
    clock: DayClock
    store: MetricStore
    fetcher: DailyMetricFetcher
    baselines: BaselineCalculator
    settings: SettingsRegistry
    aggregator: BandwidthAggregator
    dispatcher: AlertDispatcher
    analyzer: PercentileAnalyzer
    orchestrator: DailyTaskOrchestrator
    audit_logger: AuditLogger | None = None

    def current_settings(self) -> SettingsManager:
        """Settings of the user signed in right now.

        Raises:
            UnauthenticatedError: If no user is bound to the session.
        """
        return self.settings.current(self.identity)


def create_session(
    *,
    identity: IdentityProvider,
    repository: BandwidthRepository,
    source: BiometricSource,
    notifier: NotificationDispatch,
    clock: DayClock,
    audit_logger: AuditLogger | None = None,
    poll_interval: float = 30.0,
) -> ScoringSession:
    """Build every service for the user bound to ``identity``."""
    store = MetricStore(repository)
    fetcher = DailyMetricFetcher(source, store, clock)
    baselines = BaselineCalculator(fetcher, clock)
    settings = SettingsRegistry(repository, audit_logger)
    aggregator = BandwidthAggregator(
        identity, settings, store, default_scorers(fetcher, baselines, store)
    )
    dispatcher = AlertDispatcher(repository, notifier, audit_logger)
    analyzer = PercentileAnalyzer(store, dispatcher, settings, clock)
    orchestrator = DailyTaskOrchestrator(
        identity,
        repository,
        aggregator,
        analyzer,
        clock,
        audit_logger=audit_logger,
        poll_interval=poll_interval,
    )
    return ScoringSession(
        identity=identity,
        repository=repository,
        clock=clock,
        store=store,
        fetcher=fetcher,
        baselines=baselines,
        settings=settings,
        aggregator=aggregator,
        dispatcher=dispatcher,
        analyzer=analyzer,
        orchestrator=orchestrator,
        audit_logger=audit_logger,
    )
