"""Bandwidth aggregator — the daily composite score.

The score is the main-weighted sum of the enabled component scores divided
by 100. It is computed once per user and day and then served from the
``computedData`` cache.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from bandwidth.core.auth.identity import IdentityProvider, require_user
from bandwidth.domains.health.domain_logic.component_scorers import (
    ComponentScorer,
    require_weight,
)
from bandwidth.domains.health.domain_logic.metric_kinds import MetricKind
from bandwidth.domains.health.domain_logic.metric_store import MetricStore
from bandwidth.domains.health.domain_logic.score_settings import SettingsRegistry

logger = logging.getLogger(__name__)


class BandwidthAggregator:
    """Computes and caches the bandwidth score for a day.

    Usage::

        aggregator = BandwidthAggregator(identity, settings_registry, store, scorers)
        score = await aggregator.bandwidth_score(day)

    A failing component aborts the whole score: nothing is cached for the
    aggregate and the error propagates.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        settings_registry: SettingsRegistry,
        store: MetricStore,
        scorers: dict[str, ComponentScorer],
    ) -> None:
        self._identity = identity
        self._settings = settings_registry
        self._store = store
        self._scorers = scorers

    async def bandwidth_score(self, day: date, user_id: str | None = None) -> float:
        """Return the day's bandwidth score.

        Raises:
            UnauthenticatedError: If no user is bound to the session.
        """
        bound = require_user(self._identity)
        user_id = user_id or bound

        cached = self._store.get(user_id, MetricKind.BANDWIDTH, day)
        if cached is not None:
            return cached

        settings = self._settings.for_user(user_id).saved
        enabled = settings.enabled_categories
        weights = [require_weight(settings.main_weights, c, "Main") for c in enabled]
        components = await asyncio.gather(*(
            self._scorers[category].score(day, user_id, settings) for category in enabled
        ))

        score = sum(c * w for c, w in zip(components, weights)) / 100
        self._store.put(user_id, MetricKind.BANDWIDTH, day, score)
        logger.info(
            "Bandwidth for user %s on %s: %.4f (%s)",
            user_id, day, score, ", ".join(enabled) or "no categories",
        )
        return score
