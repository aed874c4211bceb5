"""
Importance Scoring Engine — turns communication history into a 0..100 score.

Five factors, each normalized to [0, 1]:
- frequency:          ln(email_count) / ln(100), saturating at 100 emails
- recency:            linear decay to 0 over 365 days since last contact
- response_rate:      as stored
- meeting_frequency:  meeting_count / 20, saturating at 20 meetings
- manual_priority:    manual_priority / 10

The score is round_half_up(100 * sum(weight * factor)) over weights rescaled
to sum to 1. Missing observations contribute 0.

Scores are computed concurrently from entity copies and written back in a
single sequential pass.
"""

import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Dict, List, Optional

import structlog

from contact_kernel.core.timeutil import days_between, utc_now
from contact_kernel.graph.store import GraphStore
from contact_kernel.models.graph import Entity, EntityKind, ObservationType
from contact_kernel.models.scoring import FactorScores, ScoringWeights

logger = structlog.get_logger(__name__)

FREQUENCY_SATURATION = 100
RECENCY_HORIZON_DAYS = 365
MEETING_SATURATION = 20
MANUAL_PRIORITY_MAX = 10


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_frequency(email_count: int) -> float:
    if email_count <= 0:
        return 0.0
    if email_count >= FREQUENCY_SATURATION:
        return 1.0
    return math.log(email_count) / math.log(FREQUENCY_SATURATION)


def normalize_recency(last_contacted_at: Optional[datetime], now: datetime) -> float:
    if last_contacted_at is None:
        return 0.0
    days_since = max(0.0, days_between(last_contacted_at, now))
    return max(0.0, 1.0 - days_since / RECENCY_HORIZON_DAYS)


def normalize_meeting_frequency(meeting_count: int) -> float:
    return _clamp(meeting_count / MEETING_SATURATION)


def factor_scores(contact: Entity, now: Optional[datetime] = None) -> FactorScores:
    """Per-factor breakdown for one contact."""
    now = now or utc_now()
    scores = FactorScores()

    comm = contact.communication_metrics
    if comm:
        scores.frequency = normalize_frequency(comm.email_count)
        scores.recency = normalize_recency(comm.last_contacted_at, now)
        scores.response_rate = comm.response_rate
        scores.meeting_frequency = normalize_meeting_frequency(comm.meeting_count)

    importance = contact.importance_metrics
    if importance:
        scores.manual_priority = _clamp(importance.manual_priority / MANUAL_PRIORITY_MAX)

    return scores


def compute_score(
    contact: Entity,
    weights: Optional[ScoringWeights] = None,
    now: Optional[datetime] = None,
) -> int:
    """Importance score in [0, 100] for one contact."""
    weights = weights or ScoringWeights()
    factors = factor_scores(contact, now).model_dump()
    normalized = weights.normalized()

    weighted = sum(normalized[name] * factors[name] for name in normalized)
    return max(0, min(100, round_half_up(100 * weighted)))


class ScoringEngine:
    """
    Scores every Contact in a GraphStore and ranks them.
    Ranking reads the materialized score and never recomputes.
    """

    def __init__(
        self,
        store: GraphStore,
        weights: Optional[ScoringWeights] = None,
        workers: int = 4,
    ):
        self.store = store
        self.weights = weights or ScoringWeights()
        self.workers = max(1, workers)

    def score_all(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Recompute and store ``calculated_score`` for every Contact.
        Returns the new scores keyed by contact id.
        """
        now = now or utc_now()
        contacts = [
            c.model_copy(deep=True)
            for c in self.store.query_by_kind(EntityKind.CONTACT)
        ]

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            results = list(
                pool.map(lambda c: (c.id, compute_score(c, self.weights, now)), contacts)
            )

        scores = {}
        for contact_id, score in results:
            self.store.upsert_observation(
                contact_id,
                ObservationType.IMPORTANCE_METRICS.value,
                {"calculated_score": score},
            )
            scores[contact_id] = score

        logger.info("contacts_scored", count=len(scores))
        return scores

    def rank_top_n(self, n: int, category: Optional[str] = None) -> List[Entity]:
        """
        Top ``n`` contacts by stored score, highest first, ties broken by id.
        ``category`` restricts the ranking to contacts filed under that name.
        """
        if n <= 0:
            raise ValueError(f"n must be positive, got {n}")

        contacts = self.store.query_by_kind(EntityKind.CONTACT)
        if category is not None:
            contacts = [
                c for c in contacts if self.store.category_of(c.id) == category
            ]

        ranked = sorted(contacts, key=lambda c: (-c.calculated_score, c.id))
        return ranked[:n]
