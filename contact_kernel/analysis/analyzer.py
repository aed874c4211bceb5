"""
Communication Analysis — summarizes mailbox history into contact metrics.

summarize_thread() and analyze_contact() are pure: they only read from a
MessageProvider. ContactAnalyzer fans the per-contact work out to a thread
pool, then writes every summary back to the GraphStore in one sequential
pass.
"""

import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from contact_kernel.analysis.provider import MessageProvider, received_query, sent_query
from contact_kernel.core.config import KernelConfig
from contact_kernel.core.timeutil import ensure_utc, utc_now
from contact_kernel.graph.store import GraphStore
from contact_kernel.models.analysis import CommunicationSummary, Message, ThreadSummary
from contact_kernel.models.graph import (
    CommunicationMetrics,
    CommunicationPatterns,
    EntityKind,
    ObservationType,
)

logger = structlog.get_logger(__name__)

TREND_INCREASING = "increasing"
TREND_STABLE = "stable"
TREND_DECREASING = "decreasing"


def _hours(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600.0


def _is_from(sender: str, emails: Sequence[str]) -> bool:
    sender = sender.lower()
    return any(email.lower() in sender for email in emails if email)


def summarize_thread(
    messages: Sequence[Message],
    contact_email: str,
    user_emails: Sequence[str],
) -> ThreadSummary:
    """
    Message counts and response gaps for one thread.

    A contact response time is the gap between a user message and the
    contact message right after it; user response times are the reverse.
    """
    ordered = sorted(messages, key=lambda m: ensure_utc(m.timestamp))
    summary = ThreadSummary(message_count=len(ordered))
    if not ordered:
        return summary

    summary.first_at = ensure_utc(ordered[0].timestamp)
    summary.last_at = ensure_utc(ordered[-1].timestamp)

    previous = None
    for message in ordered:
        from_contact = _is_from(message.sender, [contact_email])
        from_user = _is_from(message.sender, user_emails)
        if from_contact:
            summary.from_contact += 1
        if from_user:
            summary.from_user += 1

        if previous is not None:
            gap = _hours(previous.timestamp, message.timestamp)
            if _is_from(previous.sender, user_emails) and from_contact:
                summary.contact_response_hours.append(gap)
            if _is_from(previous.sender, [contact_email]) and from_user:
                summary.user_response_hours.append(gap)
        previous = message

    return summary


def communication_trend(recent_count: int, medium_count: int) -> str:
    """Compare the last 30 days against the monthly rate over 90 days."""
    monthly_medium = medium_count / 3
    if recent_count > monthly_medium * 1.5:
        return TREND_INCREASING
    if recent_count < monthly_medium * 0.5:
        return TREND_DECREASING
    return TREND_STABLE


def analyze_contact(
    provider: MessageProvider,
    contact_email: str,
    user_emails: Sequence[str],
    now: Optional[datetime] = None,
    periods: Tuple[int, int, int] = (30, 90, 365),
    contact_id: str = "",
) -> CommunicationSummary:
    """Search both directions, merge threads and aggregate one contact's history."""
    now = ensure_utc(now) or utc_now()
    recent_days, medium_days, long_days = periods

    thread_ids: List[str] = []
    queries = [received_query(contact_email)]
    if user_emails:
        queries.append(sent_query(list(user_emails), contact_email))
    for query in queries:
        for ref in provider.search(query):
            if ref.thread_id not in thread_ids:
                thread_ids.append(ref.thread_id)

    summary = CommunicationSummary(contact_id=contact_id, email=contact_email)
    depths: List[int] = []
    contact_response_hours: List[float] = []

    for thread_id in thread_ids:
        messages = provider.get_thread(thread_id)
        if not messages:
            continue
        thread = summarize_thread(messages, contact_email, user_emails)

        summary.email_count += thread.message_count
        summary.emails_sent += thread.from_user
        summary.emails_received += thread.from_contact
        if summary.first_contact_at is None or thread.first_at < summary.first_contact_at:
            summary.first_contact_at = thread.first_at
        if summary.last_contact_at is None or thread.last_at > summary.last_contact_at:
            summary.last_contact_at = thread.last_at

        depths.append(thread.message_count)
        contact_response_hours.extend(thread.contact_response_hours)

        age_days = math.floor(_hours(thread.last_at, now) / 24)
        activity = thread.from_user + thread.from_contact
        if age_days <= recent_days:
            summary.recent_count += activity
        if age_days <= medium_days:
            summary.medium_count += activity
        if age_days <= long_days:
            summary.long_count += activity

    if summary.emails_sent > 0:
        summary.response_rate = min(1.0, len(contact_response_hours) / summary.emails_sent)
    if depths:
        summary.average_thread_depth = sum(depths) / len(depths)
    if contact_response_hours:
        summary.average_response_hours = (
            sum(contact_response_hours) / len(contact_response_hours)
        )
    summary.communication_trend = communication_trend(
        summary.recent_count, summary.medium_count
    )
    return summary


class ContactAnalyzer:
    """
    Runs analyze_contact() for every Contact with an email address and
    applies the results to the store.
    """

    def __init__(
        self,
        store: GraphStore,
        provider: MessageProvider,
        config: Optional[KernelConfig] = None,
    ):
        self.store = store
        self.provider = provider
        self.config = config or KernelConfig()

    def _analyze_one(
        self, contact_id: str, email: str, now: datetime
    ) -> Optional[CommunicationSummary]:
        try:
            return analyze_contact(
                self.provider,
                email,
                self.config.user_emails,
                now=now,
                periods=(
                    self.config.recent_days,
                    self.config.medium_days,
                    self.config.long_days,
                ),
                contact_id=contact_id,
            )
        except Exception as e:
            logger.warning(
                "contact_analysis_failed",
                contact_id=contact_id,
                email=email,
                error=str(e),
            )
            return None

    def analyze_all(self, now: Optional[datetime] = None) -> Dict[str, CommunicationSummary]:
        """Analyze every contact, then apply all summaries sequentially."""
        now = ensure_utc(now) or utc_now()
        targets = [
            (c.id, c.primary_email)
            for c in self.store.query_by_kind(EntityKind.CONTACT)
            if c.primary_email
        ]

        with ThreadPoolExecutor(max_workers=self.config.analysis_workers) as pool:
            results = list(
                pool.map(lambda t: self._analyze_one(t[0], t[1], now), targets)
            )

        applied = {}
        for summary in results:
            if summary is None:
                continue
            self.apply_summary(summary)
            applied[summary.contact_id] = summary

        logger.info(
            "contacts_analyzed",
            analyzed=len(applied),
            skipped=len(targets) - len(applied),
        )
        return applied

    def apply_summary(self, summary: CommunicationSummary) -> None:
        """Replace a contact's communication observations in one write."""
        contact = self.store.require_entity(summary.contact_id)
        existing = contact.communication_metrics or CommunicationMetrics()

        metrics = existing.model_copy(update={
            "email_count": summary.email_count,
            "last_contacted_at": summary.last_contact_at,
            "response_rate": summary.response_rate,
        })
        patterns = CommunicationPatterns(
            first_contact_at=summary.first_contact_at,
            emails_sent=summary.emails_sent,
            emails_received=summary.emails_received,
            average_thread_depth=summary.average_thread_depth,
            average_response_hours=summary.average_response_hours,
            communication_trend=summary.communication_trend,
            last_30_days=summary.recent_count,
            last_90_days=summary.medium_count,
            last_365_days=summary.long_count,
        )
        self.store.replace_observations(summary.contact_id, {
            ObservationType.COMMUNICATION_METRICS.value: metrics,
            ObservationType.COMMUNICATION_PATTERNS.value: patterns,
        })
