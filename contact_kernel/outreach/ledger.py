"""
Outreach Ledger — issues tracking signatures and correlates replies.

Every outreach encodes the contact's numeric id into the separators of the
active signature template and remembers the template used. A reply is
matched by decoding its quoted signature against each stored template.

Behavioral Contract:
- The TrackingCode is built before any state changes; an id that does not
  fit the template leaves the ledger untouched.
- Sent -> Responded is one-way. Re-sending bumps the count only.
- A reply with a response already recorded since the last send is a
  duplicate and changes nothing.
- Counters exist globally, per category and per ISO-8601 week. Buckets are
  created on first use.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import pydantic
import structlog

from contact_kernel.core.config import DEFAULT_SIGNATURE_CHUNKS
from contact_kernel.core.errors import MatchError, NotFoundError, ValidationError
from contact_kernel.core.timeutil import days_between, ensure_utc, utc_now
from contact_kernel.graph.store import GraphStore
from contact_kernel.models.graph import ObservationType
from contact_kernel.models.outreach import (
    CategoryMetrics,
    OutreachRecord,
    ResponseMetrics,
    TrackingCode,
    WeeklyStat,
)
from contact_kernel.persistence.record_store import RecordStore
from contact_kernel.signature.codec import contact_numeric_id, encode, robust_decode

logger = structlog.get_logger(__name__)

TRACKING_CODES_KEY = "tracking_codes"
OUTREACH_STATUS_KEY = "outreach_status"
RESPONSE_METRICS_KEY = "response_metrics"


def iso_week(dt: datetime) -> Tuple[int, int]:
    """ISO-8601 (year, week) of a timestamp, in UTC."""
    iso = ensure_utc(dt).isocalendar()
    return iso[0], iso[1]


def _rate(responses: int, sent: int) -> float:
    return responses / sent if sent > 0 else 0.0


class OutreachLedger:
    """
    Tracking codes, per-contact outreach state and response counters.
    """

    def __init__(
        self,
        store: GraphStore,
        record_store: Optional[RecordStore] = None,
        chunks: Optional[Sequence[str]] = None,
    ):
        self.store = store
        self.record_store = record_store
        self.chunks: List[str] = list(chunks or DEFAULT_SIGNATURE_CHUNKS)
        self.tracking_codes: Dict[str, TrackingCode] = {}
        self.outreach_status: Dict[str, OutreachRecord] = {}
        self.metrics = ResponseMetrics()

    # --- Lookups ---

    def get_record(self, contact_id: str) -> Optional[OutreachRecord]:
        return self.outreach_status.get(contact_id)

    def get_tracking_code(self, contact_id: str) -> Optional[TrackingCode]:
        return self.tracking_codes.get(contact_id)

    # --- Outreach ---

    def record_outreach(
        self,
        contact_id: str,
        email: str,
        category: Optional[str] = None,
        sent_at: Optional[datetime] = None,
    ) -> TrackingCode:
        """
        Record a sent message and issue its tracking signature.

        ``category`` defaults to the contact's category in the store.
        Raises SignatureOverflowError if the contact id does not fit the
        active template.
        """
        sent_at = ensure_utc(sent_at) or utc_now()
        if category is None and self.store.get_entity(contact_id) is not None:
            category = self.store.category_of(contact_id)

        numeric_id = contact_numeric_id(contact_id)
        code = TrackingCode(
            contact_id=contact_id,
            numeric_id=numeric_id,
            email=email,
            literal_chunks=list(self.chunks),
            encoded_signature=encode(numeric_id, self.chunks),
            category=category,
            issued_at=sent_at,
        )

        record = self.outreach_status.get(contact_id)
        if record is None:
            record = OutreachRecord(
                contact_id=contact_id,
                email=email,
                category=category,
                last_outreach_at=sent_at,
            )
            self.outreach_status[contact_id] = record
        else:
            record.outreach_count += 1
            record.last_outreach_at = sent_at
            record.response_pending = True
            record.email = email
            if category is not None:
                record.category = category

        self.metrics.total_sent += 1
        if category is not None:
            bucket = self._category_bucket(category)
            bucket.sent += 1
        week = self._week_bucket(sent_at)
        week.sent += 1
        self._recompute_rates()

        self.tracking_codes[contact_id] = code
        logger.info(
            "outreach_recorded",
            contact_id=contact_id,
            numeric_id=numeric_id,
            category=category,
            outreach_count=record.outreach_count,
        )
        return code

    # --- Responses ---

    def match_signature(self, signature_text: str) -> TrackingCode:
        """The tracking code whose template decodes to its own id, in contact-id order."""
        for contact_id in sorted(self.tracking_codes):
            code = self.tracking_codes[contact_id]
            outcome = robust_decode(
                signature_text, {code.numeric_id}, code.literal_chunks
            )
            if outcome.matched:
                logger.debug(
                    "signature_matched",
                    contact_id=contact_id,
                    attempts=outcome.attempts,
                )
                return code
        raise MatchError("No tracking code matches the signature")

    def record_response(
        self,
        signature_text: str,
        responded_at: Optional[datetime] = None,
    ) -> OutreachRecord:
        """
        Correlate a reply to its outreach through the quoted signature.

        Raises MatchError when no tracking code matches and NotFoundError
        when the matched contact has no outreach record.
        """
        responded_at = ensure_utc(responded_at) or utc_now()
        code = self.match_signature(signature_text)

        record = self.outreach_status.get(code.contact_id)
        if record is None:
            raise NotFoundError(f"No outreach record for contact {code.contact_id}")

        if not record.awaiting_response:
            logger.info(
                "duplicate_response_ignored",
                contact_id=record.contact_id,
                responded_at=record.responded_at.isoformat() if record.responded_at else None,
            )
            return record

        response_days = days_between(record.last_outreach_at, responded_at)
        record.responded = True
        record.response_pending = False
        record.responded_at = responded_at
        record.response_time_days = response_days

        self.metrics.total_responses += 1
        self.metrics.response_times_by_contact[record.contact_id] = response_days
        category = record.category or code.category
        if category is not None:
            bucket = self._category_bucket(category)
            bucket.responses += 1
        week = self._week_bucket(responded_at)
        week.responses += 1
        self._recompute_rates()

        self._apply_response_to_contact(record.contact_id, responded_at)
        logger.info(
            "response_recorded",
            contact_id=record.contact_id,
            response_time_days=round(response_days, 3),
        )
        return record

    def _apply_response_to_contact(self, contact_id: str, responded_at: datetime) -> None:
        contact = self.store.get_entity(contact_id)
        if contact is None:
            return

        comm = contact.communication_metrics
        email_count = comm.email_count if comm else 0
        response_count = (comm.response_count if comm else 0) + 1

        updates = {
            "response_count": response_count,
            "last_contacted_at": responded_at,
        }
        if email_count > 0:
            updates["response_rate"] = min(1.0, response_count / email_count)

        self.store.upsert_observation(
            contact_id, ObservationType.COMMUNICATION_METRICS.value, updates
        )

    # --- Counters ---

    def _category_bucket(self, category: str) -> CategoryMetrics:
        bucket = self.metrics.category_metrics.get(category)
        if bucket is None:
            bucket = CategoryMetrics()
            self.metrics.category_metrics[category] = bucket
        return bucket

    def _week_bucket(self, dt: datetime) -> WeeklyStat:
        year, week = iso_week(dt)
        for stat in self.metrics.weekly_stats:
            if stat.iso_year == year and stat.iso_week == week:
                return stat
        stat = WeeklyStat(iso_year=year, iso_week=week)
        self.metrics.weekly_stats.append(stat)
        self.metrics.weekly_stats.sort(key=lambda s: (s.iso_year, s.iso_week))
        return stat

    def _recompute_rates(self) -> None:
        m = self.metrics
        m.response_rate = _rate(m.total_responses, m.total_sent)
        for bucket in m.category_metrics.values():
            bucket.response_rate = _rate(bucket.responses, bucket.sent)
        for stat in m.weekly_stats:
            stat.response_rate = _rate(stat.responses, stat.sent)

    # --- Persistence ---

    def load(self) -> None:
        """Replace ledger state with the persisted records."""
        if self.record_store is None:
            raise ValidationError("OutreachLedger has no record store to load from")

        raw_codes = self.record_store.read(TRACKING_CODES_KEY) or {}
        raw_status = self.record_store.read(OUTREACH_STATUS_KEY) or {}
        raw_metrics = self.record_store.read(RESPONSE_METRICS_KEY) or {}

        try:
            self.tracking_codes = {
                k: TrackingCode.model_validate(v) for k, v in raw_codes.items()
            }
            self.outreach_status = {
                k: OutreachRecord.model_validate(v) for k, v in raw_status.items()
            }
            self.metrics = ResponseMetrics.model_validate(raw_metrics)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Persisted ledger is malformed: {e}") from e

        logger.info(
            "ledger_loaded",
            tracking_codes=len(self.tracking_codes),
            outreach_records=len(self.outreach_status),
        )

    def save(self) -> None:
        """Flush ledger state to the record store."""
        if self.record_store is None:
            raise ValidationError("OutreachLedger has no record store to save to")

        self.record_store.write(
            TRACKING_CODES_KEY,
            {k: v.model_dump(mode="json") for k, v in self.tracking_codes.items()},
        )
        self.record_store.write(
            OUTREACH_STATUS_KEY,
            {k: v.model_dump(mode="json") for k, v in self.outreach_status.items()},
        )
        self.record_store.write(
            RESPONSE_METRICS_KEY, self.metrics.model_dump(mode="json")
        )
        logger.info(
            "ledger_saved",
            tracking_codes=len(self.tracking_codes),
            outreach_records=len(self.outreach_status),
        )
