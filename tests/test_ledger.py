"""Tests for the Outreach Ledger and response correlation."""

from datetime import datetime, timedelta, timezone

import pytest

from contact_kernel.core.config import DEFAULT_SIGNATURE_CHUNKS
from contact_kernel.core.errors import MatchError, NotFoundError, SignatureOverflowError
from contact_kernel.graph.store import GraphStore
from contact_kernel.models.graph import (
    CommunicationMetrics,
    ContactDetails,
    Entity,
    EntityKind,
)
from contact_kernel.models.outreach import OutreachStatus
from contact_kernel.outreach.ledger import OutreachLedger, iso_week
from contact_kernel.persistence.record_store import SqliteRecordStore
from contact_kernel.signature.codec import encode

SENT_AT = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def _make_contact(contact_id: str = "contact_1", email: str = "a@b.com", email_count: int = 4):
    return Entity(
        id=contact_id,
        name=f"Person {contact_id}",
        kind=EntityKind.CONTACT,
        observations={
            "contact_details": ContactDetails(emails=[email]),
            "communication_metrics": CommunicationMetrics(email_count=email_count),
        },
    )


class TestIsoWeek:
    def test_year_boundary_follows_thursday_rule(self):
        assert iso_week(datetime(2024, 12, 30, tzinfo=timezone.utc)) == (2025, 1)
        assert iso_week(datetime(2025, 1, 2, tzinfo=timezone.utc)) == (2025, 1)

    def test_week_53(self):
        assert iso_week(datetime(2021, 1, 3, tzinfo=timezone.utc)) == (2020, 53)

    def test_naive_timestamp_treated_as_utc(self):
        assert iso_week(datetime(2025, 1, 6)) == (2025, 2)


class TestRecordOutreach:
    def setup_method(self):
        self.store = GraphStore()
        self.store.upsert_entity(_make_contact())
        self.ledger = OutreachLedger(self.store)

    def test_first_send_creates_record(self):
        code = self.ledger.record_outreach("contact_1", "a@b.com", sent_at=SENT_AT)
        record = self.ledger.get_record("contact_1")
        assert record.outreach_count == 1
        assert record.status == OutreachStatus.SENT
        assert record.last_outreach_at == SENT_AT
        assert code.numeric_id == 1
        assert code.literal_chunks == DEFAULT_SIGNATURE_CHUNKS
        assert code.encoded_signature == encode(1, DEFAULT_SIGNATURE_CHUNKS)
        assert self.ledger.metrics.total_sent == 1

    def test_repeat_send_increments_count(self):
        self.ledger.record_outreach("contact_1", "a@b.com", sent_at=SENT_AT)
        later = SENT_AT + timedelta(days=2)
        self.ledger.record_outreach("contact_1", "a@b.com", sent_at=later)
        record = self.ledger.get_record("contact_1")
        assert record.outreach_count == 2
        assert record.last_outreach_at == later
        assert self.ledger.metrics.total_sent == 2

    def test_tracking_code_uses_active_template(self):
        self.ledger.record_outreach("contact_1", "a@b.com", sent_at=SENT_AT)
        self.ledger.chunks = [" Ann ", " x.io ", " "]
        code = self.ledger.record_outreach("contact_1", "a@b.com", sent_at=SENT_AT)
        assert self.ledger.get_tracking_code("contact_1") == code
        assert code.literal_chunks == [" Ann ", " x.io ", " "]

    def test_category_defaults_to_store_category(self):
        self.store.categorize("contact_1", "Investors")
        self.ledger.record_outreach("contact_1", "a@b.com", sent_at=SENT_AT)
        assert self.ledger.get_record("contact_1").category == "Investors"
        assert self.ledger.metrics.category_metrics["Investors"].sent == 1

    def test_explicit_category(self):
        self.ledger.record_outreach("contact_1", "a@b.com", category="Press", sent_at=SENT_AT)
        assert self.ledger.metrics.category_metrics["Press"].sent == 1

    def test_uncategorized_send_has_no_category_bucket(self):
        self.ledger.record_outreach("contact_1", "a@b.com", sent_at=SENT_AT)
        assert self.ledger.metrics.category_metrics == {}

    def test_sends_across_year_boundary_share_iso_week(self):
        self.ledger.record_outreach(
            "contact_1", "a@b.com", sent_at=datetime(2024, 12, 30, 10, tzinfo=timezone.utc)
        )
        self.ledger.record_outreach(
            "contact_1", "a@b.com", sent_at=datetime(2025, 1, 2, 10, tzinfo=timezone.utc)
        )
        weeks = self.ledger.metrics.weekly_stats
        assert len(weeks) == 1
        assert (weeks[0].iso_year, weeks[0].iso_week) == (2025, 1)
        assert weeks[0].sent == 2

    def test_weekly_stats_stay_sorted(self):
        self.ledger.record_outreach("contact_1", "a@b.com", sent_at=SENT_AT + timedelta(weeks=3))
        self.ledger.record_outreach("contact_1", "a@b.com", sent_at=SENT_AT)
        weeks = [(s.iso_year, s.iso_week) for s in self.ledger.metrics.weekly_stats]
        assert weeks == sorted(weeks)

    def test_overflow_leaves_ledger_untouched(self):
        with pytest.raises(SignatureOverflowError):
            self.ledger.record_outreach("contact_216", "big@x.com", sent_at=SENT_AT)
        assert self.ledger.tracking_codes == {}
        assert self.ledger.outreach_status == {}
        assert self.ledger.metrics.total_sent == 0
        assert self.ledger.metrics.weekly_stats == []


class TestRecordResponse:
    def setup_method(self):
        self.store = GraphStore()
        self.store.upsert_entity(_make_contact("contact_1", "a@b.com"))
        self.store.upsert_entity(_make_contact("contact_2", "c@d.com"))
        self.ledger = OutreachLedger(self.store)

    def _send(self, contact_id: str = "contact_1", sent_at: datetime = SENT_AT) -> str:
        email = self.store.get_entity(contact_id).primary_email
        return self.ledger.record_outreach(contact_id, email, sent_at=sent_at).encoded_signature

    def test_outreach_scenario(self):
        signature = self._send()
        record = self.ledger.record_response(signature, SENT_AT + timedelta(days=3))
        assert record.responded is True
        assert record.status == OutreachStatus.RESPONDED
        assert record.response_time_days == pytest.approx(3.0)
        assert self.ledger.metrics.total_sent == 1
        assert self.ledger.metrics.total_responses == 1
        assert self.ledger.metrics.response_rate == 1.0
        assert self.ledger.metrics.response_times_by_contact["contact_1"] == pytest.approx(3.0)

    def test_matches_the_right_contact(self):
        self._send("contact_1")
        signature = self._send("contact_2")
        record = self.ledger.record_response(signature, SENT_AT + timedelta(hours=6))
        assert record.contact_id == "contact_2"
        assert self.ledger.get_record("contact_1").responded is False
        assert self.ledger.metrics.response_rate == 0.5

    def test_matches_reformatted_quoted_signature(self):
        signature = self._send()
        reply = "Happy to chat.\n\nOn Mon someone wrote:\n> " + signature.strip() + "\n"
        record = self.ledger.record_response(reply, SENT_AT + timedelta(days=1))
        assert record.contact_id == "contact_1"

    def test_no_match(self):
        self._send()
        with pytest.raises(MatchError):
            self.ledger.record_response("Thanks, talk soon", SENT_AT + timedelta(days=1))

    def test_no_tracking_codes(self):
        with pytest.raises(MatchError):
            self.ledger.record_response(encode(1, DEFAULT_SIGNATURE_CHUNKS))

    def test_missing_outreach_record(self):
        signature = self._send()
        del self.ledger.outreach_status["contact_1"]
        with pytest.raises(NotFoundError):
            self.ledger.record_response(signature, SENT_AT + timedelta(days=1))

    def test_duplicate_response_changes_nothing(self):
        signature = self._send()
        first = SENT_AT + timedelta(days=3)
        self.ledger.record_response(signature, first)
        record = self.ledger.record_response(signature, first + timedelta(days=1))
        assert record.responded_at == first
        assert record.response_time_days == pytest.approx(3.0)
        assert self.ledger.metrics.total_responses == 1
        assert self.store.get_entity("contact_1").communication_metrics.response_count == 1

    def test_responded_is_never_reset(self):
        signature = self._send()
        self.ledger.record_response(signature, SENT_AT + timedelta(days=3))
        self._send(sent_at=SENT_AT + timedelta(days=5))
        record = self.ledger.get_record("contact_1")
        assert record.outreach_count == 2
        assert record.responded is True
        assert record.awaiting_response is True

    def test_response_after_resend_counts_again(self):
        signature = self._send()
        self.ledger.record_response(signature, SENT_AT + timedelta(days=3))
        self._send(sent_at=SENT_AT + timedelta(days=5))
        record = self.ledger.record_response(signature, SENT_AT + timedelta(days=6))
        assert record.response_time_days == pytest.approx(1.0)
        assert self.ledger.metrics.total_responses == 2
        assert self.ledger.metrics.response_rate == 1.0

    def test_late_reply_after_resend_is_counted_once(self):
        signature = self._send()
        self._send(sent_at=SENT_AT + timedelta(days=5))
        reply_at = SENT_AT + timedelta(days=4)

        self.ledger.record_response(signature, reply_at)
        record = self.ledger.record_response(signature, reply_at)

        assert record.responded_at == reply_at
        assert record.awaiting_response is False
        assert self.ledger.metrics.total_sent == 2
        assert self.ledger.metrics.total_responses == 1
        assert self.ledger.metrics.response_rate == 0.5
        assert sum(s.responses for s in self.ledger.metrics.weekly_stats) == 1
        assert self.store.get_entity("contact_1").communication_metrics.response_count == 1

    def test_category_and_week_response_counters(self):
        self.store.categorize("contact_1", "Investors")
        signature = self._send()
        self.ledger.record_response(signature, SENT_AT + timedelta(days=8))

        category = self.ledger.metrics.category_metrics["Investors"]
        assert (category.sent, category.responses, category.response_rate) == (1, 1, 1.0)

        weeks = {(s.iso_year, s.iso_week): s for s in self.ledger.metrics.weekly_stats}
        assert weeks[(2025, 2)].sent == 1
        assert weeks[(2025, 2)].responses == 0
        assert weeks[(2025, 3)].responses == 1
        assert weeks[(2025, 3)].sent == 0

    def test_response_updates_contact_metrics(self):
        signature = self._send()
        responded_at = SENT_AT + timedelta(days=2)
        self.ledger.record_response(signature, responded_at)
        metrics = self.store.get_entity("contact_1").communication_metrics
        assert metrics.response_count == 1
        assert metrics.response_rate == 0.25
        assert metrics.last_contacted_at == responded_at

    def test_response_rate_capped_at_one(self):
        self.store.upsert_observation("contact_1", "communication_metrics", {
            "email_count": 1, "response_count": 1,
        })
        signature = self._send()
        self.ledger.record_response(signature, SENT_AT + timedelta(days=1))
        assert self.store.get_entity("contact_1").communication_metrics.response_rate == 1.0

    def test_contact_missing_from_store(self):
        signature = self.ledger.record_outreach(
            "contact_9", "ghost@x.com", sent_at=SENT_AT
        ).encoded_signature
        record = self.ledger.record_response(signature, SENT_AT + timedelta(days=1))
        assert record.responded is True
        assert self.store.get_entity("contact_9") is None


class TestLedgerPersistence:
    def test_round_trip(self):
        record_store = SqliteRecordStore()
        store = GraphStore(record_store)
        store.upsert_entity(_make_contact())
        ledger = OutreachLedger(store, record_store)
        store.categorize("contact_1", "Friends")
        signature = ledger.record_outreach("contact_1", "a@b.com", sent_at=SENT_AT).encoded_signature
        ledger.record_response(signature, SENT_AT + timedelta(days=1))
        ledger.save()

        loaded = OutreachLedger(store, record_store)
        loaded.load()
        assert loaded.tracking_codes == ledger.tracking_codes
        assert loaded.outreach_status == ledger.outreach_status
        assert loaded.metrics == ledger.metrics
        assert set(record_store.keys()) >= {
            "tracking_codes", "outreach_status", "response_metrics",
        }

    def test_reloaded_ledger_still_matches(self):
        record_store = SqliteRecordStore()
        store = GraphStore(record_store)
        store.upsert_entity(_make_contact())
        ledger = OutreachLedger(store, record_store)
        signature = ledger.record_outreach("contact_1", "a@b.com", sent_at=SENT_AT).encoded_signature
        ledger.save()

        loaded = OutreachLedger(store, record_store)
        loaded.load()
        record = loaded.record_response(signature, SENT_AT + timedelta(days=2))
        assert record.response_time_days == pytest.approx(2.0)

    def test_load_empty(self):
        ledger = OutreachLedger(GraphStore(), SqliteRecordStore())
        ledger.load()
        assert ledger.tracking_codes == {}
        assert ledger.metrics.total_sent == 0
