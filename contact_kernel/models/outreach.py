"""Outreach ledger records — tracking codes, send/response state, and roll-up counters."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class OutreachStatus(str, Enum):
    SENT = "sent"
    RESPONDED = "responded"


class TrackingCode(BaseModel):
    """Binds a contact to the literal-chunk template its signature was encoded with."""

    contact_id: str
    numeric_id: int = Field(ge=0)
    email: str
    literal_chunks: List[str]
    encoded_signature: str
    category: Optional[str] = None
    issued_at: datetime


class OutreachRecord(BaseModel):
    """
    Send/response state for one contact.

    Sent -> Responded is one-way: later sends bump ``outreach_count`` and
    ``last_outreach_at`` but never clear ``responded``. Each send opens
    ``response_pending``; the first matched reply closes it.
    """

    contact_id: str
    email: str
    category: Optional[str] = None
    last_outreach_at: datetime
    outreach_count: int = Field(ge=1, default=1)
    responded: bool = False
    responded_at: Optional[datetime] = None
    response_time_days: Optional[float] = None
    response_pending: bool = True

    @property
    def status(self) -> OutreachStatus:
        return OutreachStatus.RESPONDED if self.responded else OutreachStatus.SENT

    @property
    def awaiting_response(self) -> bool:
        """True until a response is recorded for the latest send."""
        return self.response_pending


class CategoryMetrics(BaseModel):
    sent: int = 0
    responses: int = 0
    response_rate: float = 0.0


class WeeklyStat(BaseModel):
    """Counters for one ISO-8601 week."""

    iso_year: int
    iso_week: int = Field(ge=1, le=53)
    sent: int = 0
    responses: int = 0
    response_rate: float = 0.0


class ResponseMetrics(BaseModel):
    total_sent: int = 0
    total_responses: int = 0
    response_rate: float = 0.0
    response_times_by_contact: Dict[str, float] = {}
    category_metrics: Dict[str, CategoryMetrics] = {}
    weekly_stats: List[WeeklyStat] = []
