"""Message-provider payloads and communication summaries."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ThreadRef(BaseModel):
    thread_id: str


class Message(BaseModel):
    sender: str                             # Raw From header, e.g. "Ann <ann@x.com>"
    timestamp: datetime


class ThreadSummary(BaseModel):
    """Counts and response gaps for one thread, relative to one contact."""

    message_count: int = 0
    from_user: int = 0
    from_contact: int = 0
    first_at: Optional[datetime] = None
    last_at: Optional[datetime] = None
    contact_response_hours: List[float] = []
    user_response_hours: List[float] = []


class CommunicationSummary(BaseModel):
    """Everything analysis learned about one contact's mailbox history."""

    contact_id: str
    email: str
    email_count: int = 0
    emails_sent: int = 0
    emails_received: int = 0
    first_contact_at: Optional[datetime] = None
    last_contact_at: Optional[datetime] = None
    response_rate: float = 0.0
    average_thread_depth: float = 0.0
    average_response_hours: float = 0.0
    recent_count: int = 0
    medium_count: int = 0
    long_count: int = 0
    communication_trend: str = "stable"
