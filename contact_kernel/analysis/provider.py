"""Message provider boundary. Mail transport lives behind this protocol."""

from typing import List, Protocol

from contact_kernel.models.analysis import Message, ThreadRef


class MessageProvider(Protocol):
    """Read-only access to a mailbox."""

    def search(self, query: str) -> List[ThreadRef]:
        """Threads matching a mailbox search query, e.g. ``from:ann@x.com``."""
        ...

    def get_thread(self, thread_id: str) -> List[Message]:
        """All messages of one thread, in any order."""
        ...


def received_query(contact_email: str) -> str:
    return f"from:{contact_email}"


def sent_query(user_emails: List[str], contact_email: str) -> str:
    senders = " OR ".join(f"from:{email}" for email in user_emails)
    return f"({senders}) to:{contact_email}"
