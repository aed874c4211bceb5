"""Read-only roll-ups over the outreach ledger and the graph store."""

from typing import Dict, List, Optional, Sequence

from contact_kernel.graph.store import GraphStore
from contact_kernel.models.graph import Entity
from contact_kernel.outreach.ledger import OutreachLedger

UNKNOWN_NAME = "Unknown"
UNCATEGORIZED = "Uncategorized"


class MetricsAggregator:
    """Summaries for reports, the API and the CLI. Never mutates state."""

    def __init__(self, store: GraphStore, ledger: OutreachLedger):
        self.store = store
        self.ledger = ledger

    def overall(self) -> dict:
        """Totals, response rate and average response time in days."""
        m = self.ledger.metrics
        times = list(m.response_times_by_contact.values())
        return {
            "total_sent": m.total_sent,
            "total_responses": m.total_responses,
            "response_rate": m.response_rate,
            "average_response_days": sum(times) / len(times) if times else None,
        }

    def category_performance(self) -> List[dict]:
        return [
            {
                "category": name,
                "sent": bucket.sent,
                "responses": bucket.responses,
                "response_rate": bucket.response_rate,
            }
            for name, bucket in sorted(self.ledger.metrics.category_metrics.items())
        ]

    def weekly_trend(self) -> List[dict]:
        stats = sorted(
            self.ledger.metrics.weekly_stats, key=lambda s: (s.iso_year, s.iso_week)
        )
        return [s.model_dump() for s in stats]

    def quickest_responders(self, limit: int = 5) -> List[dict]:
        """Responded contacts, fastest first."""
        times = self.ledger.metrics.response_times_by_contact
        ranked = sorted(times.items(), key=lambda item: (item[1], item[0]))[:limit]

        rows = []
        for contact_id, days in ranked:
            contact = self.store.get_entity(contact_id)
            rows.append({
                "contact_id": contact_id,
                "name": contact.name if contact else UNKNOWN_NAME,
                "response_time_days": days,
            })
        return rows

    def category_breakdown(self, contacts: Sequence[Entity]) -> Dict[str, dict]:
        """Count and percentage of ``contacts`` per category name."""
        counts: Dict[str, int] = {}
        for contact in contacts:
            name = self.store.category_of(contact.id) or UNCATEGORIZED
            counts[name] = counts.get(name, 0) + 1

        total = len(contacts)
        return {
            name: {
                "count": count,
                "percentage": 100.0 * count / total if total else 0.0,
            }
            for name, count in sorted(counts.items())
        }

    def contact_tiers(
        self,
        contacts: Sequence[Entity],
        tier_size: int = 50,
        tiers: int = 3,
    ) -> List[List[Entity]]:
        """Consecutive slices of an already ranked list. Empty tiers are dropped."""
        result = []
        for i in range(tiers):
            tier = list(contacts[i * tier_size:(i + 1) * tier_size])
            if tier:
                result.append(tier)
        return result

    def _organization_name(self, contact: Entity) -> Optional[str]:
        org = self.store.organization_of(contact.id)
        return org.name if org else None

    def top_contacts_rows(self, contacts: Sequence[Entity]) -> List[dict]:
        """One display row per ranked contact."""
        return [
            {
                "rank": rank,
                "contact_id": contact.id,
                "name": contact.name,
                "score": contact.calculated_score,
                "email": contact.primary_email,
                "organization": self._organization_name(contact),
                "category": self.store.category_of(contact.id),
            }
            for rank, contact in enumerate(contacts, start=1)
        ]
