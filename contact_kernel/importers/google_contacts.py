"""Google Contacts CSV export -> Contact and Organization entities."""

import csv
from pathlib import Path
from typing import Dict, List

import structlog

from contact_kernel.graph.store import WORKS_AT, GraphStore, slugify
from contact_kernel.models.graph import (
    CommunicationMetrics,
    ContactDetails,
    Entity,
    EntityKind,
    ImportanceMetrics,
    ObservationType,
    RelationshipInfo,
)

logger = structlog.get_logger(__name__)

MAX_MULTI_VALUES = 3


def parse_google_contacts_csv(path: Path) -> List[Dict[str, str]]:
    """Rows of a Google Contacts export, keyed by column header."""
    with Path(path).open("r", encoding="utf-8-sig", newline="") as f:
        return list(csv.DictReader(f))


def _field(row: Dict[str, str], name: str) -> str:
    return (row.get(name) or "").strip()


def _numbered_values(row: Dict[str, str], label: str) -> List[str]:
    values = []
    for i in range(1, MAX_MULTI_VALUES + 1):
        value = _field(row, f"{label} {i} - Value")
        if value:
            values.append(value)
    return values


def _ensure_organization(store: GraphStore, name: str) -> Entity:
    org_id = f"org_{slugify(name)}"
    org = store.get_entity(org_id)
    if org is None:
        org = Entity(id=org_id, name=name, kind=EntityKind.ORGANIZATION)
        store.upsert_entity(org)
    return org


def import_contacts(rows: List[Dict[str, str]], store: GraphStore) -> List[Entity]:
    """
    Turn export rows into ``contact_<n>`` entities, numbered from 1 in row order.
    Organizations are shared across contacts by name.
    """
    contacts = []
    for index, row in enumerate(rows, start=1):
        name = f"{_field(row, 'Given Name')} {_field(row, 'Family Name')}".strip()
        if not name:
            name = _field(row, "Name") or f"Contact {index}"

        org = None
        org_name = _field(row, "Organization 1 - Name")
        if org_name:
            org = _ensure_organization(store, org_name)

        details = ContactDetails(
            emails=_numbered_values(row, "E-mail"),
            phones=_numbered_values(row, "Phone"),
            organization_id=org.id if org else None,
            title=_field(row, "Organization 1 - Title"),
            address=_field(row, "Address 1 - Formatted"),
        )
        contact = Entity(
            id=f"contact_{index}",
            name=name,
            kind=EntityKind.CONTACT,
            observations={
                ObservationType.CONTACT_DETAILS.value: details,
                ObservationType.RELATIONSHIP_INFO.value: RelationshipInfo(
                    notes=_field(row, "Notes")
                ),
                ObservationType.COMMUNICATION_METRICS.value: CommunicationMetrics(),
                ObservationType.IMPORTANCE_METRICS.value: ImportanceMetrics(),
            },
        )
        store.upsert_entity(contact)
        if org is not None:
            store.add_relationship(contact.id, WORKS_AT, org.id)
        contacts.append(contact)

    logger.info("contacts_imported", count=len(contacts))
    return contacts
