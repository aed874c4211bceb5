"""
Graph Store — the entity-relationship record of contacts.

Updated by: Importers, Analysis, Scoring Engine, Outreach Ledger
Queried by: Scoring Engine, Metrics Aggregator, API, CLI

Behavioral Contract:
- Entities are keyed by id; upsert replaces the whole entity.
- At most one observation per type per entity; writing an existing type
  merges field by field.
- Relationships require both endpoints to exist at creation time and are
  never deduplicated.
- All mutation happens on the in-memory snapshot. Persistence is an explicit
  load()/save() through a RecordStore.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Union

import pydantic
import structlog
from pydantic import BaseModel

from contact_kernel.core.errors import NotFoundError, ValidationError
from contact_kernel.models.graph import (
    OBSERVATION_MODELS,
    Entity,
    EntityKind,
    Relationship,
)
from contact_kernel.persistence.record_store import RecordStore

logger = structlog.get_logger(__name__)

ENTITIES_KEY = "entities"
RELATIONSHIPS_KEY = "relationships"

CATEGORIZED_AS = "is_categorized_as"
WORKS_AT = "works_at"


def slugify(name: str) -> str:
    """Lowercase id fragment for a display name."""
    slug = re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")
    return slug or "unnamed"


class GraphStore:
    """
    In-memory entity-relationship store.
    The backing RecordStore is only touched by load() and save().
    """

    def __init__(self, record_store: Optional[RecordStore] = None):
        self.record_store = record_store
        self._entities: Dict[str, Entity] = {}
        self._relationships: List[Relationship] = []

    @property
    def entities(self) -> Dict[str, Entity]:
        """Entities keyed by id."""
        return self._entities

    @property
    def relationships(self) -> List[Relationship]:
        return self._relationships

    # --- Entities ---

    def upsert_entity(self, entity: Entity) -> None:
        """Insert or replace an entity by id."""
        self._entities[entity.id] = entity

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        """Get a specific entity by ID."""
        return self._entities.get(entity_id)

    def require_entity(self, entity_id: str) -> Entity:
        entity = self._entities.get(entity_id)
        if entity is None:
            raise NotFoundError(f"Entity {entity_id} does not exist")
        return entity

    def query_by_kind(self, kind: EntityKind) -> List[Entity]:
        """Get all entities of a specific kind."""
        return [e for e in self._entities.values() if e.kind == kind]

    # --- Observations ---

    def upsert_observation(
        self,
        entity_id: str,
        observation_type: str,
        data: Union[Mapping[str, Any], BaseModel],
    ) -> BaseModel:
        """
        Merge ``data`` into the entity's observation of ``observation_type``,
        or add the observation if the entity has none of that type.

        The merge is shallow: each supplied field overwrites the stored one.
        The merged payload is validated against the observation variant.
        """
        entity = self.require_entity(entity_id)

        model = OBSERVATION_MODELS.get(observation_type)
        if model is None:
            raise ValidationError(f"Unknown observation type: {observation_type}")

        if isinstance(data, BaseModel):
            updates = data.model_dump(exclude_unset=True)
        else:
            updates = dict(data)
        updates.pop("type", None)

        existing = entity.observations.get(observation_type)
        merged = existing.model_dump() if existing is not None else {}
        merged.update(updates)
        merged["type"] = observation_type

        try:
            observation = model.model_validate(merged)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Invalid {observation_type} for entity {entity_id}: {e}"
            ) from e

        observations = dict(entity.observations)
        observations[observation_type] = observation
        entity.observations = observations
        return observation

    def replace_observations(
        self, entity_id: str, observations: Mapping[str, BaseModel]
    ) -> None:
        """
        Swap in a set of fully built observations for one entity in a single
        assignment. Types not named in ``observations`` are left as they are.
        """
        entity = self.require_entity(entity_id)
        for observation_type, observation in observations.items():
            model = OBSERVATION_MODELS.get(observation_type)
            if model is None or not isinstance(observation, model):
                raise ValidationError(
                    f"Observation for {observation_type} has the wrong type: "
                    f"{type(observation).__name__}"
                )
        merged = dict(entity.observations)
        merged.update(observations)
        entity.observations = merged

    # --- Relationships ---

    def add_relationship(
        self, from_id: str, relationship_type: str, to_id: str
    ) -> Relationship:
        """Add a typed edge. Both endpoints must already exist."""
        if from_id not in self._entities:
            raise ValidationError(f"Source entity {from_id} does not exist")
        if to_id not in self._entities:
            raise ValidationError(f"Target entity {to_id} does not exist")

        relationship = Relationship(from_id=from_id, type=relationship_type, to_id=to_id)
        self._relationships.append(relationship)
        return relationship

    def query_outgoing(
        self, entity_id: str, relationship_type: Optional[str] = None
    ) -> List[Relationship]:
        """Relationships leaving ``entity_id``, optionally of one type."""
        return [
            r for r in self._relationships
            if r.from_id == entity_id
            and (relationship_type is None or r.type == relationship_type)
        ]

    def query_incoming(
        self, entity_id: str, relationship_type: Optional[str] = None
    ) -> List[Relationship]:
        """Relationships arriving at ``entity_id``, optionally of one type."""
        return [
            r for r in self._relationships
            if r.to_id == entity_id
            and (relationship_type is None or r.type == relationship_type)
        ]

    # --- Typed lookups ---

    def email_index(self) -> Dict[str, str]:
        """Lowercased email address -> contact id, for every Contact."""
        index = {}
        for contact in self.query_by_kind(EntityKind.CONTACT):
            details = contact.contact_details
            if not details:
                continue
            for email in details.emails:
                if email:
                    index[email.lower()] = contact.id
        return index

    def find_by_email(self, email: str) -> Optional[Entity]:
        """The Contact owning ``email`` (case-insensitive), if any."""
        contact_id = self.email_index().get(email.lower())
        return self._entities.get(contact_id) if contact_id else None

    def category_of(self, contact_id: str) -> Optional[str]:
        """Name of the first category a contact is filed under."""
        for rel in self.query_outgoing(contact_id, CATEGORIZED_AS):
            category = self._entities.get(rel.to_id)
            if category:
                return category.name
        return None

    def categorize(self, contact_id: str, category_name: str) -> Entity:
        """File a contact under a category, creating the Category on first use."""
        self.require_entity(contact_id)
        category_id = f"category_{slugify(category_name)}"
        category = self._entities.get(category_id)
        if category is None:
            category = Entity(id=category_id, name=category_name, kind=EntityKind.CATEGORY)
            self.upsert_entity(category)
        self.add_relationship(contact_id, CATEGORIZED_AS, category_id)
        return category

    def organization_of(self, contact_id: str) -> Optional[Entity]:
        """The Organization a contact works at, via contact details or works_at."""
        contact = self.require_entity(contact_id)
        details = contact.contact_details
        if details and details.organization_id:
            org = self._entities.get(details.organization_id)
            if org:
                return org
        for rel in self.query_outgoing(contact_id, WORKS_AT):
            org = self._entities.get(rel.to_id)
            if org:
                return org
        return None

    # --- Persistence ---

    def snapshot(self) -> dict:
        """Serializable snapshot of the whole graph."""
        return {
            ENTITIES_KEY: [
                e.model_dump(mode="json") for e in self._entities.values()
            ],
            RELATIONSHIPS_KEY: [
                r.model_dump(mode="json", by_alias=True) for r in self._relationships
            ],
        }

    def load(self) -> None:
        """Replace the in-memory graph with the persisted one."""
        if self.record_store is None:
            raise ValidationError("GraphStore has no record store to load from")

        raw_entities = self.record_store.read(ENTITIES_KEY) or []
        raw_relationships = self.record_store.read(RELATIONSHIPS_KEY) or []

        try:
            entities = [Entity.model_validate(e) for e in raw_entities]
            relationships = [Relationship.model_validate(r) for r in raw_relationships]
        except pydantic.ValidationError as e:
            raise ValidationError(f"Persisted graph is malformed: {e}") from e

        self._entities = {e.id: e for e in entities}
        self._relationships = relationships
        logger.info(
            "graph_loaded",
            entities=len(self._entities),
            relationships=len(self._relationships),
        )

    def save(self) -> None:
        """Flush the in-memory graph to the record store."""
        if self.record_store is None:
            raise ValidationError("GraphStore has no record store to save to")

        snapshot = self.snapshot()
        self.record_store.write(ENTITIES_KEY, snapshot[ENTITIES_KEY])
        self.record_store.write(RELATIONSHIPS_KEY, snapshot[RELATIONSHIPS_KEY])
        logger.info(
            "graph_saved",
            entities=len(self._entities),
            relationships=len(self._relationships),
        )
