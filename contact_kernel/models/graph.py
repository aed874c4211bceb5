"""Entity-relationship graph of contacts, organizations and categories."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EntityKind(str, Enum):
    CONTACT = "Contact"
    ORGANIZATION = "Organization"
    CATEGORY = "Category"


class ObservationType(str, Enum):
    CONTACT_DETAILS = "contact_details"
    COMMUNICATION_METRICS = "communication_metrics"
    IMPORTANCE_METRICS = "importance_metrics"
    RELATIONSHIP_INFO = "relationship_info"
    COMMUNICATION_PATTERNS = "communication_patterns"


class ContactDetails(BaseModel):
    """How to reach a contact, and where they work."""

    type: Literal["contact_details"] = "contact_details"
    emails: List[str] = []
    phones: List[str] = []
    organization_id: Optional[str] = None  # Organization entity id
    title: str = ""
    address: str = ""


class CommunicationMetrics(BaseModel):
    """Summarized communication history, produced by analysis."""

    type: Literal["communication_metrics"] = "communication_metrics"
    email_count: int = Field(ge=0, default=0)
    last_contacted_at: Optional[datetime] = None
    response_rate: float = Field(ge=0, le=1, default=0.0)
    meeting_count: int = Field(ge=0, default=0)
    response_count: int = Field(ge=0, default=0)


class ImportanceMetrics(BaseModel):
    type: Literal["importance_metrics"] = "importance_metrics"
    manual_priority: float = Field(ge=0, le=10, default=0)
    calculated_score: int = Field(ge=0, le=100, default=0)


class RelationshipInfo(BaseModel):
    type: Literal["relationship_info"] = "relationship_info"
    notes: str = ""


class CommunicationPatterns(BaseModel):
    """Detailed thread statistics kept alongside the summary metrics."""

    type: Literal["communication_patterns"] = "communication_patterns"
    first_contact_at: Optional[datetime] = None
    emails_sent: int = 0
    emails_received: int = 0
    average_thread_depth: float = 0.0
    average_response_hours: float = 0.0
    communication_trend: str = "stable"     # "increasing" | "stable" | "decreasing"
    last_30_days: int = 0
    last_90_days: int = 0
    last_365_days: int = 0


Observation = Annotated[
    Union[
        ContactDetails,
        CommunicationMetrics,
        ImportanceMetrics,
        RelationshipInfo,
        CommunicationPatterns,
    ],
    Field(discriminator="type"),
]

OBSERVATION_MODELS = {
    ObservationType.CONTACT_DETAILS.value: ContactDetails,
    ObservationType.COMMUNICATION_METRICS.value: CommunicationMetrics,
    ObservationType.IMPORTANCE_METRICS.value: ImportanceMetrics,
    ObservationType.RELATIONSHIP_INFO.value: RelationshipInfo,
    ObservationType.COMMUNICATION_PATTERNS.value: CommunicationPatterns,
}


class Entity(BaseModel):
    """A node in the graph. Holds at most one observation per type."""

    id: str
    name: str
    kind: EntityKind
    observations: Dict[str, Observation] = {}

    @model_validator(mode="after")
    def _keys_match_types(self) -> "Entity":
        for key, observation in self.observations.items():
            if key != observation.type:
                raise ValueError(
                    f"Observation keyed {key} has type {observation.type}"
                )
        return self

    @property
    def contact_details(self) -> Optional[ContactDetails]:
        return self.observations.get(ObservationType.CONTACT_DETAILS.value)

    @property
    def communication_metrics(self) -> Optional[CommunicationMetrics]:
        return self.observations.get(ObservationType.COMMUNICATION_METRICS.value)

    @property
    def importance_metrics(self) -> Optional[ImportanceMetrics]:
        return self.observations.get(ObservationType.IMPORTANCE_METRICS.value)

    @property
    def communication_patterns(self) -> Optional[CommunicationPatterns]:
        return self.observations.get(ObservationType.COMMUNICATION_PATTERNS.value)

    @property
    def calculated_score(self) -> int:
        metrics = self.importance_metrics
        return metrics.calculated_score if metrics else 0

    @property
    def primary_email(self) -> Optional[str]:
        details = self.contact_details
        if details and details.emails:
            return details.emails[0]
        return None


class Relationship(BaseModel):
    """A typed directed edge. Serialized as ``from`` / ``type`` / ``to``."""

    model_config = ConfigDict(populate_by_name=True)

    from_id: str = Field(alias="from")
    type: str                               # e.g., "works_at", "is_categorized_as", "introduced"
    to_id: str = Field(alias="to")
