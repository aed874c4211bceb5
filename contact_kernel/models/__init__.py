"""Contact Kernel data models."""

from contact_kernel.models.analysis import (
    CommunicationSummary,
    Message,
    ThreadRef,
    ThreadSummary,
)
from contact_kernel.models.graph import (
    OBSERVATION_MODELS,
    CommunicationMetrics,
    CommunicationPatterns,
    ContactDetails,
    Entity,
    EntityKind,
    ImportanceMetrics,
    Observation,
    ObservationType,
    Relationship,
    RelationshipInfo,
)
from contact_kernel.models.outreach import (
    CategoryMetrics,
    OutreachRecord,
    OutreachStatus,
    ResponseMetrics,
    TrackingCode,
    WeeklyStat,
)
from contact_kernel.models.scoring import FactorScores, ScoringWeights

__all__ = [
    "OBSERVATION_MODELS",
    "CategoryMetrics",
    "CommunicationMetrics",
    "CommunicationPatterns",
    "CommunicationSummary",
    "ContactDetails",
    "Entity",
    "EntityKind",
    "FactorScores",
    "ImportanceMetrics",
    "Message",
    "Observation",
    "ObservationType",
    "OutreachRecord",
    "OutreachStatus",
    "Relationship",
    "RelationshipInfo",
    "ResponseMetrics",
    "ScoringWeights",
    "ThreadRef",
    "ThreadSummary",
    "TrackingCode",
    "WeeklyStat",
]
