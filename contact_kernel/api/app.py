"""
Contact Kernel API — FastAPI endpoints.

Exposes the kernel's functionality via a REST API for:
- Entity and relationship management
- Importance scoring and top-contact ranking
- Outreach tracking and response correlation
- Outreach metrics
- Persistence flush
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from contact_kernel.core.config import KernelConfig
from contact_kernel.core.context import KernelContext
from contact_kernel.core.errors import (
    DecodeError,
    MatchError,
    NotFoundError,
    SignatureOverflowError,
    ValidationError,
)
from contact_kernel.core.logging import configure_logging
from contact_kernel.models.graph import Entity, EntityKind, Observation, Relationship


# --- Request/Response Models ---

class EntityCreateRequest(BaseModel):
    id: str
    name: str
    kind: EntityKind = EntityKind.CONTACT
    observations: Dict[str, Observation] = {}
    category: Optional[str] = None


class OutreachRequest(BaseModel):
    contact_id: str
    email: Optional[str] = None
    category: Optional[str] = None
    sent_at: Optional[datetime] = None


class ResponseRequest(BaseModel):
    signature_text: str
    responded_at: Optional[datetime] = None


class ScoringRunRequest(BaseModel):
    now: Optional[datetime] = None


# --- Application Factory ---

def create_app(context: Optional[KernelContext] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Contact Kernel API",
        description="Contact graph, importance scoring and outreach tracking",
        version="0.1.0",
    )

    ctx = context or KernelContext()
    store = ctx.store
    ledger = ctx.ledger

    # Store components on app state for access in endpoints
    app.state.context = ctx
    app.state.store = store
    app.state.ledger = ledger

    # === ERROR MAPPING ===

    @app.exception_handler(NotFoundError)
    def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(MatchError)
    def no_match(request: Request, exc: MatchError):
        return JSONResponse(status_code=404, content={"detail": "no match found"})

    @app.exception_handler(ValidationError)
    @app.exception_handler(SignatureOverflowError)
    @app.exception_handler(DecodeError)
    def bad_request(request: Request, exc: Exception):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # === ENTITIES ===

    @app.post("/entities")
    def upsert_entity(req: EntityCreateRequest):
        """Insert or replace an entity, optionally filing it under a category."""
        for key, observation in req.observations.items():
            if key != observation.type:
                raise ValidationError(
                    f"Observation keyed {key} has type {observation.type}"
                )
        entity = Entity(
            id=req.id,
            name=req.name,
            kind=req.kind,
            observations=req.observations,
        )
        store.upsert_entity(entity)
        if req.category:
            store.categorize(entity.id, req.category)
        return {"status": "upserted", "entity_id": entity.id}

    @app.get("/entities/{entity_id}")
    def get_entity(entity_id: str):
        entity = store.get_entity(entity_id)
        if not entity:
            raise HTTPException(404, "Entity not found")
        return entity.model_dump(mode="json")

    @app.post("/entities/{entity_id}/observations/{observation_type}")
    def upsert_observation(entity_id: str, observation_type: str, data: Dict[str, Any]):
        """Merge fields into one observation of an entity."""
        observation = store.upsert_observation(entity_id, observation_type, data)
        return observation.model_dump(mode="json")

    # === RELATIONSHIPS ===

    @app.post("/relationships")
    def add_relationship(req: Relationship):
        relationship = store.add_relationship(req.from_id, req.type, req.to_id)
        return relationship.model_dump(mode="json", by_alias=True)

    @app.get("/entities/{entity_id}/relationships")
    def get_relationships(entity_id: str, type: Optional[str] = None):
        """Outgoing and incoming edges of an entity."""
        store.require_entity(entity_id)
        return {
            "outgoing": [
                r.model_dump(mode="json", by_alias=True)
                for r in store.query_outgoing(entity_id, type)
            ],
            "incoming": [
                r.model_dump(mode="json", by_alias=True)
                for r in store.query_incoming(entity_id, type)
            ],
        }

    # === SCORING ===

    @app.post("/scoring/run")
    def run_scoring(req: Optional[ScoringRunRequest] = None):
        """Recompute every contact's importance score."""
        now = req.now if req else None
        scores = ctx.scoring.score_all(now=now)
        return {"scored": len(scores), "scores": scores}

    @app.get("/contacts/top")
    def top_contacts(n: int = 10, category: Optional[str] = None):
        try:
            ranked = ctx.scoring.rank_top_n(n, category=category)
        except ValueError as e:
            raise HTTPException(400, str(e))
        return ctx.metrics.top_contacts_rows(ranked)

    # === OUTREACH ===

    @app.post("/outreach")
    def record_outreach(req: OutreachRequest):
        """Record a sent message and return its tracking signature."""
        email = req.email
        if email is None:
            contact = store.require_entity(req.contact_id)
            email = contact.primary_email
            if not email:
                raise HTTPException(400, "Contact has no email address")

        code = ledger.record_outreach(
            req.contact_id, email, category=req.category, sent_at=req.sent_at
        )
        return code.model_dump(mode="json")

    @app.post("/outreach/responses")
    def record_response(req: ResponseRequest):
        """Match a reply's signature and mark its outreach as responded."""
        record = ledger.record_response(req.signature_text, responded_at=req.responded_at)
        return record.model_dump(mode="json")

    @app.get("/outreach/{contact_id}")
    def get_outreach(contact_id: str):
        record = ledger.get_record(contact_id)
        if not record:
            raise HTTPException(404, "Outreach record not found")
        code = ledger.get_tracking_code(contact_id)
        return {
            "record": record.model_dump(mode="json"),
            "status": record.status.value,
            "tracking_code": code.model_dump(mode="json") if code else None,
        }

    # === METRICS ===

    @app.get("/metrics/summary")
    def metrics_summary():
        return {
            "overall": ctx.metrics.overall(),
            "categories": ctx.metrics.category_performance(),
            "quickest_responders": ctx.metrics.quickest_responders(),
        }

    @app.get("/metrics/weekly")
    def metrics_weekly():
        return ctx.metrics.weekly_trend()

    # === PERSISTENCE ===

    @app.post("/persistence/flush")
    def flush():
        """Write the graph and the ledger to the record store."""
        ctx.flush()
        return {"status": "flushed"}

    return app


def create_app_from_env(env_file: Optional[Path] = None) -> FastAPI:
    """
    Application over the persisted kernel named by the environment.

    Serve with ``uvicorn --factory contact_kernel.api.app:create_app_from_env``.
    """
    config = KernelConfig.from_env(env_file)
    configure_logging(config.log_level, json_output=True)
    return create_app(KernelContext.open(config))
