"""Kernel configuration — the explicit context handed to every component."""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator

from contact_kernel.models.scoring import ScoringWeights

DEFAULT_SIGNATURE_CHUNKS = [" Larry Velez ", " kogi.ai ", " 212-380-1014 ", " "]

ENV_PREFIX = "CONTACT_KERNEL_"


class KernelConfig(BaseModel):
    """Configuration for the store, ledger, scoring and analysis components."""

    data_dir: Path = Path("data")
    storage_backend: str = "json"           # "json" | "sqlite"
    signature_chunks: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SIGNATURE_CHUNKS)
    )
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    user_emails: List[str] = []
    analysis_workers: int = Field(ge=1, default=4)
    recent_days: int = 30
    medium_days: int = 90
    long_days: int = 365
    log_level: str = "INFO"

    @field_validator("storage_backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        if value not in ("json", "sqlite"):
            raise ValueError(f"Unknown storage backend: {value}")
        return value

    @field_validator("signature_chunks")
    @classmethod
    def _at_least_one_chunk(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("signature_chunks must contain at least one chunk")
        return value

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "KernelConfig":
        """
        Load configuration from a .env file and the process environment.

        Environment variables override values from the file, even when set
        to an empty string. Unset keys keep their defaults.
        """
        file_values: Dict[str, Any] = {}
        if env_file and env_file.exists():
            file_values = dict(dotenv_values(env_file))

        def lookup(name: str) -> Optional[str]:
            key = ENV_PREFIX + name
            if key in os.environ:
                return os.environ[key]
            return file_values.get(key)

        overrides: Dict[str, Any] = {}

        data_dir = lookup("DATA_DIR")
        if data_dir:
            overrides["data_dir"] = Path(data_dir)

        backend = lookup("BACKEND")
        if backend:
            overrides["storage_backend"] = backend

        chunks = lookup("SIGNATURE_CHUNKS")
        if chunks:
            try:
                overrides["signature_chunks"] = json.loads(chunks)
            except json.JSONDecodeError as e:
                raise ValueError(f"SIGNATURE_CHUNKS is not a JSON list: {e}") from e

        weights = lookup("WEIGHTS")
        if weights:
            try:
                overrides["weights"] = ScoringWeights.model_validate(json.loads(weights))
            except json.JSONDecodeError as e:
                raise ValueError(f"WEIGHTS is not a JSON object: {e}") from e

        user_emails = lookup("USER_EMAILS")
        if user_emails is not None:
            overrides["user_emails"] = [
                e.strip() for e in user_emails.split(",") if e.strip()
            ]

        workers = lookup("WORKERS")
        if workers:
            overrides["analysis_workers"] = int(workers)

        log_level = lookup("LOG_LEVEL")
        if log_level:
            overrides["log_level"] = log_level

        return cls(**overrides)
