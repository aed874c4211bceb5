"""Wires the kernel components together from one KernelConfig."""

from typing import Optional

import structlog

from contact_kernel.core.config import KernelConfig
from contact_kernel.graph.store import GraphStore
from contact_kernel.metrics.aggregator import MetricsAggregator
from contact_kernel.outreach.ledger import OutreachLedger
from contact_kernel.persistence.record_store import RecordStore, open_record_store
from contact_kernel.scoring.engine import ScoringEngine

logger = structlog.get_logger(__name__)


class KernelContext:
    """
    Explicit handle on the store, ledger, scoring engine and aggregator.
    Nothing is persisted until flush() is called.
    """

    def __init__(
        self,
        config: Optional[KernelConfig] = None,
        record_store: Optional[RecordStore] = None,
    ):
        self.config = config or KernelConfig()
        self.record_store = record_store
        self.store = GraphStore(record_store)
        self.ledger = OutreachLedger(
            self.store, record_store, chunks=self.config.signature_chunks
        )
        self.scoring = ScoringEngine(
            self.store,
            weights=self.config.weights,
            workers=self.config.analysis_workers,
        )
        self.metrics = MetricsAggregator(self.store, self.ledger)

    @classmethod
    def open(
        cls,
        config: KernelConfig,
        record_store: Optional[RecordStore] = None,
    ) -> "KernelContext":
        """Build a context over ``config``'s record store and load persisted state."""
        context = cls(config, record_store or open_record_store(config))
        context.store.load()
        context.ledger.load()
        logger.info(
            "kernel_opened",
            backend=config.storage_backend,
            data_dir=str(config.data_dir),
        )
        return context

    def flush(self) -> None:
        """Persist the graph and the ledger."""
        self.store.save()
        self.ledger.save()

    def close(self) -> None:
        if self.record_store is not None:
            self.record_store.close()
