# herbtrace/bootstrap.py
"""
One place that wires the ledger and its collaborators together.

Both entry points (app.py for the public tracking pages, server.py for the
REST API) call build_context() once at startup and share the result with
their routes; nothing else constructs a LedgerService.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from herbtrace.app_config import Settings, load_settings
from herbtrace.mongo import init_mongo
from herbtrace.services.ledger.identifiers import IdentifierGenerator
from herbtrace.services.ledger.ledger_service import LedgerService
from herbtrace.services.ledger.resolver import Resolver
from herbtrace.services.traceability.traceability_services import TraceabilityService
from herbtrace.services.traceability.tracking_codec import TrackingCodec
from herbtrace.storage.base import LedgerStore
from herbtrace.storage.memory_store import InMemoryLedgerStore
from herbtrace.storage.metadata_store import (
    InMemoryMetadataStore,
    MetadataStore,
    MongoMetadataStore,
)
from herbtrace.storage.mongo_store import MongoLedgerStore

log = logging.getLogger(__name__)

CONTEXT_KEY = "LEDGER_CONTEXT"


@dataclass
class LedgerContext:
    settings: Settings
    ledger: LedgerService
    resolver: Resolver
    codec: TrackingCodec
    traceability: TraceabilityService
    metadata_store: MetadataStore


def build_context(
    settings: Optional[Settings] = None,
    store: Optional[LedgerStore] = None,
    metadata_store: Optional[MetadataStore] = None,
    ids: Optional[IdentifierGenerator] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> LedgerContext:
    settings = settings or load_settings()

    if store is None:
        if settings.disable_mongo:
            log.warning("Mongo disabled by DISABLE_MONGO=1, using in-memory stores")
            store = InMemoryLedgerStore()
            metadata_store = metadata_store or InMemoryMetadataStore()
        else:
            db = init_mongo(settings.mongo_uri, timeout_ms=settings.mongo_timeout_ms)
            mongo_store = MongoLedgerStore(db)
            mongo_store.ensure_indexes()
            store = mongo_store
            metadata_store = metadata_store or MongoMetadataStore(db)
    metadata_store = metadata_store or InMemoryMetadataStore()

    ledger = LedgerService(
        store,
        ids=ids,
        clock=clock,
        metadata_store=metadata_store,
        reload_policy=settings.reload_policy,
    )
    resolver = Resolver(ledger, substring_match=settings.substring_match)
    codec = TrackingCodec(
        settings.tracking_origin,
        resolver=resolver,
        fill_color=settings.qr_fill_color,
        back_color=settings.qr_back_color,
    )
    return LedgerContext(
        settings=settings,
        ledger=ledger,
        resolver=resolver,
        codec=codec,
        traceability=TraceabilityService(resolver),
        metadata_store=metadata_store,
    )


def init_ledger(app, context: LedgerContext) -> LedgerContext:
    """Attach a context to a Flask app; routes read it back with get_context()."""
    app.extensions[CONTEXT_KEY] = context
    return context


def get_context(app) -> LedgerContext:
    return app.extensions[CONTEXT_KEY]
