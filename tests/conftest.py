"""Pytest fixtures: in-memory stores, a ticking clock, and both HTTP clients."""
import itertools
import random
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from herbtrace.app_config import Settings
from herbtrace.bootstrap import build_context
from herbtrace.models.ledger.event_models import (
    CollectionPayload,
    EventDraft,
    EventType,
    ManufacturingPayload,
    ProcessingPayload,
    QualityTestPayload,
)
from herbtrace.services.ledger.identifiers import IdentifierGenerator
from herbtrace.services.ledger.ledger_service import LedgerService
from herbtrace.services.ledger.resolver import Resolver
from herbtrace.storage.memory_store import InMemoryLedgerStore
from herbtrace.storage.metadata_store import InMemoryMetadataStore

ORIGIN = "https://herbs.example"
T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


class TickingClock:
    """Each call returns a moment one second after the previous one."""

    def __init__(self, start=T0):
        self._n = itertools.count()
        self.start = start

    def __call__(self):
        return self.start + timedelta(seconds=next(self._n))

    def epoch(self):
        return self().timestamp()


# ------------------------------
# Draft builders
# ------------------------------
def collection_draft(batch_id, species="Ashwagandha", participant="Ravi", **kw):
    return EventDraft(
        batchId=batch_id,
        eventType=EventType.COLLECTION,
        participant=participant,
        payload=CollectionPayload(
            herbSpecies=species,
            weight=kw.pop("weight", 500),
            qualityGrade=kw.pop("qualityGrade", "A"),
            pricePerUnit=kw.pop("pricePerUnit", 2),
            totalPrice=kw.pop("totalPrice", 1000),
            location=kw.pop("location", {"latitude": 26.9124, "longitude": 75.7873, "zone": "Jaipur"}),
        ),
        **kw,
    )


def quality_draft(batch_id, purity=98.5, pesticide=0.05, participant="Lab Tech", **kw):
    return EventDraft(
        batchId=batch_id,
        eventType=EventType.QUALITY_TEST,
        participant=participant,
        payload=QualityTestPayload(purity=purity, moistureContent=8.0, pesticideLevel=pesticide),
        **kw,
    )


def processing_draft(batch_id, participant="Mill Operator", **kw):
    return EventDraft(
        batchId=batch_id,
        eventType=EventType.PROCESSING,
        participant=participant,
        payload=ProcessingPayload(method="Drying", temperature=60, yield_=425, yieldPercentage=85),
        **kw,
    )


def manufacturing_draft(batch_id, participant="Plant Lead", **kw):
    return EventDraft(
        batchId=batch_id,
        eventType=EventType.MANUFACTURING,
        participant=participant,
        payload=ManufacturingPayload(
            productName="Ashwagandha Capsules",
            quantity=100,
            unit="capsules",
            expiryDate="2028-03-01",
            brandName="Vanaspati",
            certificationId="AYUSH-42",
        ),
        **kw,
    )


# ------------------------------
# Core fixtures
# ------------------------------
@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def ids(clock):
    return IdentifierGenerator(clock=clock.epoch, rng=random.Random(7))


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def metadata_store():
    return InMemoryMetadataStore()


@pytest.fixture
def ledger(store, ids, metadata_store, clock):
    return LedgerService(store, ids=ids, metadata_store=metadata_store, clock=clock)


@pytest.fixture
def resolver(ledger):
    return Resolver(ledger)


@pytest.fixture
def full_batch(ledger):
    """Batch B-1 taken through all four stages; returns the four events."""
    c = ledger.append(collection_draft("B-1"))
    q = ledger.append(quality_draft("B-1", parentEventId=c.eventId))
    p = ledger.append(processing_draft("B-1", parentEventId=q.eventId))
    m = ledger.append(manufacturing_draft("B-1", parentEventId=p.eventId))
    return c, q, p, m


# ------------------------------
# App fixtures
# ------------------------------
@pytest.fixture
def settings():
    return Settings(tracking_origin=ORIGIN, disable_mongo=True, log_level="WARNING")


@pytest.fixture
def context(settings, store, ids, clock):
    return build_context(settings, store=store, ids=ids, clock=clock)


@pytest.fixture
def api_client(context):
    from server import create_app

    with TestClient(create_app(context)) as c:
        yield c


@pytest.fixture
def flask_client(context):
    from app import create_app

    app = create_app(context)
    app.config["TESTING"] = True
    return app.test_client()
