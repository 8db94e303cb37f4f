# herbtrace/models/ledger/event_models.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EventType(str, Enum):
    COLLECTION = "COLLECTION"
    QUALITY_TEST = "QUALITY_TEST"
    PROCESSING = "PROCESSING"
    MANUFACTURING = "MANUFACTURING"


class Stage(str, Enum):
    NONE = "NONE"
    COLLECTED = "COLLECTED"
    QUALITY_TESTED = "QUALITY_TESTED"
    PROCESSED = "PROCESSED"
    MANUFACTURED = "MANUFACTURED"


# event type -> stage the batch reaches once that event is recorded
STAGE_FOR_EVENT: Dict[EventType, Stage] = {
    EventType.COLLECTION: Stage.COLLECTED,
    EventType.QUALITY_TEST: Stage.QUALITY_TESTED,
    EventType.PROCESSING: Stage.PROCESSED,
    EventType.MANUFACTURING: Stage.MANUFACTURED,
}

STAGE_ORDER: List[Stage] = [
    Stage.NONE,
    Stage.COLLECTED,
    Stage.QUALITY_TESTED,
    Stage.PROCESSED,
    Stage.MANUFACTURED,
]

# default organization labels per stage (used when a form leaves it blank)
DEFAULT_ORGANIZATION: Dict[EventType, str] = {
    EventType.COLLECTION: "Collector Group",
    EventType.QUALITY_TEST: "Testing Laboratory",
    EventType.PROCESSING: "Processing Unit",
    EventType.MANUFACTURING: "Manufacturing Plant",
}


def derive_stage(event_types) -> Stage:
    """
    Stage is a pure function of which event types are present:
    the furthest stage any recorded event type reaches.
    """
    reached = Stage.NONE
    for et in event_types:
        stage = STAGE_FOR_EVENT[EventType(et)]
        if STAGE_ORDER.index(stage) > STAGE_ORDER.index(reached):
            reached = stage
    return reached


# -------------------------
# Payload pieces
# -------------------------
class GeoLocation(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    zone: Optional[str] = None
    address: Optional[str] = None


class WeatherSnapshot(BaseModel):
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    description: Optional[str] = None
    windSpeed: Optional[float] = None


class CustomParameter(BaseModel):
    name: str
    value: Any = None
    unit: Optional[str] = None


# -------------------------
# Stage payloads (tagged by `kind`)
# -------------------------
class CollectionPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["COLLECTION"] = "COLLECTION"
    herbSpecies: str = Field(..., min_length=1)
    weight: Optional[float] = Field(default=None, ge=0)   # grams
    location: Optional[GeoLocation] = None
    qualityGrade: Optional[str] = None
    weather: Optional[WeatherSnapshot] = None
    pricePerUnit: Optional[float] = None
    totalPrice: Optional[float] = None
    notes: Optional[str] = None


class QualityTestPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["QUALITY_TEST"] = "QUALITY_TEST"
    purity: float = Field(..., ge=0, le=100)              # %
    moistureContent: float = Field(..., ge=0, le=100)     # %
    pesticideLevel: float = Field(..., ge=0)              # ppm
    testMethod: Optional[str] = None
    customParameters: List[CustomParameter] = Field(default_factory=list)
    notes: Optional[str] = None


class ProcessingPayload(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: Literal["PROCESSING"] = "PROCESSING"
    method: str = Field(..., min_length=1)
    temperature: Optional[float] = None                   # °C
    yield_: Optional[float] = Field(default=None, alias="yield", ge=0)
    duration: Optional[str] = None
    yieldPercentage: Optional[float] = Field(default=None, ge=0)
    location: Optional[GeoLocation] = None
    notes: Optional[str] = None


class ManufacturingPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["MANUFACTURING"] = "MANUFACTURING"
    productName: str = Field(..., min_length=1)
    productType: Optional[str] = None
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None
    expiryDate: Optional[str] = None
    certificationId: Optional[str] = None
    brandName: Optional[str] = None
    manufacturingLocation: Optional[GeoLocation] = None
    notes: Optional[str] = None


EventPayload = Annotated[
    Union[CollectionPayload, QualityTestPayload, ProcessingPayload, ManufacturingPayload],
    Field(discriminator="kind"),
]


# -------------------------
# Ledger records
# -------------------------
class EventDraft(BaseModel):
    """What a producing collaborator hands to LedgerService.append."""

    batchId: str = Field(..., min_length=1)
    eventType: EventType
    participant: str = Field(..., min_length=1)
    organization: Optional[str] = None
    parentEventId: Optional[str] = None
    payload: EventPayload
    eventId: Optional[str] = None
    externalRef: Optional[str] = None

    @model_validator(mode="after")
    def _payload_matches_type(self):
        if self.payload.kind != self.eventType.value:
            raise ValueError(
                f"payload kind {self.payload.kind} does not match eventType {self.eventType.value}"
            )
        return self


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    eventId: str
    eventType: EventType
    batchId: str
    parentEventId: Optional[str] = None
    participant: str
    organization: str = ""
    timestamp: datetime
    payload: EventPayload
    integrityTag: str = ""
    externalRef: Optional[str] = None


class Batch(BaseModel):
    batchId: str
    species: str
    creator: str
    currentStage: Stage = Stage.COLLECTED
    isTerminal: bool = False
    createdAt: datetime
    updatedAt: datetime
    events: List[Event] = Field(default_factory=list)

    def event_types(self) -> List[EventType]:
        return [e.eventType for e in self.events]

    def event_of(self, event_type: EventType) -> Optional[Event]:
        for ev in self.events:
            if ev.eventType == event_type:
                return ev
        return None

    def snapshot(self) -> "Batch":
        # events are frozen, so a fresh list is enough to detach the copy
        return self.model_copy(update={"events": list(self.events)})


class AuditEntry(BaseModel):
    eventId: str
    eventType: EventType
    batchId: str
    participant: str
    organization: str
    timestamp: datetime
    integrityTag: str
