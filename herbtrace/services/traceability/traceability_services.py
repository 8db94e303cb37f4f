# herbtrace/services/traceability/traceability_services.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from herbtrace.models.ledger.event_models import (
    Batch,
    CollectionPayload,
    Event,
    EventType,
    GeoLocation,
    ManufacturingPayload,
    ProcessingPayload,
    QualityTestPayload,
)
from herbtrace.models.traceability.traceability_models import (
    EnvironmentBlock,
    JourneyStep,
    OriginBlock,
    ProcessingBlock,
    ProductBlock,
    QualityBlock,
    TraceabilityViewModel,
)
from herbtrace.services.ledger.quality import assess_quality
from herbtrace.services.ledger.resolver import Resolver
from herbtrace.services.traceability.integrity import verify_event_tag

log = logging.getLogger(__name__)

BASE_CERTIFICATIONS = ["Ledger Verified"]
DEFAULT_BRAND = "HerbTrace Certified"


class TraceabilityService:
    """
    Compose the consumer-facing story of one batch:
      - origin + environment (COLLECTION)
      - quality (QUALITY_TEST)
      - processing (PROCESSING)
      - product + certifications (MANUFACTURING)
      - journey: one step per event, in append order
    """

    def __init__(self, resolver: Resolver):
        self.resolver = resolver

    # -------------------------
    # Public API
    # -------------------------
    def build_traceability(self, token: str) -> TraceabilityViewModel:
        """Raises NotFoundError when the token does not resolve."""
        resolved = self.resolver.resolve(token)
        batch = resolved.batch

        vm = TraceabilityViewModel(
            batchId=batch.batchId,
            currentStage=batch.currentStage.value,
            isTerminal=batch.isTerminal,
            matchedBy=resolved.matched_by,
        )

        collection = batch.event_of(EventType.COLLECTION)
        quality = batch.event_of(EventType.QUALITY_TEST)
        processing = batch.event_of(EventType.PROCESSING)
        manufacturing = batch.event_of(EventType.MANUFACTURING)

        if collection:
            vm.origin = self._compose_origin(collection)
            vm.environment = self._compose_environment(collection)
        if quality:
            vm.quality = self._compose_quality(quality)
        if processing:
            vm.processing = self._compose_processing(processing)
        vm.product = self._compose_product(batch, collection, quality, manufacturing)
        vm.journey = [self._journey_step(ev) for ev in resolved.events]

        broken = [s.eventId for s in vm.journey if not s.integrityOk]
        if broken:
            log.warning("batch %s: integrity tag mismatch on %s", batch.batchId, ", ".join(broken))

        vm.debug = {
            "eventCount": len(resolved.events),
            "matchedEventId": resolved.matched_event_id,
            "integrityMismatches": broken,
        }
        return vm

    # -------------------------
    # Compose blocks
    # -------------------------
    @staticmethod
    def _compose_origin(ev: Event) -> OriginBlock:
        p: CollectionPayload = ev.payload
        loc = p.location
        return OriginBlock(
            herbSpecies=p.herbSpecies,
            collector=ev.participant,
            harvestLocation=(loc.zone or loc.address or "") if loc else "",
            harvestDate=_date(ev),
            weight=p.weight,
            qualityGrade=p.qualityGrade or "",
            pricePerUnit=p.pricePerUnit,
            totalPrice=p.totalPrice,
            coordinates=_coordinates(loc),
        )

    @staticmethod
    def _compose_environment(ev: Event) -> Optional[EnvironmentBlock]:
        w = ev.payload.weather
        if w is None:
            return None
        return EnvironmentBlock(
            temperature=w.temperature,
            humidity=w.humidity,
            conditions=w.description or "",
            windSpeed=w.windSpeed,
        )

    @staticmethod
    def _compose_quality(ev: Event) -> QualityBlock:
        p: QualityTestPayload = ev.payload
        return QualityBlock(
            purity=f"{_num(p.purity)}%",
            moistureContent=f"{_num(p.moistureContent)}%",
            pesticideLevel=f"{_num(p.pesticideLevel)} ppm",
            testMethod=p.testMethod or "Standard Laboratory Test",
            testDate=_date(ev),
            labName=ev.organization or "Certified Laboratory",
            status=assess_quality(p).status,
            customParameters=[c.model_dump() for c in p.customParameters],
        )

    @staticmethod
    def _compose_processing(ev: Event) -> ProcessingBlock:
        p: ProcessingPayload = ev.payload
        return ProcessingBlock(
            method=p.method,
            location=(p.location.zone or "") if p.location else "",
            temperature=f"{_num(p.temperature)}°C" if p.temperature is not None else "Not specified",
            yieldGrams=p.yield_,
            yieldEfficiency=f"{p.yieldPercentage:.1f}%" if p.yieldPercentage is not None else "Not available",
            duration=p.duration or "",
            processedOn=_date(ev),
        )

    @staticmethod
    def _compose_product(
        batch: Batch,
        collection: Optional[Event],
        quality: Optional[Event],
        manufacturing: Optional[Event],
    ) -> ProductBlock:
        certifications = list(BASE_CERTIFICATIONS)
        if quality is not None:
            cert = assess_quality(quality.payload).certification
            if cert:
                certifications.append(cert)

        if manufacturing is None:
            species = collection.payload.herbSpecies if collection else batch.species
            return ProductBlock(
                productName=f"{species} Product" if species else "Herbal Product",
                brandName=DEFAULT_BRAND,
                certifications=certifications,
            )

        p: ManufacturingPayload = manufacturing.payload
        if p.certificationId:
            certifications.insert(len(BASE_CERTIFICATIONS), f"Certified: {p.certificationId}")

        quantity = ""
        if p.quantity is not None:
            quantity = f"{_num(p.quantity)} {p.unit or ''}".strip()

        return ProductBlock(
            productName=p.productName,
            brandName=p.brandName or manufacturing.organization or DEFAULT_BRAND,
            productType=p.productType or "",
            quantity=quantity,
            manufacturer=manufacturing.participant,
            manufacturingDate=_date(manufacturing),
            manufacturingLocation=(p.manufacturingLocation.zone or "") if p.manufacturingLocation else "",
            expiryDate=p.expiryDate or "",
            certifications=certifications,
        )

    @staticmethod
    def _journey_step(ev: Event) -> JourneyStep:
        loc = getattr(ev.payload, "location", None) or getattr(ev.payload, "manufacturingLocation", None)
        where = ""
        if loc is not None:
            where = loc.zone or loc.address or ""
        return JourneyStep(
            stage=ev.eventType.value.replace("_", " "),
            eventId=ev.eventId,
            participant=ev.participant,
            organization=ev.organization,
            location=where or f"{ev.organization} Facility",
            coordinates=_coordinates(loc),
            date=_date(ev),
            time=ev.timestamp.strftime("%H:%M:%S"),
            details=event_details(ev),
            externalRef=ev.externalRef,
            integrityTag=ev.integrityTag,
            integrityOk=verify_event_tag(ev),
        )


def event_details(ev: Event) -> str:
    """One human-readable line per event."""
    p = ev.payload
    if ev.eventType == EventType.COLLECTION:
        line = f"Collected {_num(p.weight)}g of {p.herbSpecies}"
        if p.qualityGrade:
            line += f" ({p.qualityGrade} grade)"
        if p.pricePerUnit is not None:
            line += f" at ₹{_num(p.pricePerUnit)}/g (Total: ₹{_num(p.totalPrice)})"
        return line
    if ev.eventType == EventType.QUALITY_TEST:
        return (
            f"Quality test: {_num(p.purity)}% purity, {_num(p.moistureContent)}% moisture, "
            f"{_num(p.pesticideLevel)} ppm pesticides"
        )
    if ev.eventType == EventType.PROCESSING:
        line = f"Processed using {p.method}"
        if p.yield_ is not None:
            line += f", yield: {_num(p.yield_)}g"
            if p.yieldPercentage is not None:
                line += f" ({p.yieldPercentage:.1f}% efficiency)"
        return line
    return (
        f"Manufactured {_num(p.quantity)} {p.unit or ''} of {p.productName} "
        f"(Exp: {p.expiryDate or 'N/A'})"
    ).replace("  ", " ")


# -------------------------
# helpers
# -------------------------
def _date(ev: Event) -> str:
    return ev.timestamp.date().isoformat()


def _num(v: Any) -> str:
    if v is None:
        return "N/A"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def _coordinates(loc: Optional[GeoLocation]) -> Optional[Dict[str, str]]:
    if loc is None or loc.latitude is None or loc.longitude is None:
        return None
    return {"lat": f"{loc.latitude:.6f}", "lng": f"{loc.longitude:.6f}"}
