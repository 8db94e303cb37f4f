# herbtrace/models/traceability/traceability_models.py
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional


@dataclass
class OriginBlock:
    herbSpecies: str = ""
    collector: str = ""
    harvestLocation: str = ""
    harvestDate: str = ""
    weight: Optional[float] = None          # grams
    qualityGrade: str = ""
    pricePerUnit: Optional[float] = None
    totalPrice: Optional[float] = None
    coordinates: Optional[Dict[str, str]] = None


@dataclass
class EnvironmentBlock:
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    conditions: str = ""
    windSpeed: Optional[float] = None


@dataclass
class QualityBlock:
    purity: str = ""            # "98.5%"
    moistureContent: str = ""
    pesticideLevel: str = ""    # "0.05 ppm"
    testMethod: str = ""
    testDate: str = ""
    labName: str = ""
    status: str = ""            # PASSED / ATTENTION REQUIRED
    customParameters: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ProcessingBlock:
    method: str = ""
    location: str = ""
    temperature: str = ""       # "60°C"
    yieldGrams: Optional[float] = None
    yieldEfficiency: str = ""   # "85.0%"
    duration: str = ""
    processedOn: str = ""


@dataclass
class ProductBlock:
    productName: str = ""
    brandName: str = ""
    productType: str = ""
    quantity: str = ""          # "100 capsules"
    manufacturer: str = ""
    manufacturingDate: str = ""
    manufacturingLocation: str = ""
    expiryDate: str = ""
    certifications: List[str] = field(default_factory=list)


@dataclass
class JourneyStep:
    stage: str = ""             # "QUALITY TEST"
    eventId: str = ""
    participant: str = ""
    organization: str = ""
    location: str = ""
    coordinates: Optional[Dict[str, str]] = None
    date: str = ""
    time: str = ""
    details: str = ""
    externalRef: Optional[str] = None
    integrityTag: str = ""
    integrityOk: bool = False   # advisory only


@dataclass
class TraceabilityViewModel:
    batchId: str = ""
    currentStage: str = ""
    isTerminal: bool = False
    authenticity: str = "VERIFIED"
    matchedBy: str = ""
    origin: Optional[OriginBlock] = None
    environment: Optional[EnvironmentBlock] = None
    quality: Optional[QualityBlock] = None
    processing: Optional[ProcessingBlock] = None
    product: ProductBlock = field(default_factory=ProductBlock)
    journey: List[JourneyStep] = field(default_factory=list)

    debug: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
