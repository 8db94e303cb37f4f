# herbtrace/services/ledger/quality.py
"""
The one place quality thresholds live.

A test PASSES when purity >= 95 % and pesticide residue <= 0.1 ppm.
The same verdict drives both the status label shown with a test and the
"Premium Quality Certified" badge on the finished product.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from herbtrace.models.ledger.event_models import QualityTestPayload

MIN_PURITY_PCT = 95.0
MAX_PESTICIDE_PPM = 0.1

STATUS_PASSED = "PASSED"
STATUS_ATTENTION = "ATTENTION REQUIRED"
PREMIUM_CERTIFICATION = "Premium Quality Certified"


@dataclass(frozen=True)
class QualityAssessment:
    passed: bool
    status: str
    purity_ok: bool
    pesticide_ok: bool

    @property
    def certification(self) -> Optional[str]:
        return PREMIUM_CERTIFICATION if self.passed else None


def assess_quality(payload: QualityTestPayload) -> QualityAssessment:
    purity_ok = payload.purity >= MIN_PURITY_PCT
    pesticide_ok = payload.pesticideLevel <= MAX_PESTICIDE_PPM
    passed = purity_ok and pesticide_ok
    return QualityAssessment(
        passed=passed,
        status=STATUS_PASSED if passed else STATUS_ATTENTION,
        purity_ok=purity_ok,
        pesticide_ok=pesticide_ok,
    )
