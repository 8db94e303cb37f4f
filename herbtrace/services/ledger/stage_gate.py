# herbtrace/services/ledger/stage_gate.py
"""
Stage gate: decides whether an event type may extend a batch in its
current stage.

    NONE           --COLLECTION-->    COLLECTED
    COLLECTED      --QUALITY_TEST-->  QUALITY_TESTED
    QUALITY_TESTED --PROCESSING-->    PROCESSED
    PROCESSED      --MANUFACTURING--> MANUFACTURED (terminal)

Everything else is rejected. Pure: no I/O, no state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from herbtrace.errors import (
    DuplicateStageError,
    LedgerError,
    OutOfOrderError,
    TerminalBatchError,
)
from herbtrace.models.ledger.event_models import (
    STAGE_FOR_EVENT,
    STAGE_ORDER,
    EventType,
    Stage,
)


class RejectReason(str, Enum):
    DUPLICATE_STAGE = "DuplicateStage"
    TERMINAL_BATCH = "TerminalBatch"
    OUT_OF_ORDER = "OutOfOrder"


TRANSITIONS: Dict[Stage, EventType] = {
    Stage.NONE: EventType.COLLECTION,
    Stage.COLLECTED: EventType.QUALITY_TEST,
    Stage.QUALITY_TESTED: EventType.PROCESSING,
    Stage.PROCESSED: EventType.MANUFACTURING,
}

_ERRORS = {
    RejectReason.DUPLICATE_STAGE: DuplicateStageError,
    RejectReason.TERMINAL_BATCH: TerminalBatchError,
    RejectReason.OUT_OF_ORDER: OutOfOrderError,
}


def _label(event_type: EventType) -> str:
    return event_type.value.lower().replace("_", " ")


@dataclass(frozen=True)
class GateDecision:
    accepted: bool
    current_stage: Stage
    event_type: EventType
    next_stage: Optional[Stage] = None
    reason: Optional[RejectReason] = None
    detail: str = ""

    def to_error(self) -> Optional[LedgerError]:
        if self.accepted or self.reason is None:
            return None
        return _ERRORS[self.reason](
            self.detail,
            stage=self.current_stage.value,
            eventType=self.event_type.value,
        )

    def raise_for_reject(self) -> None:
        err = self.to_error()
        if err is not None:
            raise err

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "currentStage": self.current_stage.value,
            "eventType": self.event_type.value,
            "nextStage": self.next_stage.value if self.next_stage else None,
            "reason": self.reason.value if self.reason else None,
            "detail": self.detail,
        }


class StageGate:

    @staticmethod
    def expected_event(current_stage: Stage) -> Optional[EventType]:
        return TRANSITIONS.get(Stage(current_stage))

    @staticmethod
    def can_transition(
        current_stage: Union[Stage, str],
        event_type: Union[EventType, str],
    ) -> GateDecision:
        stage = Stage(current_stage)
        et = EventType(event_type)
        target = STAGE_FOR_EVENT[et]

        if stage == Stage.MANUFACTURED:
            return GateDecision(
                accepted=False,
                current_stage=stage,
                event_type=et,
                reason=RejectReason.TERMINAL_BATCH,
                detail="Batch is completed after manufacturing. No more events can be added.",
            )

        if STAGE_ORDER.index(target) <= STAGE_ORDER.index(stage):
            return GateDecision(
                accepted=False,
                current_stage=stage,
                event_type=et,
                reason=RejectReason.DUPLICATE_STAGE,
                detail=f"This batch already has a {_label(et)} event.",
            )

        expected = TRANSITIONS[stage]
        if et != expected:
            return GateDecision(
                accepted=False,
                current_stage=stage,
                event_type=et,
                reason=RejectReason.OUT_OF_ORDER,
                detail=f"Cannot record {_label(et)} before {_label(expected)}.",
            )

        return GateDecision(accepted=True, current_stage=stage, event_type=et, next_stage=target)
