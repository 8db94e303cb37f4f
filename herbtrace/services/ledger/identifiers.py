# herbtrace/services/ledger/identifiers.py
from __future__ import annotations

import random
import time
from typing import Callable, Optional, Union

from herbtrace.models.ledger.event_models import EventType


class IdentifierGenerator:
    """
    Batch / event ids in the shape printed on every label:
      HERB-<epochMillis>-<rand4>
      <TYPE>-<epochMillis>-<rand4>
    Uniqueness is probabilistic; nothing checks for collisions.
    """

    BATCH_PREFIX = "HERB"

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        rng: Optional[random.Random] = None,
    ):
        self._clock = clock or time.time
        self._rng = rng or random.Random()

    def _millis(self) -> int:
        return int(self._clock() * 1000)

    def _rand4(self) -> int:
        return self._rng.randint(0, 9999)

    def new_batch_id(self) -> str:
        return f"{self.BATCH_PREFIX}-{self._millis()}-{self._rand4()}"

    def new_event_id(self, event_type: Union[EventType, str]) -> str:
        tag = event_type.value if isinstance(event_type, EventType) else str(event_type)
        return f"{tag}-{self._millis()}-{self._rand4()}"
