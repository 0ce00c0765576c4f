"""The scheduling capability shared by SM-2 and FSRS.

Both algorithms keep their own state shape on ``MemoryCard``; callers pick
one by the card's ``algorithm`` tag and only ever talk to it through
``new_card`` and ``process_outcome``.
"""

import random
from datetime import datetime
from typing import Any, Protocol

from backend.config import settings
from backend.srs.fsrs import FSRSParams, FSRSScheduler
from backend.srs.memory import Algorithm, ItemId, MemoryCard
from backend.srs.sm2 import SM2Scheduler


class Scheduler(Protocol):
    algorithm: Algorithm

    def new_card(self, item_id: ItemId, now: datetime | None = None) -> MemoryCard: ...

    def process_outcome(
        self,
        card: MemoryCard,
        signal: Any,
        now: datetime | None = None,
        rng: random.Random | None = None,
    ) -> MemoryCard: ...


def parse_algorithm(value: "str | Algorithm | None") -> Algorithm:
    """Resolve an algorithm tag, falling back to the configured default."""
    if isinstance(value, Algorithm):
        return value
    try:
        return Algorithm(value or settings.default_algorithm)
    except ValueError:
        raise ValueError(f"Unknown algorithm {value!r}; expected 'sm2' or 'fsrs'") from None


def get_scheduler(
    algorithm: "str | Algorithm | None" = None,
    fsrs_params: FSRSParams | None = None,
    rng: random.Random | None = None,
) -> Scheduler:
    """Return a scheduler for the given algorithm tag.

    ``rng`` seeds FSRS interval fuzz; SM-2 is deterministic and ignores it.
    """
    if parse_algorithm(algorithm) is Algorithm.FSRS:
        return FSRSScheduler(fsrs_params or FSRSParams.from_settings(), rng)
    return SM2Scheduler()
