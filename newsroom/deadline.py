from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

# Fractions of the pass budget after which each stage is skipped.
FETCH = 0.6
PROCESS = 0.7
TOPICS = 0.85
SUMMARY = 0.95


@dataclass(slots=True)
class Deadline:
    # checkpoints are fractions of budget; a step already running is not interrupted
    budget: float
    clock: Callable[[], float] = time.monotonic
    started_at: float = field(init=False)

    def __post_init__(self) -> None:
        self.started_at = self.clock()

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def exceeded(self, checkpoint: float = 1.0) -> bool:
        return self.elapsed() >= checkpoint * self.budget
