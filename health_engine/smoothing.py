import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import List, Sequence

from .scoring import clamp_score, round_half_up

logger = logging.getLogger(__name__)

HISTORY_SIZE = 3
MAX_STEP = 15


@dataclass
class SmoothingResult:
    final_score: int
    dampened_score: int
    history: List[int]


def smooth(
    capped_score: int,
    history: Sequence[int],
    size: int = HISTORY_SIZE,
    max_step: int = MAX_STEP,
) -> SmoothingResult:
    """
    Limit the step from the previous score, push the result into a
    bounded history, then blend 70/30 with the history's mean.

    The step limit applies to the value stored in history, before the blend.
    """
    dampened = capped_score
    if history:
        prev = history[-1]
        if abs(capped_score - prev) > max_step:
            dampened = prev + (max_step if capped_score > prev else -max_step)
            logger.info("[HEALTH] Change dampened: %d -> %d (requested %d)", prev, dampened, capped_score)

    updated = list(history) + [dampened]
    if len(updated) > size:
        updated = updated[-size:]

    final = dampened
    if len(updated) >= 2:
        avg = round_half_up(sum(updated) / len(updated))
        # integer weights keep x.5 cases exact
        final = round_half_up((7 * dampened + 3 * avg) / 10)

    return SmoothingResult(final_score=clamp_score(final), dampened_score=dampened, history=updated)


class HealthHistory:
    """Process-owned rolling history of dampened scores."""

    def __init__(self, size: int = HISTORY_SIZE, max_step: int = MAX_STEP):
        self.size = size
        self.max_step = max_step
        self._scores = deque(maxlen=size)
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._scores)

    def snapshot(self) -> List[int]:
        with self._lock:
            return list(self._scores)

    def reset(self):
        with self._lock:
            self._scores.clear()

    def apply(self, capped_score: int) -> SmoothingResult:
        with self._lock:
            result = smooth(capped_score, list(self._scores), self.size, self.max_step)
            self._scores.clear()
            self._scores.extend(result.history)
            return result
