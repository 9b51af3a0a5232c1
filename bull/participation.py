"""
Bull - Participation Tracker
============================

Keeps, for every player of a game, a weighting factor that the rotation
selector uses to decide who answers next.

The factor mixes two terms:

- recency: the longer since a player last answered, the higher
  (``1 + 0.2 * rounds_since``, capped at 2.0);
- frequency: players who answered more often than the roster average
  are pushed down (``1 - 0.3 * (ratio - 1)``, floored at 0.1).

A player who never answered gets the maximum factor (2.0). After every
recomputation the factors are normalized so they sum to the roster size,
with a floor of 0.1 so nobody drops out of the draw entirely.
"""

from dataclasses import dataclass
from typing import Dict, Iterable
import logging

logger = logging.getLogger(__name__)

NEVER_PLAYED = -1
NEVER_PLAYED_FACTOR = 2.0
MAX_RECENCY = 2.0
RECENCY_STEP = 0.2
FREQUENCY_PENALTY = 0.3
MIN_FACTOR = 0.1


@dataclass
class ParticipationRecord:
    last_round_played: int = NEVER_PLAYED
    times_played: int = 0
    factor: float = 1.0

    @property
    def has_played(self) -> bool:
        return self.last_round_played != NEVER_PLAYED

    def to_dict(self) -> dict:
        return {
            "last_round_played": self.last_round_played,
            "times_played": self.times_played,
            "factor": round(self.factor, 4),
        }


class ParticipationTracker:
    """Per-game selection-fairness bookkeeping. Pure computation, no I/O."""

    def __init__(self):
        self.records: Dict[str, ParticipationRecord] = {}

    def seed(self, player_ids: Iterable[str]):
        """Start fresh: every roster member at factor 1.0, never played."""
        self.records = {pid: ParticipationRecord() for pid in player_ids}

    def ensure(self, player_id: str) -> ParticipationRecord:
        """Record for a player, created on first sight (late joiners)."""
        record = self.records.get(player_id)
        if record is None:
            record = ParticipationRecord()
            self.records[player_id] = record
        return record

    def factor(self, player_id: str) -> float:
        return self.ensure(player_id).factor

    def has_played(self, player_id: str) -> bool:
        return self.ensure(player_id).has_played

    def record_selection(self, player_id: str, round_number: int):
        record = self.ensure(player_id)
        record.last_round_played = round_number
        record.times_played += 1

    def recompute(self, round_number: int):
        """Recompute every factor as of ``round_number`` and normalize."""
        if not self.records:
            return

        average = sum(r.times_played for r in self.records.values()) / len(self.records)

        for record in self.records.values():
            if not record.has_played:
                record.factor = NEVER_PLAYED_FACTOR
                continue
            recency = min(MAX_RECENCY,
                          1.0 + RECENCY_STEP * (round_number - record.last_round_played))
            ratio = record.times_played / max(average, 1)
            frequency = max(MIN_FACTOR, 1.0 - FREQUENCY_PENALTY * (ratio - 1))
            record.factor = recency * frequency

        total = sum(r.factor for r in self.records.values())
        if total > 0:
            normalizer = len(self.records) / total
            for record in self.records.values():
                record.factor = max(MIN_FACTOR, record.factor * normalizer)

        logger.debug(f"Factors after round {round_number}: {self.stats()}")

    def stats(self) -> Dict[str, dict]:
        return {pid: r.to_dict() for pid, r in self.records.items()}
