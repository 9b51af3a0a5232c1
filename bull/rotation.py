"""
Bull - Player Rotation
======================

Picks one answerer per team for each round.

The draw is a weighted roulette over the eligible players of a team,
using the factors kept by ``ParticipationTracker``. Two rules come
before the roulette:

1. a team with a single eligible player always gets that player;
2. players who never answered in this game are drawn first, so nobody
   answers twice before every teammate answered once.

The round number is always passed in by the caller. The selector keeps
no counter of its own, so recency can never drift from the real round.
"""

import random
import logging
from typing import Optional, List, Dict

from .errors import NoEligiblePlayers
from .models import Player, Team
from .participation import ParticipationTracker

logger = logging.getLogger(__name__)


class PlayerRotationSelector:

    def __init__(self, tracker: ParticipationTracker, rng: Optional[random.Random] = None):
        self.tracker = tracker
        self._rng = rng or random.Random()

    def select_pair(
        self,
        blue: List[Player],
        red: List[Player],
        round_number: int,
        excluded_player_id: Optional[str] = None
    ) -> Dict[Team, Player]:
        """
        Choose the blue and red answerers for ``round_number``.

        Raises NoEligiblePlayers if a team has nobody left after the
        exclusion. Nothing is recorded unless both picks succeed.
        """
        blue_pool = self._eligible(blue, excluded_player_id)
        red_pool = self._eligible(red, excluded_player_id)
        if not blue_pool:
            raise NoEligiblePlayers("No eligible players on team blue")
        if not red_pool:
            raise NoEligiblePlayers("No eligible players on team red")

        selected = {
            Team.BLUE: self._pick(blue_pool),
            Team.RED: self._pick(red_pool),
        }

        for player in selected.values():
            self.tracker.record_selection(player.id, round_number)
        self.tracker.recompute(round_number)

        logger.info(
            f"Round {round_number}: selected {selected[Team.BLUE].name} (blue) "
            f"and {selected[Team.RED].name} (red)"
        )
        return selected

    @staticmethod
    def _eligible(roster: List[Player], excluded_player_id: Optional[str]) -> List[Player]:
        return [p for p in roster if p.id != excluded_player_id and not p.is_host]

    def _pick(self, pool: List[Player]) -> Player:
        if len(pool) == 1:
            return pool[0]

        fresh = [p for p in pool if not self.tracker.has_played(p.id)]
        if fresh:
            pool = fresh
            if len(pool) == 1:
                return pool[0]

        return self._weighted_choice(pool)

    def _weighted_choice(self, pool: List[Player]) -> Player:
        weights = [self.tracker.factor(p.id) for p in pool]
        total = sum(weights)
        draw = self._rng.random()

        cumulative = 0.0
        for player, weight in zip(pool, weights):
            cumulative += weight / total
            if cumulative >= draw:
                return player
        # Floating point drift
        return pool[-1]
