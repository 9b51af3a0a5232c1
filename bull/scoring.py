"""
Bull - Scoring
==============

Turns the votes of a closed round into points.

- A vote for the correct option earns ``points_correct_answer`` for the
  voter and for the voter's team.
- A bluff author earns ``points_confuse_opponent`` for every member of
  the *opposing* team who voted for the bluff. Teammates who fall for it
  do not count, and neither does the author's own vote.

Both rewards are independent: an author who votes correctly and fools
two opponents collects all three amounts.
"""

import time
import logging
from typing import Callable, Dict, List, Optional

from .errors import InvalidPhase
from .models import (
    GameSettings, OriginKind, Player, Round, RoundResult, RoundStatus, TeamScores
)

logger = logging.getLogger(__name__)

RosterLookup = Callable[[str], Optional[Player]]


class ScoringEngine:

    def close_round(
        self,
        round_: Round,
        settings: GameSettings,
        roster_lookup: RosterLookup,
        current_scores: Optional[TeamScores] = None,
        now: Optional[float] = None
    ) -> RoundResult:
        """
        Score ``round_`` and freeze it.

        Player scores are updated in place through ``roster_lookup``; the
        returned result carries the new team totals, starting from
        ``current_scores``.
        """
        correct = round_.correct_option
        if correct is None:
            raise InvalidPhase("Round has no voting options")

        team_scores = current_scores.copy() if current_scores else TeamScores()
        points: Dict[str, int] = {}
        votes: Dict[str, dict] = {}

        def award(player: Player, amount: int):
            player.score += amount
            points[player.id] = points.get(player.id, 0) + amount
            if player.team is not None:
                team_scores.add(player.team, amount)

        for voter_id, option_id in round_.votes.items():
            is_correct = option_id == correct.id
            votes[voter_id] = {"option_id": option_id, "correct": is_correct}
            voter = roster_lookup(voter_id)
            if voter is None:
                continue
            points.setdefault(voter_id, 0)
            if is_correct:
                award(voter, settings.points_correct_answer)

        confusion: Dict[str, List[str]] = {}
        for option in round_.options:
            if option.origin.kind is not OriginKind.PLAYER:
                continue
            author = roster_lookup(option.origin.player_id)
            if author is None or author.team is None:
                continue

            fooled = []
            for voter_id, option_id in round_.votes.items():
                if option_id != option.id or voter_id == author.id:
                    continue
                voter = roster_lookup(voter_id)
                if voter is not None and voter.team is author.team.opponent:
                    fooled.append(voter_id)

            if fooled:
                award(author, len(fooled) * settings.points_confuse_opponent)
                confusion[author.id] = fooled
                logger.debug(f"{author.name} fooled {len(fooled)} opponent(s)")

        round_.points_awarded = points
        round_.status = RoundStatus.FINISHED
        round_.finished_at = now if now is not None else time.time()

        return RoundResult(
            round_number=round_.number,
            correct_option_id=correct.id,
            correct_answer=correct.text,
            votes=votes,
            points_awarded=points,
            team_scores=team_scores,
            confusion_results=confusion,
        )
