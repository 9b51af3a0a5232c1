"""
Bull - Game State Machine
=========================

Per-lobby round and phase progression.

    waiting -> writing -> voting -> results -> (writing | finished)

Advancing is driven by the host (or by the optional auto-advance timer
in the bridge); ``all_answers_in`` and ``all_votes_in`` are only
predicates the caller may look at.

Every operation checks all of its preconditions before it mutates
anything, so a rejected action never leaves a half-applied change.
"""

import random
import time
import uuid
import logging
from typing import Optional, List, Callable

from .config import Config
from .errors import (
    AlreadySubmitted, CannotStart, GameAlreadyStarted, InvalidAnswer,
    InvalidOption, InvalidPhase, InvalidRound, NotSelectedPlayer, PlayerNotFound
)
from .models import (
    GamePhase, GameState, Lobby, LobbyStatus, OptionOrigin, OriginKind,
    Round, RoundOption, RoundResult, RoundStatus, Team
)
from .questions import QuestionBank
from .rotation import PlayerRotationSelector
from .scoring import ScoringEngine
from .utils import shuffled

logger = logging.getLogger(__name__)

OPTIONS_PER_ROUND = 4
FILLER_ANSWERS = ["Nobody knows", "None of these", "All of these"]


class GameStateMachine:

    def __init__(
        self,
        questions: Optional[QuestionBank] = None,
        config=Config,
        scoring: Optional[ScoringEngine] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time
    ):
        self.questions = questions if questions is not None else QuestionBank()
        self.config = config
        self.scoring = scoring or ScoringEngine()
        self._rng = rng or random.Random()
        self._clock = clock

    # === Helpers ===

    @staticmethod
    def _game(lobby: Lobby) -> GameState:
        if lobby.game_state is None:
            raise InvalidPhase("No game in progress")
        return lobby.game_state

    def _require_phase(self, lobby: Lobby, *phases: GamePhase) -> GameState:
        game = self._game(lobby)
        if game.phase not in phases:
            raise InvalidPhase(
                f"Not allowed during '{game.phase.value}' phase"
            )
        return game

    def _live_round(self, game: GameState) -> Round:
        current = game.get_current_round()
        if current is None:
            raise InvalidPhase("No round in progress")
        return current

    def current_round(self, lobby: Lobby) -> Optional[Round]:
        if lobby.game_state is None:
            return None
        return lobby.game_state.get_current_round()

    # === Lifecycle ===

    def start(self, lobby: Lobby) -> GameState:
        if lobby.status is not LobbyStatus.WAITING:
            raise GameAlreadyStarted()
        if not lobby.teams[Team.BLUE] or not lobby.teams[Team.RED]:
            raise CannotStart("Both teams need at least one player")

        game = GameState(total_rounds=lobby.settings.max_rounds, started_at=self._clock())
        game.participation.seed(p.id for p in lobby.players)
        for player in lobby.players:
            player.score = 0
        lobby.game_state = game
        lobby.status = LobbyStatus.PLAYING
        lobby.touch(self._clock())
        logger.info(f"Game started in lobby {lobby.code} ({game.total_rounds} rounds)")
        return game

    def begin_round(self, lobby: Lobby, number: int) -> Round:
        game = self._require_phase(lobby, GamePhase.WAITING, GamePhase.RESULTS)
        if number < 1 or number > game.total_rounds:
            raise InvalidRound(f"Round {number} is outside 1..{game.total_rounds}")
        last = game.get_current_round()
        if last is not None and number <= last.number:
            raise InvalidRound(f"Round {number} was already played")

        question = self.questions.question_for_round(number)
        selector = PlayerRotationSelector(game.participation, self._rng)
        selected = selector.select_pair(
            lobby.team_members(Team.BLUE),
            lobby.team_members(Team.RED),
            number,
            excluded_player_id=lobby.host_id
        )

        round_ = Round(
            number=number,
            question=question,
            selected_players={team: player.id for team, player in selected.items()},
            started_at=self._clock(),
        )
        game.rounds.append(round_)
        game.current_round = number
        game.phase = GamePhase.WRITING
        lobby.touch(self._clock())
        logger.info(f"Round {number} started in lobby {lobby.code}")
        return round_

    def is_finished(self, lobby: Lobby) -> bool:
        game = lobby.game_state
        if game is None:
            return False
        current = game.get_current_round()
        return (current is not None
                and game.current_round >= game.total_rounds
                and current.status is RoundStatus.FINISHED)

    def finish(self, lobby: Lobby) -> dict:
        """End the game. Blue wins an exact tie; ``is_tie`` reports it."""
        game = self._game(lobby)
        if game.phase is GamePhase.FINISHED:
            raise InvalidPhase("Game already finished")

        blue, red = game.scores.blue, game.scores.red
        game.winner = Team.RED if red > blue else Team.BLUE
        game.is_tie = blue == red
        game.phase = GamePhase.FINISHED
        game.finished_at = self._clock()
        lobby.status = LobbyStatus.FINISHED
        lobby.touch(self._clock())
        logger.info(
            f"Game finished in lobby {lobby.code}: {game.winner.value} wins "
            f"({blue} x {red})"
        )
        return {
            "winner": game.winner.value,
            "is_tie": game.is_tie,
            "final_scores": game.scores.to_dict(),
            "ranking": [p.to_dict() for p in
                        sorted(lobby.players, key=lambda p: p.score, reverse=True)],
        }

    def reset(self, lobby: Lobby):
        """Drop the game and take the lobby back to the waiting room."""
        lobby.game_state = None
        lobby.status = LobbyStatus.WAITING
        for player in lobby.players:
            player.score = 0
            player.is_ready = False
        lobby.touch(self._clock())
        logger.info(f"Game reset in lobby {lobby.code}")

    # === Writing phase ===

    def submit_answer(self, lobby: Lobby, player_id: str, text: str) -> Round:
        game = self._require_phase(lobby, GamePhase.WRITING)
        round_ = self._live_round(game)
        if not round_.is_selected(player_id):
            raise NotSelectedPlayer()
        if player_id in round_.player_answers:
            raise AlreadySubmitted("Answer already submitted")

        answer = (text or '').strip()
        if len(answer) < self.config.MIN_ANSWER_LENGTH:
            raise InvalidAnswer("Answer cannot be empty", code='ANSWER_TOO_SHORT')
        if len(answer) > self.config.MAX_ANSWER_LENGTH:
            raise InvalidAnswer(
                f"Answer must be at most {self.config.MAX_ANSWER_LENGTH} characters",
                code='ANSWER_TOO_LONG'
            )
        lowered = answer.lower()
        if lowered in (round_.question.correct_answer.strip().lower(),
                       round_.question.incorrect_answer.strip().lower()):
            raise InvalidAnswer("Answer must differ from the existing options")

        round_.player_answers[player_id] = answer
        lobby.touch(self._clock())
        logger.debug(f"Answer received from {player_id} in lobby {lobby.code}")
        return round_

    def mark_ready(self, lobby: Lobby, player_id: str) -> Round:
        game = self._require_phase(lobby, GamePhase.WRITING)
        round_ = self._live_round(game)
        if not round_.is_selected(player_id):
            raise NotSelectedPlayer()
        if player_id not in round_.player_answers:
            raise InvalidPhase("Submit an answer before marking ready")

        round_.players_ready[player_id] = True
        lobby.touch(self._clock())
        return round_

    def all_answers_in(self, lobby: Lobby) -> bool:
        round_ = self.current_round(lobby)
        if round_ is None:
            return False
        return all(pid in round_.player_answers for pid in round_.selected_players.values())

    def all_ready(self, lobby: Lobby) -> bool:
        round_ = self.current_round(lobby)
        if round_ is None:
            return False
        return all(round_.players_ready.get(pid) for pid in round_.selected_players.values())

    # === Voting phase ===

    def _build_options(self, round_: Round) -> List[RoundOption]:
        question = round_.question
        options = [
            RoundOption(uuid.uuid4().hex, question.correct_answer,
                        OptionOrigin(OriginKind.CORRECT)),
            RoundOption(uuid.uuid4().hex, question.incorrect_answer,
                        OptionOrigin(OriginKind.INCORRECT)),
        ]
        for player_id in round_.selected_players.values():
            if player_id in round_.player_answers:
                options.append(RoundOption(uuid.uuid4().hex, round_.player_answers[player_id],
                                           OptionOrigin(OriginKind.PLAYER, player_id)))

        fillers = iter(FILLER_ANSWERS)
        while len(options) < OPTIONS_PER_ROUND:
            options.append(RoundOption(uuid.uuid4().hex, next(fillers),
                                       OptionOrigin(OriginKind.FILLER)))
        return options[:OPTIONS_PER_ROUND]

    def prepare_voting_options(self, lobby: Lobby) -> List[RoundOption]:
        game = self._require_phase(lobby, GamePhase.WRITING)
        round_ = self._live_round(game)

        options = shuffled(self._build_options(round_), self._rng)
        for position, option in enumerate(options, start=1):
            option.position = position

        round_.options = options
        round_.status = RoundStatus.VOTING
        round_.voting_started_at = self._clock()
        game.phase = GamePhase.VOTING
        lobby.touch(self._clock())
        logger.info(f"Voting opened for round {round_.number} in lobby {lobby.code}")
        return options

    def submit_vote(self, lobby: Lobby, player_id: str, option_id: str) -> Round:
        game = self._require_phase(lobby, GamePhase.VOTING)
        round_ = self._live_round(game)
        if lobby.get_player(player_id) is None:
            raise PlayerNotFound("Only players can vote")
        if round_.get_option(option_id) is None:
            raise InvalidOption()
        if player_id in round_.votes:
            raise AlreadySubmitted("Vote already cast")

        round_.votes[player_id] = option_id
        lobby.touch(self._clock())
        logger.debug(f"Vote from {player_id} in lobby {lobby.code}")
        return round_

    def all_votes_in(self, lobby: Lobby) -> bool:
        """Disconnected players are left out of the quorum."""
        round_ = self.current_round(lobby)
        if round_ is None or round_.status is not RoundStatus.VOTING:
            return False
        return len(round_.votes) >= len(lobby.connected_players())

    def close_round(self, lobby: Lobby) -> RoundResult:
        game = self._require_phase(lobby, GamePhase.VOTING)
        round_ = self._live_round(game)

        result = self.scoring.close_round(
            round_, lobby.settings, lobby.get_player, game.scores, now=self._clock()
        )
        game.scores = result.team_scores
        game.phase = GamePhase.RESULTS
        lobby.touch(self._clock())
        logger.info(
            f"Round {round_.number} closed in lobby {lobby.code}: "
            f"blue {game.scores.blue} x red {game.scores.red}"
        )
        return result
