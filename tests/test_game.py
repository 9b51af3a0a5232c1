"""Tests for the game state machine."""
import pytest

from bull.errors import (
    AlreadySubmitted, CannotStart, GameAlreadyStarted, InvalidAnswer, InvalidOption,
    InvalidPhase, InvalidRound, NoEligiblePlayers, NotSelectedPlayer, PlayerNotFound
)
from bull.game import GameStateMachine
from bull.lobbies import LobbyRegistry
from bull.models import GamePhase, LobbyStatus, OriginKind, RoundStatus, Team


@pytest.fixture
def started(machine, ready_lobby):
    ready_lobby.settings.max_rounds = 3
    machine.start(ready_lobby)
    return ready_lobby


@pytest.fixture
def writing(machine, started):
    machine.begin_round(started, 1)
    return started


def selected(lobby, team):
    return lobby.game_state.get_current_round().selected_players[team]


def answer_both(machine, lobby):
    machine.submit_answer(lobby, selected(lobby, Team.BLUE), "Blue bluff")
    machine.submit_answer(lobby, selected(lobby, Team.RED), "Red bluff")


def option_of(lobby, kind, player_id=None):
    for option in lobby.game_state.get_current_round().options:
        if option.origin.kind is kind and option.origin.player_id == player_id:
            return option
    raise AssertionError(f"no {kind} option")


# === start / begin_round ===

def test_start(machine, ready_lobby):
    game = machine.start(ready_lobby)

    assert ready_lobby.status is LobbyStatus.PLAYING
    assert game.phase is GamePhase.WAITING
    assert game.current_round == 1
    assert game.total_rounds == ready_lobby.settings.max_rounds
    assert game.scores.to_dict() == {"blue": 0, "red": 0}
    assert set(game.participation.records) == {p.id for p in ready_lobby.players}


def test_start_twice(machine, started):
    with pytest.raises(GameAlreadyStarted):
        machine.start(started)


def test_start_needs_both_teams(machine, registry):
    lobby, _ = registry.create("Ana")
    _, beto = registry.join(lobby.code, "Beto")
    registry.select_team(lobby.code, beto.id, "blue")

    with pytest.raises(CannotStart):
        machine.start(lobby)
    assert lobby.status is LobbyStatus.WAITING


def test_begin_round(machine, started):
    round_ = machine.begin_round(started, 1)
    game = started.game_state

    assert game.phase is GamePhase.WRITING
    assert game.get_current_round() is round_
    assert round_.question.correct_answer == "3"
    blue_id = round_.selected_players[Team.BLUE]
    red_id = round_.selected_players[Team.RED]
    assert started.get_player(blue_id).team is Team.BLUE
    assert started.get_player(red_id).team is Team.RED
    assert game.participation.records[blue_id].last_round_played == 1


def test_begin_round_checks_number(machine, started):
    with pytest.raises(InvalidRound):
        machine.begin_round(started, 4)
    with pytest.raises(InvalidRound):
        machine.begin_round(started, 0)
    assert started.game_state.rounds == []


def test_begin_round_only_between_rounds(machine, writing):
    with pytest.raises(InvalidPhase):
        machine.begin_round(writing, 2)


def test_begin_round_without_game(machine, ready_lobby):
    with pytest.raises(InvalidPhase):
        machine.begin_round(ready_lobby, 1)


def test_promoted_host_is_not_selected(machine, registry):
    lobby, host_id = registry.create("Ana")
    _, beto = registry.join(lobby.code, "Beto")
    _, davi = registry.join(lobby.code, "Davi")
    _, carla = registry.join(lobby.code, "Carla")
    registry.select_team(lobby.code, beto.id, "blue")
    registry.select_team(lobby.code, davi.id, "blue")
    registry.select_team(lobby.code, carla.id, "red")
    machine.start(lobby)
    registry.leave(lobby.code, host_id)
    assert lobby.host_id == beto.id

    for number in range(1, 4):
        round_ = machine.begin_round(lobby, number)
        assert round_.selected_players[Team.BLUE] == davi.id
        lobby.game_state.phase = GamePhase.RESULTS


def test_team_without_eligible_players(machine, registry):
    lobby, host_id = registry.create("Ana")
    _, beto = registry.join(lobby.code, "Beto")
    _, carla = registry.join(lobby.code, "Carla")
    registry.select_team(lobby.code, beto.id, "blue")
    registry.select_team(lobby.code, carla.id, "red")
    machine.start(lobby)
    registry.leave(lobby.code, host_id)  # Beto is promoted, blue has nobody left

    with pytest.raises(NoEligiblePlayers):
        machine.begin_round(lobby, 1)
    assert lobby.game_state.phase is GamePhase.WAITING


# === writing ===

def test_submit_answer(machine, writing):
    blue_id = selected(writing, Team.BLUE)

    round_ = machine.submit_answer(writing, blue_id, "  Forty two  ")

    assert round_.player_answers[blue_id] == "Forty two"


def test_only_selected_players_answer(machine, writing):
    others = [p.id for p in writing.players
              if not writing.game_state.get_current_round().is_selected(p.id)]
    with pytest.raises(NotSelectedPlayer):
        machine.submit_answer(writing, others[0], "nope")


def test_answer_only_once(machine, writing):
    blue_id = selected(writing, Team.BLUE)
    machine.submit_answer(writing, blue_id, "first")
    with pytest.raises(AlreadySubmitted):
        machine.submit_answer(writing, blue_id, "second")
    assert writing.game_state.get_current_round().player_answers[blue_id] == "first"


@pytest.mark.parametrize("text, code", [
    ("", "ANSWER_TOO_SHORT"),
    ("   ", "ANSWER_TOO_SHORT"),
    ("x" * 121, "ANSWER_TOO_LONG"),
    (" 3 ", "VALIDATION_ERROR"),
    ("2", "VALIDATION_ERROR"),
])
def test_rejected_answers(machine, writing, text, code):
    blue_id = selected(writing, Team.BLUE)
    with pytest.raises(InvalidAnswer) as exc:
        machine.submit_answer(writing, blue_id, text)
    assert exc.value.code == code
    assert writing.game_state.get_current_round().player_answers == {}


def test_answer_matching_is_case_insensitive(machine, started):
    machine.begin_round(started, 2)  # correct answer "BackRub"
    with pytest.raises(InvalidAnswer):
        machine.submit_answer(started, selected(started, Team.BLUE), "backrub")


def test_answer_outside_writing(machine, started):
    with pytest.raises(InvalidPhase):
        machine.submit_answer(started, started.players[0].id, "hello")


def test_ready_requires_answer(machine, writing):
    blue_id = selected(writing, Team.BLUE)
    with pytest.raises(InvalidPhase):
        machine.mark_ready(writing, blue_id)

    machine.submit_answer(writing, blue_id, "bluff")
    machine.mark_ready(writing, blue_id)
    machine.mark_ready(writing, blue_id)
    assert writing.game_state.get_current_round().players_ready[blue_id]


def test_all_answers_in_and_all_ready(machine, writing):
    assert not machine.all_answers_in(writing)
    answer_both(machine, writing)
    assert machine.all_answers_in(writing)

    assert not machine.all_ready(writing)
    machine.mark_ready(writing, selected(writing, Team.BLUE))
    assert not machine.all_ready(writing)
    machine.mark_ready(writing, selected(writing, Team.RED))
    assert machine.all_ready(writing)


# === voting options ===

@pytest.mark.parametrize("answers", [0, 1, 2])
def test_voting_options(machine, writing, answers):
    ids = [selected(writing, Team.BLUE), selected(writing, Team.RED)][:answers]
    for i, pid in enumerate(ids):
        machine.submit_answer(writing, pid, f"bluff {i}")

    options = machine.prepare_voting_options(writing)

    assert len(options) == 4
    kinds = [o.origin.kind for o in options]
    assert kinds.count(OriginKind.CORRECT) == 1
    assert kinds.count(OriginKind.INCORRECT) == 1
    assert kinds.count(OriginKind.PLAYER) == answers
    assert kinds.count(OriginKind.FILLER) == 2 - answers
    assert sorted(o.position for o in options) == [1, 2, 3, 4]
    assert len({o.id for o in options}) == 4
    assert writing.game_state.phase is GamePhase.VOTING
    assert writing.game_state.get_current_round().status is RoundStatus.VOTING


def test_options_only_from_writing(machine, started):
    with pytest.raises(InvalidPhase):
        machine.prepare_voting_options(started)


# === voting ===

@pytest.fixture
def voting(machine, writing):
    answer_both(machine, writing)
    machine.prepare_voting_options(writing)
    return writing


def test_everyone_votes_once(machine, voting):
    correct = option_of(voting, OriginKind.CORRECT)
    for player in voting.players:
        machine.submit_vote(voting, player.id, correct.id)

    with pytest.raises(AlreadySubmitted):
        machine.submit_vote(voting, voting.players[0].id, correct.id)
    assert machine.all_votes_in(voting)


def test_vote_for_unknown_option(machine, voting):
    with pytest.raises(InvalidOption):
        machine.submit_vote(voting, voting.players[0].id, "nope")


def test_host_and_strangers_cannot_vote(machine, voting):
    correct = option_of(voting, OriginKind.CORRECT)
    with pytest.raises(PlayerNotFound):
        machine.submit_vote(voting, voting.host_id, correct.id)
    with pytest.raises(PlayerNotFound):
        machine.submit_vote(voting, "stranger", correct.id)


def test_vote_outside_voting(machine, writing):
    with pytest.raises(InvalidPhase):
        machine.submit_vote(writing, writing.players[0].id, "x")


def test_disconnected_players_leave_the_quorum(machine, voting):
    correct = option_of(voting, OriginKind.CORRECT)
    for player in voting.players[:3]:
        machine.submit_vote(voting, player.id, correct.id)
    assert not machine.all_votes_in(voting)

    voting.players[3].is_connected = False
    assert machine.all_votes_in(voting)


def test_close_round(machine, voting):
    correct = option_of(voting, OriginKind.CORRECT)
    blue_bluff = option_of(voting, OriginKind.PLAYER, selected(voting, Team.BLUE))
    red_players = [p for p in voting.players if p.team is Team.RED]
    blue_players = [p for p in voting.players if p.team is Team.BLUE]
    for player in blue_players:
        machine.submit_vote(voting, player.id, correct.id)
    for player in red_players:
        machine.submit_vote(voting, player.id, blue_bluff.id)

    result = machine.close_round(voting)
    game = voting.game_state

    assert game.phase is GamePhase.RESULTS
    assert game.get_current_round().status is RoundStatus.FINISHED
    assert game.scores.blue == 2 * 100 + 2 * 150
    assert game.scores.red == 0
    assert result.team_scores.to_dict() == game.scores.to_dict()
    assert result.confusion_results[selected(voting, Team.BLUE)] == [p.id for p in red_players]


def test_close_round_only_from_voting(machine, writing):
    with pytest.raises(InvalidPhase):
        machine.close_round(writing)


# === finish / reset ===

def play_round(machine, lobby, number, voter_team=None):
    machine.begin_round(lobby, number)
    answer_both(machine, lobby)
    machine.prepare_voting_options(lobby)
    correct = option_of(lobby, OriginKind.CORRECT)
    for player in lobby.players:
        if voter_team is None or player.team is voter_team:
            machine.submit_vote(lobby, player.id, correct.id)
    return machine.close_round(lobby)


def test_full_game(machine, started):
    awarded = {Team.BLUE: 0, Team.RED: 0}
    for number in range(1, 4):
        assert not machine.is_finished(started)
        result = play_round(machine, started, number, voter_team=Team.RED)
        for pid, points in result.points_awarded.items():
            awarded[started.get_player(pid).team] += points

    assert machine.is_finished(started)
    outcome = machine.finish(started)

    assert outcome["winner"] == "red"
    assert not outcome["is_tie"]
    assert outcome["final_scores"] == {"blue": awarded[Team.BLUE], "red": awarded[Team.RED]}
    assert started.status is LobbyStatus.FINISHED
    assert started.game_state.phase is GamePhase.FINISHED
    assert sum(p.score for p in started.players) == sum(awarded.values())
    assert len(started.game_state.rounds) == 3


def test_tie_goes_to_blue(machine, started):
    play_round(machine, started, 1)
    outcome = machine.finish(started)

    assert started.game_state.scores.blue == started.game_state.scores.red
    assert outcome["winner"] == "blue"
    assert outcome["is_tie"]


def test_finish_only_once(machine, started):
    machine.finish(started)
    with pytest.raises(InvalidPhase):
        machine.finish(started)


def test_reset(machine, started):
    play_round(machine, started, 1, voter_team=Team.BLUE)

    machine.reset(started)

    assert started.game_state is None
    assert started.status is LobbyStatus.WAITING
    assert all(p.score == 0 and not p.is_ready for p in started.players)
    assert machine.current_round(started) is None


def test_game_activity_uses_injected_clock(bank, config):
    now = [5000.0]
    registry = LobbyRegistry(config=config, clock=lambda: now[0])
    machine = GameStateMachine(bank, config, clock=lambda: now[0])
    lobby, _ = registry.create("Ana")
    for name, team in [("Beto", Team.BLUE), ("Carla", Team.RED)]:
        _, player = registry.join(lobby.code, name)
        registry.select_team(lobby.code, player.id, team)
        registry.toggle_ready(lobby.code, player.id)

    machine.start(lobby)
    now[0] += 30
    round_ = play_round(machine, lobby, 1)

    assert lobby.game_state.started_at == 5000.0
    assert lobby.last_activity_at == 5030.0
    assert lobby.game_state.get_current_round().started_at == 5030.0
    assert lobby.game_state.get_current_round().finished_at == 5030.0
    assert round_.round_number == 1

    now[0] += config.LOBBY_EXPIRY_SECONDS - 1
    assert registry.cleanup_expired() == 0
    now[0] += 2
    assert registry.cleanup_expired() == 1
