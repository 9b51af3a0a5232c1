"""Tests for answerer rotation."""
import random
from collections import Counter

import pytest

from bull.errors import NoEligiblePlayers
from bull.models import Player, Team
from bull.participation import ParticipationTracker
from bull.rotation import PlayerRotationSelector


def make_team(prefix, size, team):
    return [Player(id=f"{prefix}{i}", name=f"{prefix}{i}", team=team) for i in range(size)]


@pytest.fixture
def tracker():
    return ParticipationTracker()


def selector_for(tracker, *teams, seed=42):
    tracker.seed(p.id for team in teams for p in team)
    return PlayerRotationSelector(tracker, random.Random(seed))


def test_single_player_teams_are_picked_directly(tracker):
    blue, red = make_team("b", 1, Team.BLUE), make_team("r", 1, Team.RED)
    selector = selector_for(tracker, blue, red)

    pair = selector.select_pair(blue, red, 1)

    assert pair[Team.BLUE] is blue[0]
    assert pair[Team.RED] is red[0]


def test_selection_updates_participation(tracker):
    blue, red = make_team("b", 3, Team.BLUE), make_team("r", 2, Team.RED)
    selector = selector_for(tracker, blue, red)

    pair = selector.select_pair(blue, red, 4)

    for player in pair.values():
        record = tracker.records[player.id]
        assert record.last_round_played == 4
        assert record.times_played == 1


def test_excluded_player_is_never_chosen(tracker):
    blue, red = make_team("b", 2, Team.BLUE), make_team("r", 2, Team.RED)
    selector = selector_for(tracker, blue, red)

    for round_number in range(1, 20):
        pair = selector.select_pair(blue, red, round_number, excluded_player_id="b0")
        assert pair[Team.BLUE].id == "b1"


def test_host_on_roster_is_skipped(tracker):
    blue, red = make_team("b", 2, Team.BLUE), make_team("r", 1, Team.RED)
    blue[0].is_host = True
    selector = selector_for(tracker, blue, red)

    assert selector.select_pair(blue, red, 1)[Team.BLUE].id == "b1"


def test_empty_pool_fails_without_recording(tracker):
    blue, red = make_team("b", 1, Team.BLUE), make_team("r", 2, Team.RED)
    selector = selector_for(tracker, blue, red)

    with pytest.raises(NoEligiblePlayers):
        selector.select_pair(blue, red, 1, excluded_player_id="b0")
    with pytest.raises(NoEligiblePlayers):
        selector.select_pair(blue, [], 1)

    assert all(r.times_played == 0 for r in tracker.records.values())


def test_everyone_answers_once_before_anyone_repeats(tracker):
    blue, red = make_team("b", 4, Team.BLUE), make_team("r", 3, Team.RED)
    selector = selector_for(tracker, blue, red, seed=7)

    blue_seen, red_seen = [], []
    for round_number in range(1, 4):
        pair = selector.select_pair(blue, red, round_number)
        blue_seen.append(pair[Team.BLUE].id)
        red_seen.append(pair[Team.RED].id)

    assert len(set(blue_seen)) == 3
    assert sorted(red_seen) == ["r0", "r1", "r2"]

    # Fourth round: the last blue player who has not answered yet
    pair = selector.select_pair(blue, red, 4)
    assert pair[Team.BLUE].id not in blue_seen


@pytest.mark.parametrize("seed", [1, 2, 3])
def test_long_run_is_fair(tracker, seed):
    blue, red = make_team("b", 4, Team.BLUE), make_team("r", 4, Team.RED)
    selector = selector_for(tracker, blue, red, seed=seed)

    rounds = 400
    counts = Counter()
    for round_number in range(1, rounds + 1):
        pair = selector.select_pair(blue, red, round_number)
        counts.update(p.id for p in pair.values())

    expected = rounds / 4
    for player in blue + red:
        assert abs(counts[player.id] - expected) < expected * 0.3


def test_same_seed_gives_same_sequence():
    blue, red = make_team("b", 3, Team.BLUE), make_team("r", 3, Team.RED)

    def run():
        tracker = ParticipationTracker()
        selector = selector_for(tracker, blue, red, seed=99)
        return [tuple(p.id for p in selector.select_pair(blue, red, n).values())
                for n in range(1, 10)]

    assert run() == run()
