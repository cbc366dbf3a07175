"""Tests for bracket generation across all formats."""
import random
from itertools import combinations

import pytest

from tourney.errors import ValidationError
from tourney.services import bracket
from tourney.services.graph import is_bye


def _ids(count):
    return [f'p{index}' for index in range(1, count + 1)]


def _by_id(matches):
    return {match['id']: match for match in matches}


@pytest.mark.parametrize('count', range(2, 18))
def test_knockout_has_one_contested_match_per_eliminated_player(count):
    matches = bracket.knockout_matches(1, _ids(count), rng=random.Random(count))
    size = bracket.next_power_of_two(count)
    assert len(matches) == size - 1
    assert len([match for match in matches if not is_bye(match)]) == count - 1
    assert len([match for match in matches if is_bye(match)]) == size - count


@pytest.mark.parametrize('count', [2, 5, 8, 11])
def test_knockout_paths_lead_to_single_final(count):
    matches = bracket.knockout_matches(1, _ids(count), rng=random.Random(7))
    by_id = _by_id(matches)
    finals = [match for match in matches if not match['next_match_id']]
    assert len(finals) == 1
    rounds = max(match['round'] for match in matches)

    for match in matches:
        if match['round'] != 1:
            continue
        seen = set()
        current = match
        while current['next_match_id']:
            assert current['id'] not in seen
            seen.add(current['id'])
            current = by_id[current['next_match_id']]
        assert current['id'] == finals[0]['id']
        assert len(seen) == rounds - 1


def test_knockout_feeds_each_match_from_two_sources():
    matches = bracket.knockout_matches(1, _ids(8), rng=random.Random(1))
    feeds = {}
    for match in matches:
        if match['next_match_id']:
            feeds[match['next_match_id']] = feeds.get(match['next_match_id'], 0) + 1
    later_rounds = [match for match in matches if match['round'] > 1]
    assert all(feeds[match['id']] == 2 for match in later_rounds)


def test_knockout_byes_advance_at_generation(in_order):
    matches = bracket.knockout_matches(1, ['A', 'B', 'C'], rng=in_order)
    round_one = sorted(
        (match for match in matches if match['round'] == 1),
        key=lambda match: match['match_number'],
    )
    bye, contested = round_one
    assert bye['status'] == 'completed'
    assert bye['winner_id'] == 'C'
    assert (bye['player1_score'], bye['player2_score']) == (1, 0)
    assert contested['status'] == 'scheduled'

    final = _by_id(matches)[bye['next_match_id']]
    assert final['player1_id'] == 'C'
    assert final['player2_id'] is None
    assert final['status'] == 'pending'


def test_round_robin_pairs_everyone_once():
    ids = _ids(6)
    matches = bracket.round_robin_matches(1, ids)
    assert len(matches) == 15
    assert all(match['round'] == 1 for match in matches)
    assert all(match['status'] == 'scheduled' for match in matches)
    pairs = {frozenset((match['player1_id'], match['player2_id'])) for match in matches}
    assert pairs == {frozenset(pair) for pair in combinations(ids, 2)}


def test_group_stage_splits_into_round_robin_groups():
    ids = _ids(7)
    matches = bracket.group_stage_matches(1, ids, rng=random.Random(3))
    groups = bracket.groups_from_matches(matches)
    assert sorted(groups) == [1, 2, 3]
    assert sorted(pid for members in groups.values() for pid in members) == sorted(ids)
    assert sorted(len(members) for members in groups.values()) == [2, 2, 3]
    assert len(matches) == 5
    for match in matches:
        assert match['round'] == 1
        members = groups[match['group_number']]
        assert match['player1_id'] in members
        assert match['player2_id'] in members


def test_group_count_is_capped():
    assert bracket.group_count(2) == 1
    assert bracket.group_count(6) == 2
    assert bracket.group_count(30) == 4
    assert bracket.group_count(30, max_groups=6) == 6


@pytest.mark.parametrize('count', [4, 8, 16])
def test_double_elimination_structure(count):
    matches = bracket.double_elimination_matches(1, _ids(count), rng=random.Random(2))
    assert len(matches) == 2 * count - 2

    winners = [match for match in matches if match['bracket'] == 'winners']
    losers = [match for match in matches if match['bracket'] == 'losers']
    finals = [match for match in matches if match['bracket'] == 'final']
    assert len(winners) == count - 1
    assert len(losers) == count - 2
    assert len(finals) == 1

    grand_final = finals[0]
    assert grand_final['round'] == max(match['round'] for match in winners) + 1
    feeders = [match for match in matches if match['next_match_id'] == grand_final['id']]
    assert sorted(match['bracket'] for match in feeders) == ['losers', 'winners']

    # Every winners-bracket loser drops into the losers bracket.
    by_id = _by_id(matches)
    for match in winners:
        assert by_id[match['loser_next_match_id']]['bracket'] == 'losers'
    for match in losers:
        assert not match['loser_next_match_id']


def test_double_elimination_with_two_players_sends_loser_to_grand_final():
    matches = bracket.double_elimination_matches(1, ['A', 'B'], rng=random.Random(0))
    assert len(matches) == 2
    winners_final, grand_final = matches
    assert winners_final['next_match_id'] == grand_final['id']
    assert winners_final['loser_next_match_id'] == grand_final['id']


def test_double_elimination_voids_losers_match_fed_only_by_byes(in_order):
    matches = bracket.double_elimination_matches(1, _ids(5), rng=in_order)
    voids = [
        match for match in matches
        if match['bracket'] == 'losers' and match['status'] == 'completed'
    ]
    assert len(voids) == 1
    assert voids[0]['winner_id'] is None
    assert voids[0]['player1_id'] is None and voids[0]['player2_id'] is None


def test_generation_is_deterministic_for_a_seed():
    first = bracket.knockout_matches(1, _ids(6), rng=random.Random(42))
    second = bracket.knockout_matches(1, _ids(6), rng=random.Random(42))
    assert [(m['player1_id'], m['player2_id']) for m in first] == \
        [(m['player1_id'], m['player2_id']) for m in second]


@pytest.mark.parametrize('participants,message', [
    (['solo'], 'At least 2'),
    (['a', 'a', 'b'], 'Duplicate'),
    (['a', ' '], 'non-empty'),
    ('a,b', 'must be a list'),
])
def test_invalid_participants_rejected(participants, message):
    with pytest.raises(ValidationError, match=message):
        bracket.generate_matches('knockout', 1, participants)


def test_unknown_format_rejected():
    with pytest.raises(ValidationError):
        bracket.generate_matches('swiss', 1, _ids(4))


def test_power_of_two_helpers():
    assert [bracket.is_power_of_two(value) for value in (1, 2, 3, 4, 6, 8)] == \
        [True, True, False, True, False, True]
    assert not bracket.is_power_of_two(0)
    assert [bracket.next_power_of_two(value) for value in (1, 2, 3, 5, 8, 9)] == [1, 2, 4, 8, 8, 16]


def test_elimination_rounds_require_power_of_two_pairings():
    pairs = [('a', 'b'), ('c', 'd'), ('e', 'f')]
    with pytest.raises(ValidationError, match='cannot form an elimination bracket'):
        bracket._elimination_rounds(1, pairs, starting_round=1)
