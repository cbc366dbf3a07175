"""Tests for result recording and bracket progression."""
import pytest

from tourney.errors import InconsistentBracketError, InvalidResultError
from tourney.services import bracket
from tourney.services.progression import record_result


def _tournament(tournament_format, participant_ids, status='active'):
    return {
        'id': 1,
        'format': tournament_format,
        'status': status,
        'participant_ids': list(participant_ids),
    }


def _find(matches, first, second):
    for match in matches:
        if match['status'] == 'completed':
            continue
        if {match['player1_id'], match['player2_id']} == {first, second}:
            return match
    raise AssertionError(f'No match between {first} and {second}')


def _play(tournament, matches, winner, loser, winner_score=11, loser_score=5, sets=None):
    """Record ``winner`` beating ``loser`` and keep created matches in the set."""
    match = _find(matches, winner, loser)
    if match['player1_id'] == winner:
        scores = (winner_score, loser_score)
    else:
        scores = (loser_score, winner_score)
    outcome = record_result(tournament, matches, match['id'], *scores, sets=sets)
    matches.extend(outcome['created'])
    return outcome


def test_four_player_knockout_scenario(in_order):
    ids = ['A', 'B', 'C', 'D']
    tournament = _tournament('knockout', ids)
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    assert len(matches) == 3
    final = [match for match in matches if match['round'] == 2][0]
    assert sum(1 for match in matches if match['next_match_id'] == final['id']) == 2

    first = _play(tournament, matches, 'A', 'B', 11, 5)
    assert first['winner_id'] == 'A'
    assert first['loser_id'] == 'B'
    assert final['status'] == 'pending'
    assert [final['player1_id'], final['player2_id']].count(None) == 1
    assert {record['id'] for record in first['updated']} == {first['match']['id'], final['id']}
    assert first['scheduled'] == []

    second = _play(tournament, matches, 'C', 'D', 11, 9)
    assert final['status'] == 'scheduled'
    assert {final['player1_id'], final['player2_id']} == {'A', 'C'}
    assert [record['id'] for record in second['scheduled']] == [final['id']]
    assert second['champion_id'] is None
    assert second['tournament'] == {}

    last = _play(tournament, matches, 'A', 'C', 11, 7)
    assert last['champion_id'] == 'A'
    assert last['tournament'] == {'status': 'completed', 'champion_id': 'A'}
    assert all(match['status'] == 'completed' for match in matches)


def test_bye_holder_meets_winner_of_contested_match(in_order):
    ids = ['A', 'B', 'C']
    tournament = _tournament('knockout', ids)
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    outcome = _play(tournament, matches, 'A', 'B')
    final = [match for match in matches if match['round'] == 2][0]
    assert (final['player1_id'], final['player2_id']) == ('C', 'A')
    assert outcome['scheduled'] == [final]


def test_tied_scores_are_rejected_without_mutation(in_order):
    ids = ['A', 'B', 'C', 'D']
    tournament = _tournament('knockout', ids)
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    target = _find(matches, 'A', 'B')
    before = [dict(match) for match in matches]

    with pytest.raises(InvalidResultError):
        record_result(tournament, matches, target['id'], 7, 7)
    assert matches == before


@pytest.mark.parametrize('score1,score2', [(-1, 3), ('x', 3), (None, 2), (True, 0), (2.5, 1)])
def test_malformed_scores_are_rejected(in_order, score1, score2):
    ids = ['A', 'B']
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    with pytest.raises(InvalidResultError):
        record_result(_tournament('knockout', ids), matches, matches[0]['id'], score1, score2)
    assert matches[0]['status'] == 'scheduled'


def test_pending_completed_and_unknown_matches_are_rejected(in_order):
    ids = ['A', 'B', 'C', 'D']
    tournament = _tournament('knockout', ids)
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    final = [match for match in matches if match['round'] == 2][0]

    with pytest.raises(InvalidResultError, match='waiting for participants'):
        record_result(tournament, matches, final['id'], 11, 3)

    played = _find(matches, 'A', 'B')
    _play(tournament, matches, 'A', 'B')
    with pytest.raises(InvalidResultError, match='already completed'):
        record_result(tournament, matches, played['id'], 3, 11)

    with pytest.raises(InvalidResultError, match='not found'):
        record_result(tournament, matches, 'missing', 11, 3)


def test_results_rejected_unless_tournament_active(in_order):
    ids = ['A', 'B']
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    with pytest.raises(InvalidResultError, match='not active'):
        record_result(_tournament('knockout', ids, status='completed'), matches, matches[0]['id'], 11, 2)


def test_set_majority_decides_the_winner(in_order):
    ids = ['A', 'B']
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    match = matches[0]
    sets = [
        {'player1_score': 11, 'player2_score': 5},
        {'player1_score': 3, 'player2_score': 11},
        {'player1_score': 11, 'player2_score': 9},
    ]
    outcome = record_result(_tournament('knockout', ids), matches, match['id'], 25, 25, sets=sets)
    assert outcome['winner_id'] == match['player1_id']
    assert match['sets'] == sets


def test_tied_sets_are_rejected(in_order):
    ids = ['A', 'B']
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    sets = [
        {'player1_score': 11, 'player2_score': 5},
        {'player1_score': 3, 'player2_score': 11},
    ]
    with pytest.raises(InvalidResultError, match='Sets are tied'):
        record_result(_tournament('knockout', ids), matches, matches[0]['id'], 14, 16, sets=sets)


def test_true_final_created_once_when_losers_champion_wins(in_order):
    ids = ['A', 'B']
    tournament = _tournament('double_elimination', ids)
    matches = bracket.double_elimination_matches(1, ids, rng=in_order)
    grand_final = [match for match in matches if match['bracket'] == 'final'][0]

    _play(tournament, matches, 'A', 'B')
    assert (grand_final['player1_id'], grand_final['player2_id']) == ('A', 'B')
    assert grand_final['status'] == 'scheduled'

    upset = _play(tournament, matches, 'B', 'A')
    true_final = upset['true_final']
    assert upset['champion_id'] is None
    assert upset['created'] == [true_final]
    assert true_final['bracket'] == 'final'
    assert true_final['round'] == grand_final['round'] + 1
    assert (true_final['player1_id'], true_final['player2_id']) == ('A', 'B')
    assert true_final['status'] == 'scheduled'

    decider = record_result(tournament, matches, true_final['id'], 8, 11)
    assert decider['champion_id'] == 'B'
    assert decider['created'] == []
    assert len([match for match in matches if match['bracket'] == 'final']) == 2


def test_winners_champion_takes_title_in_grand_final(in_order):
    ids = ['A', 'B']
    tournament = _tournament('double_elimination', ids)
    matches = bracket.double_elimination_matches(1, ids, rng=in_order)
    _play(tournament, matches, 'A', 'B')
    outcome = _play(tournament, matches, 'A', 'B')
    assert outcome['champion_id'] == 'A'
    assert outcome['true_final'] is None
    assert len(matches) == 2


def test_double_elimination_four_player_run(in_order):
    ids = ['A', 'B', 'C', 'D']
    tournament = _tournament('double_elimination', ids)
    matches = bracket.double_elimination_matches(1, ids, rng=in_order)

    _play(tournament, matches, 'D', 'C')
    _play(tournament, matches, 'B', 'A')
    _play(tournament, matches, 'C', 'A')
    winners_final = _play(tournament, matches, 'D', 'B')
    assert winners_final['loser_id'] == 'B'
    _play(tournament, matches, 'C', 'B')

    grand_final = [match for match in matches if match['bracket'] == 'final'][0]
    assert (grand_final['player1_id'], grand_final['player2_id']) == ('D', 'C')
    upset = _play(tournament, matches, 'C', 'D')
    assert (upset['true_final']['player1_id'], upset['true_final']['player2_id']) == ('D', 'C')

    decider = record_result(tournament, matches, upset['true_final']['id'], 9, 11)
    assert decider['champion_id'] == 'C'
    # Two losses eliminate a player: A never reappears after the losers bracket.
    assert not any(
        'A' in (match['player1_id'], match['player2_id'])
        for match in matches if match['round'] > 1
    )


def test_losers_bracket_bye_cascades(in_order):
    ids = ['A', 'B', 'C']
    tournament = _tournament('double_elimination', ids)
    matches = bracket.double_elimination_matches(1, ids, rng=in_order)
    losers = sorted(
        (match for match in matches if match['bracket'] == 'losers'),
        key=lambda match: match['round'],
    )
    first_losers, drop_in = losers

    _play(tournament, matches, 'A', 'B')
    assert first_losers['status'] == 'completed'
    assert first_losers['winner_id'] == 'B'
    assert drop_in['player1_id'] == 'B'
    assert drop_in['status'] == 'pending'

    _play(tournament, matches, 'C', 'A')
    assert drop_in['status'] == 'scheduled'
    assert {drop_in['player1_id'], drop_in['player2_id']} == {'A', 'B'}


def test_round_robin_completion_crowns_table_leader():
    ids = ['A', 'B', 'C']
    tournament = _tournament('round_robin', ids)
    matches = bracket.round_robin_matches(1, ids)
    _play(tournament, matches, 'A', 'B', 2, 0)
    _play(tournament, matches, 'B', 'C', 2, 0)
    last = _play(tournament, matches, 'A', 'C', 2, 0)
    assert last['champion_id'] == 'A'
    assert [row['player_id'] for row in last['standings']] == ['A', 'B', 'C']


def test_group_stage_completion_builds_knockout(in_order):
    ids = ['A', 'B', 'C', 'D', 'E', 'F']
    tournament = _tournament('group', ids)
    matches = bracket.group_stage_matches(1, ids, rng=in_order)
    assert bracket.groups_from_matches(matches) == {1: ['A', 'C', 'E'], 2: ['B', 'D', 'F']}

    results = [('A', 'C'), ('A', 'E'), ('C', 'E'), ('B', 'D'), ('B', 'F')]
    for winner, loser in results:
        outcome = _play(tournament, matches, winner, loser)
        assert outcome['qualifiers'] is None
        assert outcome['created'] == []

    outcome = _play(tournament, matches, 'D', 'F')
    assert outcome['qualifiers'] == ['A', 'B']
    assert sorted(outcome['standings']) == [1, 2]
    assert len(outcome['created']) == 1
    knockout = outcome['created'][0]
    assert knockout['round'] == 2
    assert knockout['group_number'] is None
    assert knockout['status'] == 'scheduled'
    assert outcome['scheduled'] == [knockout]
    assert outcome['champion_id'] is None

    final = _play(tournament, matches, 'B', 'A')
    assert final['champion_id'] == 'B'


def test_feed_edge_to_missing_match_fails_without_mutation(in_order):
    ids = ['A', 'B', 'C', 'D']
    tournament = _tournament('knockout', ids)
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    semi = _find(matches, 'A', 'B')
    semi['next_match_id'] = 'gone'
    before = [dict(match) for match in matches]

    with pytest.raises(InconsistentBracketError) as excinfo:
        record_result(tournament, matches, semi['id'], 11, 4)
    assert excinfo.value.match_id == semi['id']
    assert matches == before


def test_delivery_into_full_match_fails_without_mutation(in_order):
    ids = ['A', 'B', 'C', 'D']
    tournament = _tournament('knockout', ids)
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    final = [match for match in matches if match['round'] == 2][0]
    final.update(player1_id='X', player2_id='Y', status='scheduled')
    before = [dict(match) for match in matches]

    with pytest.raises(InconsistentBracketError, match='no open slot'):
        record_result(tournament, matches, _find(matches, 'A', 'B')['id'], 11, 4)
    assert matches == before


def test_delivery_into_completed_match_is_rejected(in_order):
    ids = ['A', 'B', 'C', 'D']
    tournament = _tournament('knockout', ids)
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    final = [match for match in matches if match['round'] == 2][0]
    final.update(status='completed')

    with pytest.raises(InconsistentBracketError):
        record_result(tournament, matches, _find(matches, 'C', 'D')['id'], 11, 4)
    assert _find(matches, 'C', 'D')['status'] == 'scheduled'


def test_score_contradicting_sets_is_rejected(in_order):
    ids = ['A', 'B']
    matches = bracket.knockout_matches(1, ids, rng=in_order)
    sets = [
        {'player1_score': 11, 'player2_score': 2},
        {'player1_score': 9, 'player2_score': 11},
        {'player1_score': 8, 'player2_score': 11},
    ]
    with pytest.raises(InvalidResultError, match='contradicts'):
        record_result(_tournament('knockout', ids), matches, matches[0]['id'], 28, 24, sets=sets)
    assert matches[0]['status'] == 'scheduled'

    outcome = record_result(_tournament('knockout', ids), matches, matches[0]['id'], 1, 2, sets=sets)
    assert outcome['winner_id'] == matches[0]['player2_id']
