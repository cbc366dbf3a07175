"""Result recording and bracket progression.

``record_result`` is a pure function over one tournament's match set: it
validates the result, completes the match, pushes participants along the
feed edges and detects phase completion. The returned outcome lists every
record that has to be written back; nothing is persisted here.
"""
import logging

from tourney.errors import InvalidResultError
from tourney.services import bracket, standings
from tourney.services.graph import BYE_SCORE, WINNER_EDGE, MatchGraph, loser_of, new_match

logger = logging.getLogger(__name__)


def _coerce_score(raw_value, label):
    if isinstance(raw_value, bool):
        raise InvalidResultError(f'{label} must be an integer')
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        raise InvalidResultError(f'{label} must be an integer') from None
    if value != raw_value and not isinstance(raw_value, str):
        raise InvalidResultError(f'{label} must be an integer')
    if value < 0:
        raise InvalidResultError(f'{label} must be non-negative')
    return value


def normalize_sets(raw_sets):
    if raw_sets is None:
        return None
    if not isinstance(raw_sets, (list, tuple)):
        raise InvalidResultError('Set detail must be a list')
    normalized = []
    for number, game in enumerate(raw_sets, start=1):
        if not isinstance(game, dict):
            raise InvalidResultError(f'Set {number} must be an object with both scores')
        normalized.append({
            'player1_score': _coerce_score(game.get('player1_score'), f'Set {number} player1_score'),
            'player2_score': _coerce_score(game.get('player2_score'), f'Set {number} player2_score'),
        })
    return normalized or None


def decide_winner(match, score1, score2, sets=None):
    """Return the winning participant; sets, when given, outweigh raw totals."""
    if sets:
        p1_sets = sum(1 for game in sets if game['player1_score'] > game['player2_score'])
        p2_sets = sum(1 for game in sets if game['player2_score'] > game['player1_score'])
        if p1_sets == p2_sets:
            raise InvalidResultError('Sets are tied, a match cannot end in a draw', match['id'])
        if score1 != score2 and (score1 > score2) != (p1_sets > p2_sets):
            raise InvalidResultError('Match score contradicts the set results', match['id'])
        return match['player1_id'] if p1_sets > p2_sets else match['player2_id']
    if score1 == score2:
        raise InvalidResultError('Scores cannot be tied, there must be a winner', match['id'])
    return match['player1_id'] if score1 > score2 else match['player2_id']


def _check_recordable(tournament, match, match_id):
    if match is None:
        raise InvalidResultError(f'Match {match_id} not found in tournament', match_id)
    if tournament.get('status') != 'active':
        raise InvalidResultError('Tournament is not active', match_id)
    if match['status'] == 'completed':
        raise InvalidResultError('Match is already completed', match_id)
    if not match['player1_id'] or not match['player2_id'] or match['status'] != 'scheduled':
        raise InvalidResultError('Match is waiting for participants', match_id)


def _grand_final(graph):
    finals = [match for match in graph.all() if match['bracket'] == 'final']
    if not finals:
        return None
    return min(finals, key=lambda match: match['round'])


def _winners_representative(graph, grand_final):
    for source, edge in graph.feeders(grand_final['id']):
        if edge == WINNER_EDGE and source['bracket'] == 'winners':
            return source['winner_id']
    return None


def _resolve_final(graph, match, outcome):
    grand_final = _grand_final(graph)
    if match['id'] != grand_final['id']:
        # True Final: whoever wins it takes the title.
        outcome['champion_id'] = match['winner_id']
        return

    incumbent = _winners_representative(graph, grand_final)
    if match['winner_id'] == incumbent:
        outcome['champion_id'] = match['winner_id']
        return

    existing = [m for m in graph.all() if m['bracket'] == 'final' and m['id'] != grand_final['id']]
    if existing:
        outcome['true_final'] = existing[0]
        return
    challenger = match['winner_id']
    true_final = graph.add(new_match(
        match['tournament_id'], grand_final['round'] + 1, 1,
        incumbent, challenger, bracket='final',
    ))
    graph.newly_scheduled.append(true_final)
    outcome['true_final'] = true_final
    logger.info(
        'Losers-bracket champion %s won the grand final of tournament %s; true final %s created',
        challenger, match['tournament_id'], true_final['id'],
    )


def _round_robin_complete(tournament, graph, outcome):
    matches = graph.all()
    if not all(match['status'] == 'completed' for match in matches):
        return
    rows = standings.compute_standings(tournament['participant_ids'], matches)
    outcome['standings'] = rows
    if rows:
        outcome['champion_id'] = rows[0]['player_id']


def _group_stage_complete(tournament, graph, outcome, rng):
    matches = graph.all()
    group_matches = [m for m in matches if m['group_number'] is not None]
    if not group_matches or not all(m['status'] == 'completed' for m in group_matches):
        return
    if any(m['group_number'] is None for m in matches):
        return

    groups = bracket.groups_from_matches(group_matches)
    outcome['standings'] = standings.group_standings(groups, group_matches)
    qualifiers = standings.group_qualifiers(groups, group_matches)
    outcome['qualifiers'] = qualifiers
    logger.info(
        'Group stage of tournament %s complete; qualifiers: %s',
        tournament['id'], ', '.join(qualifiers),
    )
    if len(qualifiers) < 2:
        outcome['champion_id'] = qualifiers[0] if qualifiers else None
        return
    knockout = bracket.knockout_matches(
        tournament['id'], qualifiers, starting_round=2, rng=rng, bye_score=graph.bye_score,
    )
    for knockout_match in knockout:
        graph.add(knockout_match)
        if knockout_match['status'] == 'scheduled':
            graph.newly_scheduled.append(knockout_match)


def _is_bracket_final(match):
    return (
        match['bracket'] is None
        and match['group_number'] is None
        and not match['next_match_id']
        and not match['loser_next_match_id']
    )


def _detect_phase_completion(tournament, graph, match, outcome, rng):
    tournament_format = tournament['format']
    if match['bracket'] == 'final':
        _resolve_final(graph, match, outcome)
    elif tournament_format == 'round_robin':
        _round_robin_complete(tournament, graph, outcome)
    elif tournament_format == 'group' and match['group_number'] is not None:
        _group_stage_complete(tournament, graph, outcome, rng)
    elif tournament_format in ('knockout', 'group') and _is_bracket_final(match):
        outcome['champion_id'] = match['winner_id']


def record_result(tournament, matches, match_id, score1, score2, sets=None, *,
                  rng=None, bye_score=BYE_SCORE):
    """Record a result and propagate it through the bracket.

    ``tournament`` is a dict with ``id``, ``format``, ``status`` and
    ``participant_ids``; ``matches`` is its full match set. Records in
    ``matches`` are mutated in place only after every precondition holds.
    """
    graph = MatchGraph(matches, bye_score=bye_score)
    match = graph.get(match_id)
    _check_recordable(tournament, match, match_id)
    score1 = _coerce_score(score1, 'player1_score')
    score2 = _coerce_score(score2, 'player2_score')
    sets = normalize_sets(sets)
    winner_id = decide_winner(match, score1, score2, sets)
    graph.check_delivery(match)

    graph.complete(match, winner_id, score1, score2, sets)
    graph.advance(match)

    outcome = {
        'match': match,
        'winner_id': winner_id,
        'loser_id': loser_of(match),
        'champion_id': None,
        'true_final': None,
        'qualifiers': None,
        'standings': None,
    }
    _detect_phase_completion(tournament, graph, match, outcome, rng)

    outcome['updated'] = graph.changed()
    outcome['created'] = list(graph.created)
    outcome['scheduled'] = [m for m in graph.newly_scheduled if m['status'] == 'scheduled']
    if outcome['champion_id']:
        outcome['tournament'] = {'status': 'completed', 'champion_id': outcome['champion_id']}
        logger.info(
            'Tournament %s complete; champion %s', tournament['id'], outcome['champion_id'],
        )
    else:
        outcome['tournament'] = {}
    return outcome
