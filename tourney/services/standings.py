"""Standings ranker for round-robin tournaments and group stages.

Points follow the federation table-tennis convention: a win is worth 2 main
points and a loss 1. Ties on main points are broken, in order, by the match
ratio, the set ratio, the small-point ratio and finally the direct meeting
between the two tied participants. A ratio with a zero denominator counts
as 0. Anything still tied falls back to participant id so the order is
total and repeatable.
"""
from functools import cmp_to_key

from tourney.services.bracket import next_power_of_two

WIN_POINTS = 2
LOSS_POINTS = 1


def _blank_row(participant_id):
    return {
        'player_id': participant_id,
        'main_points': 0,
        'matches_played': 0,
        'matches_won': 0,
        'sets_won': 0,
        'sets_lost': 0,
        'small_points_won': 0,
        'small_points_lost': 0,
        'head_to_head': {},
    }


def ratio(numerator, denominator):
    if not denominator:
        return 0.0
    return numerator / denominator


def _set_tally(match):
    """Return (player1 sets, player2 sets, player1 small points, player2 small points)."""
    sets = match.get('sets') or []
    if sets:
        p1_sets = p2_sets = p1_points = p2_points = 0
        for game in sets:
            s1 = int(game.get('player1_score') or 0)
            s2 = int(game.get('player2_score') or 0)
            p1_points += s1
            p2_points += s2
            if s1 > s2:
                p1_sets += 1
            elif s2 > s1:
                p2_sets += 1
        return p1_sets, p2_sets, p1_points, p2_points
    # No per-set detail: the score pair stands in for both sets and small points.
    s1 = int(match.get('player1_score') or 0)
    s2 = int(match.get('player2_score') or 0)
    return s1, s2, s1, s2


def accumulate(participant_ids, matches):
    rows = {participant_id: _blank_row(participant_id) for participant_id in participant_ids}
    for match in matches:
        p1 = match.get('player1_id')
        p2 = match.get('player2_id')
        winner = match.get('winner_id')
        if match.get('status') != 'completed' or not p1 or not p2 or winner not in (p1, p2):
            continue
        row1 = rows.setdefault(p1, _blank_row(p1))
        row2 = rows.setdefault(p2, _blank_row(p2))
        p1_sets, p2_sets, p1_points, p2_points = _set_tally(match)

        row1['matches_played'] += 1
        row2['matches_played'] += 1
        row1['sets_won'] += p1_sets
        row1['sets_lost'] += p2_sets
        row2['sets_won'] += p2_sets
        row2['sets_lost'] += p1_sets
        row1['small_points_won'] += p1_points
        row1['small_points_lost'] += p2_points
        row2['small_points_won'] += p2_points
        row2['small_points_lost'] += p1_points

        winner_row, loser_row = (row1, row2) if winner == p1 else (row2, row1)
        winner_row['main_points'] += WIN_POINTS
        winner_row['matches_won'] += 1
        loser_row['main_points'] += LOSS_POINTS
        winner_row['head_to_head'][loser_row['player_id']] = 1
        loser_row['head_to_head'][winner_row['player_id']] = -1
    return rows


def _ratios(row):
    return (
        ratio(row['matches_won'], row['matches_played']),
        ratio(row['sets_won'], row['sets_won'] + row['sets_lost']),
        ratio(row['small_points_won'], row['small_points_won'] + row['small_points_lost']),
    )


def compare_rows(a, b):
    """Negative when ``a`` ranks ahead of ``b``."""
    if a['main_points'] != b['main_points']:
        return b['main_points'] - a['main_points']
    for a_ratio, b_ratio in zip(_ratios(a), _ratios(b)):
        if a_ratio != b_ratio:
            return -1 if a_ratio > b_ratio else 1
    meeting = a['head_to_head'].get(b['player_id'], 0)
    if meeting:
        return -meeting
    return 0


def _total_order(a, b):
    result = compare_rows(a, b)
    if result:
        return result
    if a['player_id'] == b['player_id']:
        return 0
    return -1 if a['player_id'] < b['player_id'] else 1


def sort_rows(rows):
    ordered = sorted(rows, key=cmp_to_key(_total_order))
    for position, row in enumerate(ordered, start=1):
        row['rank'] = position
        row['match_ratio'], row['set_ratio'], row['small_point_ratio'] = (
            round(value, 4) for value in _ratios(row)
        )
    return ordered


def compute_standings(participant_ids, matches):
    """Ordered standings rows, best first."""
    rows = accumulate(participant_ids, matches)
    return sort_rows(sorted(rows.values(), key=lambda row: row['player_id']))


def rank_participants(participant_ids, matches):
    return [row['player_id'] for row in compute_standings(participant_ids, matches)]


def group_standings(groups, matches):
    standings = {}
    for group_number, members in groups.items():
        group_matches = [match for match in matches if match.get('group_number') == group_number]
        standings[group_number] = compute_standings(members, group_matches)
    return standings


def qualifier_target(num_groups):
    return next_power_of_two(max(2, num_groups))


def group_qualifiers(groups, matches):
    """Group winners plus the best runner-ups needed to fill a bracket.

    The qualifier count is raised to the next power of two (at least 2) so the
    knockout phase starts without byes whenever enough runner-ups exist.
    """
    standings = group_standings(groups, matches)
    winners = [rows[0]['player_id'] for rows in standings.values() if rows]
    promotions = qualifier_target(len(winners)) - len(winners)
    if promotions <= 0:
        return winners
    runner_ups = sort_rows([dict(rows[1]) for rows in standings.values() if len(rows) > 1])
    return winners + [row['player_id'] for row in runner_ups[:promotions]]
