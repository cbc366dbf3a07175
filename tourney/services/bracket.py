"""Bracket generation for every supported tournament format.

Generators are pure: they return fully-wired match records and never touch
the database, so the caller can write the whole batch in one commit. All
validation happens before the first record is built.
"""
import logging
import math
import random
from itertools import combinations

from tourney.errors import ValidationError
from tourney.services.graph import BYE_SCORE, MatchGraph, new_match

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2
MAX_GROUPS = 4


def is_power_of_two(value):
    if not isinstance(value, int) or value <= 0:
        return False
    return (value & (value - 1)) == 0


def next_power_of_two(value):
    if value <= 1:
        return 1
    return 1 << (value - 1).bit_length()


def validate_participants(participant_ids, minimum=MIN_PARTICIPANTS):
    if not isinstance(participant_ids, (list, tuple)):
        raise ValidationError('Participants must be a list of ids')
    ids = [str(pid).strip() if pid is not None else '' for pid in participant_ids]
    if any(not pid for pid in ids):
        raise ValidationError('Participant ids must be non-empty')
    if len(ids) < minimum:
        raise ValidationError(f'At least {minimum} participants are required')
    if len(set(ids)) != len(ids):
        raise ValidationError('Duplicate participants are not allowed')
    return ids


def round_robin_matches(tournament_id, participant_ids, starting_round=1):
    ids = validate_participants(participant_ids)
    return [
        new_match(tournament_id, starting_round, number, player1_id, player2_id)
        for number, (player1_id, player2_id) in enumerate(combinations(ids, 2), start=1)
    ]


def group_count(num_participants, max_groups=MAX_GROUPS):
    return min(max_groups, max(1, math.ceil(num_participants / 3)))


def partition_groups(participant_ids, num_groups, rng=None):
    """Shuffle participants and deal them round-robin into ``num_groups`` groups."""
    if num_groups <= 0:
        raise ValidationError('Number of groups must be positive')
    rng = rng or random.Random()
    shuffled = list(participant_ids)
    rng.shuffle(shuffled)
    groups = [[] for _ in range(num_groups)]
    for index, participant_id in enumerate(shuffled):
        groups[index % num_groups].append(participant_id)
    return groups


def group_stage_matches(tournament_id, participant_ids, rng=None, max_groups=MAX_GROUPS):
    ids = validate_participants(participant_ids)
    groups = partition_groups(ids, group_count(len(ids), max_groups), rng=rng)
    matches = []
    for group_number, members in enumerate(groups, start=1):
        for player1_id, player2_id in combinations(members, 2):
            matches.append(new_match(
                tournament_id, 1, len(matches) + 1, player1_id, player2_id,
                group_number=group_number,
            ))
    return matches


def groups_from_matches(matches):
    """Rebuild ``{group_number: [participant ids]}`` from group-stage matches."""
    groups = {}
    for match in matches:
        group_number = match.get('group_number')
        if group_number is None:
            continue
        members = groups.setdefault(group_number, [])
        for participant_id in (match['player1_id'], match['player2_id']):
            if participant_id and participant_id not in members:
                members.append(participant_id)
    return dict(sorted(groups.items()))


def seed_first_round(participant_ids, rng=None):
    """Pair participants for round one, padding to a power of two with byes.

    Byes are dealt one per pairing so no round-one match is empty.
    """
    rng = rng or random.Random()
    size = next_power_of_two(len(participant_ids))
    byes = size - len(participant_ids)
    if byes > size // 2 or (len(participant_ids) - byes) % 2:
        raise ValidationError(
            f'{len(participant_ids)} participants cannot be paired into a {size}-slot bracket'
        )
    players = list(participant_ids)
    rng.shuffle(players)
    pairs = [(players.pop(), None) for _ in range(byes)]
    while players:
        pairs.append((players.pop(), players.pop()))
    rng.shuffle(pairs)
    return pairs


def _elimination_rounds(tournament_id, pairs, starting_round, bracket=None):
    if not is_power_of_two(len(pairs)):
        raise ValidationError(f'{len(pairs)} opening pairings cannot form an elimination bracket')
    rounds = [[
        new_match(tournament_id, starting_round, number, player1_id, player2_id, bracket=bracket)
        for number, (player1_id, player2_id) in enumerate(pairs, start=1)
    ]]
    while len(rounds[-1]) > 1:
        previous = rounds[-1]
        current = []
        for index in range(0, len(previous), 2):
            match = new_match(
                tournament_id, starting_round + len(rounds), index // 2 + 1, bracket=bracket,
            )
            previous[index]['next_match_id'] = match['id']
            previous[index + 1]['next_match_id'] = match['id']
            current.append(match)
        rounds.append(current)
    return rounds


def _flatten(rounds):
    return [match for matches in rounds for match in matches]


def _resolved(matches, bye_score):
    graph = MatchGraph(matches, bye_score=bye_score)
    graph.resolve_byes()
    return matches


def knockout_matches(tournament_id, participant_ids, starting_round=1, rng=None,
                     bye_score=BYE_SCORE):
    ids = validate_participants(participant_ids)
    pairs = seed_first_round(ids, rng=rng)
    matches = _flatten(_elimination_rounds(tournament_id, pairs, starting_round))
    return _resolved(matches, bye_score)


def _losers_bracket(tournament_id, winners, starting_round):
    """Interleave drop-in and reduction rounds fed by the winners bracket.

    Wiring is positional: the i-th survivor meets the loser of the i-th
    winners match of the next round, which can produce early rematches.
    """
    if len(winners) < 2:
        return []

    def losers_match(round_index, number):
        return new_match(tournament_id, starting_round + round_index, number, bracket='losers')

    first_round = winners[0]
    losers = [[]]
    for index in range(0, len(first_round), 2):
        match = losers_match(0, index // 2 + 1)
        first_round[index]['loser_next_match_id'] = match['id']
        first_round[index + 1]['loser_next_match_id'] = match['id']
        losers[0].append(match)

    for winners_index in range(1, len(winners)):
        drop_in = []
        for position, survivor in enumerate(losers[-1]):
            match = losers_match(len(losers), position + 1)
            survivor['next_match_id'] = match['id']
            winners[winners_index][position]['loser_next_match_id'] = match['id']
            drop_in.append(match)
        losers.append(drop_in)
        if winners_index == len(winners) - 1:
            break
        reduction = []
        for index in range(0, len(drop_in), 2):
            match = losers_match(len(losers), index // 2 + 1)
            drop_in[index]['next_match_id'] = match['id']
            drop_in[index + 1]['next_match_id'] = match['id']
            reduction.append(match)
        losers.append(reduction)
    return losers


def double_elimination_matches(tournament_id, participant_ids, starting_round=1, rng=None,
                               bye_score=BYE_SCORE):
    ids = validate_participants(participant_ids)
    pairs = seed_first_round(ids, rng=rng)
    winners = _elimination_rounds(tournament_id, pairs, starting_round, bracket='winners')
    losers = _losers_bracket(tournament_id, winners, starting_round)

    grand_final = new_match(
        tournament_id, starting_round + len(winners), 1, bracket='final',
    )
    winners_final = winners[-1][0]
    winners_final['next_match_id'] = grand_final['id']
    if losers:
        losers[-1][0]['next_match_id'] = grand_final['id']
    else:
        winners_final['loser_next_match_id'] = grand_final['id']

    matches = _flatten(winners) + _flatten(losers) + [grand_final]
    return _resolved(matches, bye_score)


def generate_matches(tournament_format, tournament_id, participant_ids, *,
                     starting_round=1, rng=None, max_groups=MAX_GROUPS, bye_score=BYE_SCORE):
    """Build the initial match set for ``tournament_format``."""
    if tournament_format == 'round_robin':
        matches = round_robin_matches(tournament_id, participant_ids, starting_round)
    elif tournament_format == 'group':
        matches = group_stage_matches(tournament_id, participant_ids, rng=rng, max_groups=max_groups)
    elif tournament_format == 'knockout':
        matches = knockout_matches(
            tournament_id, participant_ids, starting_round, rng=rng, bye_score=bye_score,
        )
    elif tournament_format == 'double_elimination':
        matches = double_elimination_matches(
            tournament_id, participant_ids, starting_round, rng=rng, bye_score=bye_score,
        )
    else:
        raise ValidationError(f'Unsupported tournament format: {tournament_format}')
    logger.info(
        'Generated %d %s matches for tournament %s',
        len(matches), tournament_format, tournament_id,
    )
    return matches
