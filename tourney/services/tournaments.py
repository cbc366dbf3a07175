"""Tournament orchestration.

Each mutating call locks the tournament row, reads the match set once, runs
the pure engine over it and writes the result in a single commit. History,
rating and notification side effects run only after that commit; their
failures are logged and never undo bracket state.
"""
import logging
from flask import current_app
from tourney.errors import (
    CollaboratorError, InvalidResultError, NotFoundError, TourneyError, ValidationError,
)
from tourney.models import ALLOWED_TOURNAMENT_STATUSES
from tourney.repository import TournamentRepository
from tourney.services import bracket, history, progression, ratings, standings
from tourney.services.graph import BYE_SCORE
from tourney.services.notifications import notify
from tourney.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

_SECTION_ORDER = ('groups', 'main', 'winners', 'losers', 'final')


def _engine_settings():
    return {
        'max_groups': int(current_app.config.get('TOURNEY_MAX_GROUPS', bracket.MAX_GROUPS)),
        'bye_score': tuple(current_app.config.get('TOURNEY_BYE_SCORE', BYE_SCORE)),
    }


def _section_for(match):
    if match['group_number'] is not None:
        return 'groups'
    return match['bracket'] or 'main'


def bracket_state(matches):
    """Group match dicts by bracket section and round for display."""
    grouped = {}
    for match in matches:
        rounds = grouped.setdefault(_section_for(match), {})
        rounds.setdefault(int(match['round'] or 1), []).append(match)
    sections = []
    for section in _SECTION_ORDER:
        if section not in grouped:
            continue
        rounds = grouped[section]
        sections.append({
            'bracket': section,
            'rounds': [
                {'round': rnd, 'matches': rounds[rnd]}
                for rnd in sorted(rounds)
            ],
        })
    return {
        'sections': sections,
        'total_matches': len(matches),
    }


def serialize_tournament(tournament, include_bracket=True, repository=None):
    data = tournament.to_dict()
    if include_bracket:
        repository = repository or TournamentRepository()
        rows = repository.match_rows(tournament.id)
        data['bracket'] = bracket_state([row.to_dict() for row in rows])
    return data


def create_tournament(name, tournament_format, participant_ids):
    repository = TournamentRepository()
    tournament = repository.create_tournament(name, tournament_format, participant_ids)
    logger.info(
        'Created %s tournament %s with %d participants',
        tournament.tournament_format, tournament.id, len(tournament.participants),
    )
    return tournament


def list_tournaments(status=None, limit=25):
    status = (status or '').strip().lower() or None
    if status and status not in ALLOWED_TOURNAMENT_STATUSES:
        raise ValidationError('Invalid status filter')
    return TournamentRepository().list_tournaments(status=status, limit=limit)


def get_tournament(tournament_id):
    return TournamentRepository().fetch_tournament(tournament_id)


def generate_bracket(tournament_id, rng=None):
    """Build and store the initial match set; a tournament is generated once."""
    repository = TournamentRepository()
    try:
        tournament = repository.lock_tournament(tournament_id)
        if tournament.status != 'pending' or repository.has_matches(tournament_id):
            raise ValidationError(f'Bracket for tournament {tournament_id} was already generated')
        settings = _engine_settings()
        records = bracket.generate_matches(
            tournament.tournament_format,
            tournament.id,
            repository.fetch_participants(tournament_id),
            rng=rng,
            max_groups=settings['max_groups'],
            bye_score=settings['bye_score'],
        )
        repository.insert_matches(
            records,
            tournament_updates={'status': 'active', 'started_at': utcnow_naive()},
        )
    except TourneyError:
        repository.rollback()
        raise

    _announce_ready([record for record in records if record['status'] == 'scheduled'], tournament_id)
    return repository.fetch_tournament(tournament_id)


def _tournament_snapshot(tournament, repository):
    return {
        'id': tournament.id,
        'format': tournament.tournament_format,
        'status': tournament.status,
        'participant_ids': repository.fetch_participants(tournament.id),
    }


def record_result(match_id, score1, score2, sets=None, rng=None):
    """Record a result, propagate it and return the progression outcome."""
    repository = TournamentRepository()
    try:
        try:
            tournament_id = repository.tournament_id_for_match(match_id)
        except NotFoundError:
            raise InvalidResultError(f'Match {match_id} not found', match_id) from None
        # The match set is only read after the lock so a concurrent result is seen.
        tournament = repository.lock_tournament(tournament_id)
        snapshot = _tournament_snapshot(tournament, repository)
        outcome = progression.record_result(
            snapshot,
            repository.fetch_matches(tournament.id),
            match_id,
            score1,
            score2,
            sets,
            rng=rng,
            bye_score=_engine_settings()['bye_score'],
        )
        repository.apply_outcome(tournament.id, outcome)
    except TourneyError:
        repository.rollback()
        raise

    logger.info(
        'Recorded match %s of tournament %s: %s beat %s',
        match_id, snapshot['id'], outcome['winner_id'], outcome['loser_id'],
    )
    _run_side_effects(snapshot['id'], outcome)
    return outcome


def _guarded(description, func, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except CollaboratorError as exc:
        logger.warning('%s failed: %s', description, exc)
        return None


def _announce_ready(matches, tournament_id):
    for match in matches:
        _guarded(
            f'match_ready notification for {match["id"]}',
            notify,
            'match_ready',
            {
                'match_id': match['id'],
                'round': match['round'],
                'bracket': match['bracket'],
                'player1_id': match['player1_id'],
                'player2_id': match['player2_id'],
            },
            tournament_id=tournament_id,
        )


def _run_side_effects(tournament_id, outcome):
    match = outcome['match']
    _guarded(
        f'History entry for match {match["id"]}',
        history.log_match,
        match['player1_id'],
        match['player2_id'],
        match['player1_score'],
        match['player2_score'],
        sets=match['sets'],
        tournament_id=tournament_id,
        winner_id=outcome['winner_id'],
    )
    if current_app.config.get('RATING_ENABLED', True) and outcome['loser_id']:
        _guarded(
            f'Rating update for match {match["id"]}',
            ratings.record_match_outcome,
            outcome['winner_id'],
            outcome['loser_id'],
        )

    _announce_ready(outcome['scheduled'], tournament_id)
    if outcome['qualifiers']:
        _guarded(
            f'Qualification notification for tournament {tournament_id}',
            notify,
            'qualification',
            {'qualifiers': outcome['qualifiers']},
            tournament_id=tournament_id,
        )
    if outcome['champion_id']:
        _guarded(
            f'Champion notification for tournament {tournament_id}',
            notify,
            'champion_declared',
            {'champion_id': outcome['champion_id']},
            tournament_id=tournament_id,
        )


def tournament_standings(tournament_id):
    repository = TournamentRepository()
    tournament = repository.fetch_tournament(tournament_id)
    matches = repository.fetch_matches(tournament_id)
    if tournament.tournament_format == 'round_robin':
        return {
            'tournament_id': tournament.id,
            'format': tournament.tournament_format,
            'standings': standings.compute_standings(
                repository.fetch_participants(tournament_id), matches,
            ),
        }
    if tournament.tournament_format == 'group':
        group_matches = [match for match in matches if match['group_number'] is not None]
        groups = bracket.groups_from_matches(group_matches)
        return {
            'tournament_id': tournament.id,
            'format': tournament.tournament_format,
            'groups': [
                {'group_number': group_number, 'standings': rows}
                for group_number, rows in standings.group_standings(groups, group_matches).items()
            ],
        }
    raise ValidationError('Standings are only kept for round_robin and group tournaments')


def get_match(match_id):
    return TournamentRepository().fetch_match(match_id).to_dict()
