"""Rating collaborator: applies ELO updates for completed tournament matches."""
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from tourney.app import db
from tourney.errors import CollaboratorError, NotFoundError, ValidationError
from tourney.models import PlayerRating
from tourney.services.elo import (
    DEFAULT_MAX_DAILY_DELTA, DEFAULT_RATING, DEFAULT_SCALE,
    clamp_daily_delta, expected_score, get_k_factor,
)
from tourney.time_utils import utcnow_naive

_MAX_LIMIT = 100


def _setting(name, default):
    return current_app.config.get(name, default)


def _get_or_create(player_id):
    row = PlayerRating.query.filter_by(player_id=player_id).first()
    if row is None:
        row = PlayerRating(
            player_id=player_id,
            rating=float(_setting('RATING_INITIAL', DEFAULT_RATING)),
            games_played=0,
            wins=0,
            losses=0,
            daily_delta=0.0,
            last_match_day='',
        )
        db.session.add(row)
    return row


def record_match_outcome(winner_id, loser_id, timestamp=None):
    """Apply one decisive result and return both players' updated ratings."""
    if not winner_id or not loser_id:
        raise ValidationError('Both winner and loser are required')
    if winner_id == loser_id:
        raise ValidationError('A player cannot play against themselves')
    now = utcnow_naive()
    timestamp = timestamp or now
    if timestamp > now:
        raise ValidationError('Match timestamp cannot be in the future')

    scale = float(_setting('RATING_SCALE', DEFAULT_SCALE))
    max_daily_delta = float(_setting('RATING_MAX_DAILY_DELTA', DEFAULT_MAX_DAILY_DELTA))
    day_key = timestamp.date().isoformat()

    try:
        winner = _get_or_create(winner_id)
        loser = _get_or_create(loser_id)
        for row in (winner, loser):
            if row.last_match_day != day_key:
                row.daily_delta = 0.0

        win_probability = expected_score(winner.rating, loser.rating, scale)
        winner_change = clamp_daily_delta(
            get_k_factor(winner.games_played) * (1.0 - win_probability),
            winner.daily_delta, max_daily_delta,
        )
        loser_change = clamp_daily_delta(
            -get_k_factor(loser.games_played) * (1.0 - win_probability),
            loser.daily_delta, max_daily_delta,
        )

        for row, change, won in ((winner, winner_change, True), (loser, loser_change, False)):
            row.rating += change
            row.daily_delta += change
            row.games_played += 1
            if won:
                row.wins += 1
            else:
                row.losses += 1
            row.last_match_day = day_key
            row.updated_at = now
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise CollaboratorError('rating', str(exc)) from exc

    return {
        winner_id: winner.to_dict(),
        loser_id: loser.to_dict(),
    }


def get_rating(player_id):
    row = PlayerRating.query.filter_by(player_id=player_id).first()
    if row is None:
        raise NotFoundError(f'No rating recorded for player {player_id}')
    return row.to_dict()


def leaderboard(limit=50):
    limit = max(1, min(limit or 50, _MAX_LIMIT))
    rows = PlayerRating.query.order_by(
        PlayerRating.rating.desc(),
        PlayerRating.games_played.desc(),
        PlayerRating.player_id.asc(),
    ).limit(limit).all()
    return [
        dict(row.to_dict(), rank=rank)
        for rank, row in enumerate(rows, start=1)
    ]
