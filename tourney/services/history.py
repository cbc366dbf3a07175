"""Match-history ledger collaborator."""
import json
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from tourney.app import db
from tourney.errors import CollaboratorError
from tourney.models import MatchHistory


def log_match(player1_id, player2_id, score1, score2, sets=None, tournament_id=None, winner_id=None):
    """Append one completed match to the ledger and return its id."""
    entry = MatchHistory(
        tournament_id=tournament_id,
        player1_id=player1_id,
        player2_id=player2_id,
        player1_score=score1,
        player2_score=score2,
        sets_json=json.dumps(sets) if sets else None,
        winner_id=winner_id,
    )
    try:
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise CollaboratorError('history', str(exc)) from exc
    return entry.id


def matches_between(player1_id, player2_id, limit=20):
    rows = MatchHistory.query.filter(
        or_(
            and_(MatchHistory.player1_id == player1_id, MatchHistory.player2_id == player2_id),
            and_(MatchHistory.player1_id == player2_id, MatchHistory.player2_id == player1_id),
        )
    ).order_by(MatchHistory.recorded_at.desc(), MatchHistory.id.desc()).limit(limit).all()
    return [row.to_dict() for row in rows]
