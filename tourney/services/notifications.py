"""Notification collaborator: persists tournament events and pushes them over Socket.IO."""
import json
from sqlalchemy.exc import SQLAlchemyError
from tourney.app import db, socketio
from tourney.errors import CollaboratorError
from tourney.models import Notification
from tourney.time_utils import utcnow_naive

EVENT_KINDS = ('champion_declared', 'qualification', 'match_ready')


def notify(event_kind, payload, tournament_id=None):
    if event_kind not in EVENT_KINDS:
        raise CollaboratorError('notification', f'Unknown event kind: {event_kind}')
    notification = Notification(
        event_kind=event_kind,
        tournament_id=tournament_id,
        payload_json=json.dumps(payload or {}),
    )
    try:
        db.session.add(notification)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise CollaboratorError('notification', str(exc)) from exc

    try:
        socketio.emit('tournament_event', {
            'event_kind': event_kind,
            'tournament_id': tournament_id,
            'payload': payload or {},
            'created_at': utcnow_naive().isoformat(),
        })
    except (RuntimeError, ValueError, OSError) as exc:
        raise CollaboratorError('notification', str(exc)) from exc
    return notification.id


def recent_notifications(tournament_id, limit=50):
    rows = Notification.query.filter_by(tournament_id=tournament_id).order_by(
        Notification.created_at.desc(), Notification.id.desc(),
    ).limit(limit).all()
    return [row.to_dict() for row in rows]
