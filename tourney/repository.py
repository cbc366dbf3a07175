"""SQLAlchemy-backed persistence for tournaments and their match graphs."""
import logging
from contextlib import contextmanager
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import lazyload
from tourney.app import db
from tourney.errors import (
    CollaboratorError, InconsistentBracketError, NotFoundError, ValidationError,
)
from tourney.models import (
    ALLOWED_TOURNAMENT_FORMATS,
    Tournament, TournamentMatch, TournamentParticipant,
)
from tourney.services.bracket import validate_participants
from tourney.time_utils import utcnow_naive

logger = logging.getLogger(__name__)


class TournamentRepository:
    """Reads a tournament's match set once and writes each change set in one commit."""

    def __init__(self, session=None):
        self.session = session or db.session

    def commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error('Persistence commit failed: %s', exc)
            raise CollaboratorError('persistence', str(exc)) from exc

    def rollback(self):
        self.session.rollback()

    @contextmanager
    def _reading(self, description):
        """Map driver failures on a read (lock timeouts included) to a persistence error."""
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error('Persistence read failed while loading %s: %s', description, exc)
            raise CollaboratorError('persistence', str(exc)) from exc

    def create_tournament(self, name, tournament_format, participant_ids):
        name = str(name or '').strip()[:200]
        if not name:
            raise ValidationError('Tournament name required')
        tournament_format = str(tournament_format or '').strip().lower()
        if tournament_format not in ALLOWED_TOURNAMENT_FORMATS:
            raise ValidationError(f'Unsupported tournament format: {tournament_format}')
        ids = validate_participants(participant_ids)

        tournament = Tournament(name=name, tournament_format=tournament_format, status='pending')
        self.session.add(tournament)
        for player_id in ids:
            tournament.participants.append(TournamentParticipant(player_id=player_id))
        self.commit()
        return tournament

    def list_tournaments(self, status=None, limit=25):
        query = Tournament.query
        if status:
            query = query.filter(Tournament.status == status)
        with self._reading('tournaments'):
            return query.order_by(Tournament.created_at.desc(), Tournament.id.desc()).limit(limit).all()

    def fetch_tournament(self, tournament_id, lock=False):
        query = Tournament.query.filter(Tournament.id == tournament_id)
        if lock:
            # Row lock for the whole operation; eager joins cannot be locked.
            query = query.options(lazyload(Tournament.participants)).with_for_update().populate_existing()
        with self._reading(f'tournament {tournament_id}'):
            tournament = query.first()
        if not tournament:
            raise NotFoundError(f'Tournament {tournament_id} not found')
        return tournament

    def lock_tournament(self, tournament_id):
        return self.fetch_tournament(tournament_id, lock=True)

    def tournament_id_for_match(self, match_id):
        """Owning tournament id, read as a bare column so no match row is cached."""
        with self._reading(f'match {match_id}'):
            tournament_id = self.session.query(TournamentMatch.tournament_id).filter(
                TournamentMatch.id == match_id,
            ).scalar()
        if tournament_id is None:
            raise NotFoundError(f'Match {match_id} not found')
        return tournament_id

    def fetch_participants(self, tournament_id):
        with self._reading(f'participants of tournament {tournament_id}'):
            rows = TournamentParticipant.query.filter_by(
                tournament_id=tournament_id,
            ).order_by(TournamentParticipant.id.asc()).all()
        return [row.player_id for row in rows]

    def match_rows(self, tournament_id):
        # Overwrite rows already in the identity map with what the database holds now.
        with self._reading(f'matches of tournament {tournament_id}'):
            return TournamentMatch.query.filter_by(
                tournament_id=tournament_id,
            ).order_by(
                TournamentMatch.round.asc(),
                TournamentMatch.match_number.asc(),
                TournamentMatch.id.asc(),
            ).execution_options(populate_existing=True).all()

    def fetch_matches(self, tournament_id):
        return [row.to_record() for row in self.match_rows(tournament_id)]

    def has_matches(self, tournament_id):
        with self._reading(f'matches of tournament {tournament_id}'):
            return self.session.query(
                TournamentMatch.query.filter_by(tournament_id=tournament_id).exists()
            ).scalar()

    def fetch_match(self, match_id):
        with self._reading(f'match {match_id}'):
            match = self.session.get(TournamentMatch, match_id)
        if not match:
            raise NotFoundError(f'Match {match_id} not found')
        return match

    def _stage_tournament_updates(self, tournament_id, updates):
        if not updates:
            return
        tournament = self.session.get(Tournament, tournament_id)
        for field, value in updates.items():
            setattr(tournament, field, value)
        if updates.get('status') == 'completed' and tournament.completed_at is None:
            tournament.completed_at = utcnow_naive()

    def insert_matches(self, records, tournament_updates=None, commit=True):
        """Add a generated batch; all rows land together or none do."""
        if not records:
            raise ValidationError('No matches to insert')
        for record in records:
            self.session.add(TournamentMatch.from_record(record))
        if tournament_updates:
            self._stage_tournament_updates(records[0]['tournament_id'], tournament_updates)
        if commit:
            self.commit()

    def update_match(self, match_id, partial, commit=True):
        match = self.fetch_match(match_id)
        try:
            match.apply_record(partial)
        except InconsistentBracketError:
            self.rollback()
            raise
        if commit:
            self.commit()
        return match

    def apply_outcome(self, tournament_id, outcome):
        """Write every record touched by one progression step in one commit."""
        rows_by_id = {row.id: row for row in self.match_rows(tournament_id)}
        for record in outcome['updated']:
            row = rows_by_id.get(record['id'])
            if row is None:
                self.rollback()
                raise InconsistentBracketError(
                    f'Updated match {record["id"]} is not stored for tournament {tournament_id}',
                    match_id=record['id'],
                )
            row.apply_record(record)
        for record in outcome['created']:
            self.session.add(TournamentMatch.from_record(record))
        self._stage_tournament_updates(tournament_id, outcome.get('tournament'))
        self.commit()
