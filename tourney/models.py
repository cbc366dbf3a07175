import json
from tourney.app import db
from tourney.errors import InconsistentBracketError
from tourney.time_utils import utcnow_naive

ALLOWED_TOURNAMENT_FORMATS = {'round_robin', 'group', 'knockout', 'double_elimination'}
ALLOWED_TOURNAMENT_STATUSES = {'pending', 'active', 'completed'}
ALLOWED_MATCH_STATUSES = {'pending', 'scheduled', 'completed'}
ALLOWED_BRACKET_TAGS = {None, 'winners', 'losers', 'final'}

# Columns the progression engine is allowed to write on a match row.
MATCH_RECORD_FIELDS = (
    'id', 'tournament_id', 'round', 'match_number', 'bracket', 'group_number',
    'player1_id', 'player2_id', 'player1_score', 'player2_score', 'sets',
    'winner_id', 'status', 'next_match_id', 'loser_next_match_id',
)


def _safe_json(raw_value, fallback=None):
    if not raw_value:
        return fallback
    try:
        return json.loads(raw_value)
    except (TypeError, ValueError):
        return fallback


class Tournament(db.Model):
    """A bracket-managed tournament in one of the supported formats."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    tournament_format = db.Column(db.String(40), nullable=False, default='knockout')
    status = db.Column(db.String(20), nullable=False, default='pending')
    # pending, active, completed
    champion_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    participants = db.relationship(
        'TournamentParticipant',
        backref='tournament',
        lazy='joined',
        cascade='all, delete-orphan',
        order_by='TournamentParticipant.id',
    )

    @property
    def participant_ids(self):
        return [row.player_id for row in self.participants]

    def to_dict(self, include_participants=True):
        data = {
            'id': self.id,
            'name': self.name,
            'format': self.tournament_format,
            'status': self.status,
            'champion_id': self.champion_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'participant_count': len(self.participants),
        }
        if include_participants:
            data['participant_ids'] = self.participant_ids
        return data


class TournamentParticipant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False)
    player_id = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.UniqueConstraint('tournament_id', 'player_id', name='uq_tournament_participant_unique'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'player_id': self.player_id,
        }


class TournamentMatch(db.Model):
    """One node of a tournament's match graph."""
    id = db.Column(db.String(36), primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False)
    round = db.Column(db.Integer, nullable=False, default=1)
    match_number = db.Column(db.Integer, nullable=False, default=1)
    bracket = db.Column(db.String(10), nullable=True)  # winners, losers, final
    group_number = db.Column(db.Integer, nullable=True)
    player1_id = db.Column(db.String(64), nullable=True)
    player2_id = db.Column(db.String(64), nullable=True)
    player1_score = db.Column(db.Integer, nullable=True)
    player2_score = db.Column(db.Integer, nullable=True)
    sets_json = db.Column(db.Text, nullable=True)
    winner_id = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='pending')
    # pending = waiting for participants, scheduled = both slots filled,
    # completed = result recorded (or bye/void resolved at generation)
    next_match_id = db.Column(db.String(36), nullable=True)
    loser_next_match_id = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    completed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.Index('ix_tournament_match_tournament_round', 'tournament_id', 'round', 'match_number'),
    )

    tournament = db.relationship('Tournament', backref=db.backref('matches', lazy='dynamic'))

    @property
    def sets(self):
        return _safe_json(self.sets_json, None)

    @sets.setter
    def sets(self, value):
        self.sets_json = json.dumps(value) if value else None

    @classmethod
    def from_record(cls, record):
        match = cls()
        match.apply_record(record)
        return match

    def apply_record(self, record):
        for field in MATCH_RECORD_FIELDS:
            if field in record:
                setattr(self, field, record[field])
        if self.status not in ALLOWED_MATCH_STATUSES or self.bracket not in ALLOWED_BRACKET_TAGS:
            raise InconsistentBracketError(
                f'Match {self.id} has status {self.status!r} in bracket {self.bracket!r}',
                match_id=self.id,
            )
        if record.get('status') == 'completed' and self.completed_at is None:
            self.completed_at = utcnow_naive()

    def to_record(self):
        return {field: getattr(self, field) for field in MATCH_RECORD_FIELDS}

    def to_dict(self):
        data = self.to_record()
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        data['completed_at'] = self.completed_at.isoformat() if self.completed_at else None
        return data


class PlayerRating(db.Model):
    """ELO rating state per player, including the daily movement cap bookkeeping."""
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.String(64), unique=True, nullable=False)
    rating = db.Column(db.Float, nullable=False, default=1500.0)
    games_played = db.Column(db.Integer, nullable=False, default=0)
    wins = db.Column(db.Integer, nullable=False, default=0)
    losses = db.Column(db.Integer, nullable=False, default=0)
    daily_delta = db.Column(db.Float, nullable=False, default=0.0)
    last_match_day = db.Column(db.String(10), default='')
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'rating': round(self.rating, 1),
            'games_played': self.games_played,
            'wins': self.wins,
            'losses': self.losses,
            'daily_delta': round(self.daily_delta, 1),
            'last_match_day': self.last_match_day,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class MatchHistory(db.Model):
    """Global match ledger, one row per contested completed match."""
    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=True)
    player1_id = db.Column(db.String(64), nullable=False)
    player2_id = db.Column(db.String(64), nullable=False)
    player1_score = db.Column(db.Integer, nullable=False)
    player2_score = db.Column(db.Integer, nullable=False)
    sets_json = db.Column(db.Text, nullable=True)
    winner_id = db.Column(db.String(64), nullable=True)
    recorded_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.Index('ix_match_history_players', 'player1_id', 'player2_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'player1_id': self.player1_id,
            'player2_id': self.player2_id,
            'player1_score': self.player1_score,
            'player2_score': self.player2_score,
            'sets': _safe_json(self.sets_json, None),
            'winner_id': self.winner_id,
            'recorded_at': self.recorded_at.isoformat() if self.recorded_at else None,
        }


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    event_kind = db.Column(db.String(40), nullable=False)
    # champion_declared, qualification, match_ready
    tournament_id = db.Column(db.Integer, nullable=True)
    payload_json = db.Column(db.Text, default='{}')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'id': self.id,
            'event_kind': self.event_kind,
            'tournament_id': self.tournament_id,
            'payload': _safe_json(self.payload_json, {}),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
