"""In-memory match graph for one tournament.

Matches are plain dict records (see ``tourney.models.MATCH_RECORD_FIELDS``).
The graph indexes them by id, keeps a reverse index of feed edges and
remembers which records changed during one operation so the caller can
write them back in a single unit.
"""
import uuid

from tourney.errors import InconsistentBracketError

WINNER_EDGE = 'winner'
LOSER_EDGE = 'loser'
BYE_SCORE = (1, 0)


def new_match_id():
    return str(uuid.uuid4())


def new_match(tournament_id, round_number, match_number,
              player1_id=None, player2_id=None, *, bracket=None, group_number=None):
    return {
        'id': new_match_id(),
        'tournament_id': tournament_id,
        'round': round_number,
        'match_number': match_number,
        'bracket': bracket,
        'group_number': group_number,
        'player1_id': player1_id,
        'player2_id': player2_id,
        'player1_score': None,
        'player2_score': None,
        'sets': None,
        'winner_id': None,
        'status': 'scheduled' if player1_id and player2_id else 'pending',
        'next_match_id': None,
        'loser_next_match_id': None,
    }


def participants_of(match):
    return [pid for pid in (match['player1_id'], match['player2_id']) if pid]


def loser_of(match):
    """Return the losing participant of a completed match, or None for byes."""
    if match['status'] != 'completed' or not match['winner_id']:
        return None
    if match['player1_id'] and match['player2_id']:
        if match['winner_id'] == match['player1_id']:
            return match['player2_id']
        return match['player1_id']
    return None


def is_bye(match):
    return match['status'] == 'completed' and len(participants_of(match)) < 2


class MatchGraph:
    """Tournament-scoped aggregate over a flat match list."""

    def __init__(self, matches, bye_score=BYE_SCORE):
        self.bye_score = tuple(bye_score)
        self._matches = {}
        self._feeders = {}
        self.touched = set()
        self.created = []
        self.newly_scheduled = []
        for match in matches:
            self._index(match)

    def _index(self, match):
        self._matches[match['id']] = match
        for edge, field in ((WINNER_EDGE, 'next_match_id'), (LOSER_EDGE, 'loser_next_match_id')):
            target_id = match.get(field)
            if target_id:
                self._feeders.setdefault(target_id, []).append((match['id'], edge))

    def get(self, match_id):
        return self._matches.get(match_id)

    def all(self):
        return list(self._matches.values())

    def add(self, match):
        """Register a match created during this operation."""
        self._index(match)
        self.created.append(match)
        return match

    def feeders(self, match_id):
        return [(self._matches[source_id], edge) for source_id, edge in self._feeders.get(match_id, [])]

    def target(self, match, edge):
        field = 'next_match_id' if edge == WINNER_EDGE else 'loser_next_match_id'
        target_id = match.get(field)
        if not target_id:
            return None
        target = self._matches.get(target_id)
        if target is None:
            raise InconsistentBracketError(
                f'Match {match["id"]} feeds missing match {target_id}',
                match_id=match['id'],
            )
        return target

    def changed(self):
        """Records modified in this operation, excluding ones created by it."""
        created_ids = {match['id'] for match in self.created}
        return [
            self._matches[match_id] for match_id in self.touched
            if match_id not in created_ids
        ]

    def check_delivery(self, match):
        """Raise before any mutation if a feed target of ``match`` cannot take a participant."""
        needed = {}
        for edge in (WINNER_EDGE, LOSER_EDGE):
            target = self.target(match, edge)
            if target is not None:
                needed[target['id']] = needed.get(target['id'], 0) + 1
        for target_id, count in needed.items():
            target = self._matches[target_id]
            if target['status'] == 'completed' or 2 - len(participants_of(target)) < count:
                raise InconsistentBracketError(
                    f'Match {match["id"]} feeds match {target["id"]}, which has no open slot',
                    match_id=match['id'],
                )

    def _touch(self, match):
        self.touched.add(match['id'])

    def fill_slot(self, match, participant_id):
        if match['status'] == 'completed':
            raise InconsistentBracketError(
                f'Cannot place {participant_id} into completed match {match["id"]}',
                match_id=match['id'],
            )
        if not match['player1_id']:
            match['player1_id'] = participant_id
        elif not match['player2_id']:
            match['player2_id'] = participant_id
        else:
            raise InconsistentBracketError(
                f'Match {match["id"]} already has two participants',
                match_id=match['id'],
            )
        if match['player1_id'] and match['player2_id'] and match['status'] == 'pending':
            match['status'] = 'scheduled'
            self.newly_scheduled.append(match)
        self._touch(match)

    def complete(self, match, winner_id, player1_score, player2_score, sets=None):
        match['winner_id'] = winner_id
        match['player1_score'] = player1_score
        match['player2_score'] = player2_score
        match['sets'] = sets or None
        match['status'] = 'completed'
        self._touch(match)

    def advance(self, match):
        """Push a completed match's winner and loser along its feed edges."""
        deliveries = (
            (self.target(match, WINNER_EDGE), match['winner_id']),
            (self.target(match, LOSER_EDGE), loser_of(match)),
        )
        targets = []
        for target, participant_id in deliveries:
            if target is None:
                continue
            if participant_id:
                self.fill_slot(target, participant_id)
            targets.append(target)
        # Both edges may point at the same match; settle only after every delivery.
        for target in targets:
            self.settle(target)

    def settle(self, match):
        """Resolve a pending match that can never receive another participant.

        Once every feeder has completed, a match left with one participant is a
        bye and one left empty is void. Both complete immediately and cascade.
        """
        if match['status'] != 'pending':
            return
        if any(source['status'] != 'completed' for source, _ in self.feeders(match['id'])):
            return
        present = participants_of(match)
        if len(present) == 2:
            return
        if present:
            if match['player1_id']:
                score1, score2 = self.bye_score
            else:
                score2, score1 = self.bye_score
            self.complete(match, present[0], score1, score2)
        else:
            self.complete(match, None, None, None)
        self.advance(match)

    def resolve_byes(self):
        for match in self.all():
            self.settle(match)
