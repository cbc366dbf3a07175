"""
Exceptions raised by the bracket engine and its collaborators.

Every public operation either returns the updated tournament/match view or
raises exactly one of these.
"""


class TourneyError(Exception):
    """Base exception for all engine errors."""
    status_code = 400


class ValidationError(TourneyError):
    """Bad shape or size detected before any mutation."""
    status_code = 400


class NotFoundError(ValidationError):
    """Referenced tournament or match does not exist."""
    status_code = 404


class InvalidResultError(TourneyError):
    """A result cannot be recorded against the match in its current state."""
    status_code = 409

    def __init__(self, message, match_id=None):
        self.match_id = match_id
        super().__init__(message)


class InconsistentBracketError(TourneyError):
    """The match graph is broken: a dangling feed edge or an overfilled slot."""
    status_code = 500

    def __init__(self, message, match_id=None):
        self.match_id = match_id
        super().__init__(message)


class CollaboratorError(TourneyError):
    """Persistence, rating, history or notification failure."""
    status_code = 503

    def __init__(self, collaborator, message):
        self.collaborator = collaborator
        super().__init__(f'{collaborator}: {message}')
