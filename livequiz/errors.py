"""
Error Types
Not-found is signalled with None/empty results; these exceptions cover the
cases that must reach a caller
"""


class LiveQuizError(Exception):
    """Base class for application errors"""


class NotFoundError(LiveQuizError):
    """A lookup that the caller requires did not match anything"""


class JoinError(LiveQuizError):
    """
    User-facing rejection when joining a game

    The message is shown to the player as is.
    """

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PersistenceError(LiveQuizError):
    """A write against the store failed"""


class InvalidQuizError(LiveQuizError):
    """Quiz content with a shape that cannot be played"""
