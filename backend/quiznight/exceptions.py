class QuizError(Exception):
    """Base class for errors raised by the quiz server."""


class PersistenceError(QuizError):
    """The database rejected or failed a read/write needed by an operation."""


class DuplicateAnswerError(QuizError):
    """A team already has a ledger row for this question."""
