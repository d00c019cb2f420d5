class FormFlowError(Exception):
    """Base class for errors raised by the form editor core."""


class ValidationRejected(FormFlowError):
    """Raised when user input is rejected at the point of entry.

    The message is meant to be shown inline next to the input; the state
    the input was aimed at is left untouched.
    """


class AnswerRejected(ValidationRejected):
    """Raised when a respondent input cannot become an answer value."""


class PersistenceError(FormFlowError):
    """Raised when saving or loading a form fails. Retryable."""


class FormNotFoundError(FormFlowError):
    """Raised when a form id is not present in storage."""


class CorruptFormError(FormFlowError):
    """Raised when a loaded form breaks structural invariants."""
