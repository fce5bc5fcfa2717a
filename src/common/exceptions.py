class InvariantViolationError(Exception):
    """Raised when a guarded write affects no rows although one was expected.

    This signals a lost race or a bug, never a business outcome; the API layer
    turns it into a generic server error.
    """
