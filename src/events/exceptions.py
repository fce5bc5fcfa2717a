from common.results import ErrorCode


class RegistrationOwnershipError(Exception):
    """Raised when a registration cannot be resolved for the requesting user.

    ``code`` is NOT_FOUND when the registration does not exist (or is deleted)
    and FORBIDDEN when it exists but belongs to someone else.
    """

    def __init__(self, code: ErrorCode, message: str) -> None:
        """Initialize with the distinguishing error code."""
        super().__init__(message)
        self.code = code


class CapacityExceededError(Exception):
    """Raised inside a transaction when the requested seats exceed what is left."""

    def __init__(self, requested: int, available: int) -> None:
        """Initialize with the numbers that failed the check."""
        super().__init__(f"Requested {requested} spot(s), {available} available.")
        self.requested = requested
        self.available = available


class InvalidBatchRowError(Exception):
    """Raised when a batch row references an unknown or unusable distance or add-on."""

    def __init__(self, row_index: int, message: str) -> None:
        """Initialize with the offending row."""
        super().__init__(f"Row {row_index}: {message}")
        self.row_index = row_index


class RegistrationFlowError(Exception):
    """Raised inside a locked transaction to abort with a business error code."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        """Initialize with the business error code."""
        super().__init__(message)
        self.code = code
