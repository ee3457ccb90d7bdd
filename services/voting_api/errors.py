"""Error taxonomy shared by the store adapter, registry, ledger and API."""


class VotingError(Exception):
    """Base class for every failure the voting core reports to callers."""

    status_code = 500
    error_type = "VotingError"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInput(VotingError):
    """Missing or malformed field."""

    status_code = 400
    error_type = "InvalidInput"


class NotFound(VotingError):
    """Topic was never registered."""

    status_code = 404
    error_type = "NotFound"


class StoreUnavailable(VotingError):
    """Store unreachable, erroring, timed out, or holding unreadable data."""

    status_code = 500
    error_type = "StoreUnavailable"


class LedgerContention(StoreUnavailable):
    """Compare-and-set append kept losing to concurrent writers."""

    error_type = "LedgerContention"
