"""Ledger error taxonomy.

Everything except StoreFailure is expected control flow: the caller shows a
message and moves on. StoreFailure means nothing was recorded and the whole
operation may be retried.
"""


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400
    message = "Request could not be completed"

    def __init__(self, message: str | None = None, **details):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details

    def to_dict(self):
        return {"success": False, "error": self.code, "message": self.message, **self.details}


class Unauthenticated(LedgerError):
    code = "unauthenticated"
    status_code = 401
    message = "User not authenticated"


class InvalidAction(LedgerError):
    code = "invalid_action"
    status_code = 400
    message = "Invalid action type"


class CapReached(LedgerError):
    code = "cap_reached"
    status_code = 429
    message = "Daily limit reached for this action"


class AlreadyClaimedToday(LedgerError):
    # Idempotent no-op, not a failure.
    code = "already_claimed_today"
    status_code = 200
    message = "Daily bonus already claimed today"


class StoreFailure(LedgerError):
    code = "store_failure"
    status_code = 503
    message = "Could not save your progress. Please try again."


class AlreadyAwarded(LedgerError):
    code = "already_awarded"
    status_code = 409
    message = "This has already been rewarded"
