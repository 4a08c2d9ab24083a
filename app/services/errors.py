"""Domain errors raised by the dispatch services.

Every error carries a stable ``code`` for API clients and the HTTP status the
API layer answers with. None of them leave partial writes behind: services
raise before flushing, or inside a transaction that is rolled back.
"""


class DispatchError(Exception):
    code = "dispatch_error"
    status_code = 400

    def __init__(self, message: str | None = None):
        self.message = message or (self.__doc__ or self.code).strip()
        super().__init__(self.message)


class ValidationError(DispatchError):
    """Invalid or missing input."""

    code = "validation_error"
    status_code = 422


class NotFoundError(DispatchError):
    """Resource not found."""

    code = "not_found"
    status_code = 404


class ForbiddenError(DispatchError):
    """Actor is not allowed to act on this request."""

    code = "forbidden"
    status_code = 403


class ConflictError(DispatchError):
    """Request state does not allow this operation."""

    code = "conflict"
    status_code = 409


class AlreadyActive(ConflictError):
    """You already have an active job. Finish it before taking another."""

    code = "already_active"


class AlreadyTaken(ConflictError):
    """This request was already taken by another technician."""

    code = "already_taken"


class InvalidTransition(ConflictError):
    """Status transition not allowed."""

    code = "invalid_transition"


class AlreadyRated(ConflictError):
    """This request was already rated."""

    code = "already_rated"


class WalletBlocked(ConflictError):
    """Wallet balance exhausted. Top up to receive new jobs."""

    code = "wallet_blocked"


class InvalidCompletionCode(DispatchError):
    """Invalid completion code. Confirm the code with the client."""

    code = "invalid_completion_code"
    status_code = 400
