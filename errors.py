class LedgerError(ValueError):
    status_code = 400


class NotFoundError(LedgerError):
    status_code = 404


class ForbiddenError(LedgerError):
    status_code = 403


class InvalidInputError(LedgerError):
    status_code = 400


class ConflictError(LedgerError):
    status_code = 409
