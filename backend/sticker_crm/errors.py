class CrmError(ValueError):
    """Business rule rejection. The mutation it guards has no effect."""

    status_code = 400


class ValidationError(CrmError):
    status_code = 400


class ConflictError(CrmError):
    status_code = 409


class NotFoundError(CrmError):
    status_code = 404
