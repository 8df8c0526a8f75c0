"""Error types surfaced to Thingpedia API callers."""


class ThingpediaError(Exception):
    """Base class for errors that map to an HTTP status at the RPC boundary."""

    status_code = 500
    code = "E_INTERNAL"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)

    default_message = "Internal Error"


class NotFoundError(ThingpediaError):
    """Resource absent for the caller's scope."""

    status_code = 404
    code = "ENOENT"
    default_message = "Not Found"


class ForbiddenError(ThingpediaError):
    """Authenticated, but not entitled to the requested resource."""

    status_code = 403
    code = "EPERM"
    default_message = "Forbidden"


class BadRequestError(ThingpediaError):
    """Malformed or disallowed input parameter."""

    status_code = 400
    code = "EINVAL"
    default_message = "Bad Request"


class TrainingError(Exception):
    """The external training process exited abnormally."""

    def __init__(self, message: str, exit_code: int = None):
        super().__init__(message)
        self.exit_code = exit_code
