"""Error taxonomy shared by services and the HTTP layer.

Services raise these; `main` maps every `AppError` to a JSON body
`{"error": {"message", "status"}}` with the matching status code.
Unauthenticated and under-privileged callers both get `Unauthorized`.
"""


class AppError(Exception):
    """Base class for errors that carry an HTTP status."""
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidArgument(AppError):
    """Malformed or missing input, including ids that reference nothing."""
    status_code = 400
    default_message = "Bad Request"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class NotFound(AppError):
    status_code = 404
    default_message = "Not Found"


class Conflict(AppError):
    """A unique constraint was violated."""
    status_code = 409
    default_message = "Conflict"
