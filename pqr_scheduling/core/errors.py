"""Error taxonomy shared by the scheduling services.

Services raise these; the HTTP layer turns them into JSON responses in
``pqr_scheduling.main``. None of them is fatal to the process.
"""


class SchedulingError(Exception):
    """Base class for recoverable scheduling failures."""

    kind = "scheduling_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Malformed input, such as a bad time format or a non-positive id."""

    kind = "validation_error"
    status_code = 400


class NotFoundError(SchedulingError):
    """A referenced record does not exist or has been deleted."""

    kind = "not_found"
    status_code = 404


class ConflictError(SchedulingError):
    """The slot was taken or the record already exists."""

    kind = "conflict"
    status_code = 409


class InvalidStateError(SchedulingError):
    """The lifecycle transition is not allowed from the current status."""

    kind = "invalid_state"
    status_code = 409


class DependencyError(SchedulingError):
    """A collaborator (usually the database) failed. Callers may retry."""

    kind = "dependency_error"
    status_code = 503
