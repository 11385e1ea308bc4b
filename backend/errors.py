"""
Patrol error taxonomy.

Services raise these; main.py maps them onto HTTP responses using
each class's status_code.
"""


class PatrolError(Exception):
    """Base class for errors that carry an HTTP status."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PatrolError):
    """Malformed or missing input"""
    status_code = 400


class AuthenticationError(PatrolError):
    """Missing, invalid or expired bearer token"""
    status_code = 401


class AuthorizationError(PatrolError):
    """Authenticated, but not permitted to perform the operation"""
    status_code = 401


class NotAssignedError(AuthorizationError):
    """Actor is not one of the patrol's assigned officers"""


class NotFoundError(PatrolError):
    status_code = 404


class InvalidStateError(PatrolError):
    """Operation is not legal in the patrol's current lifecycle state"""
    status_code = 409


class WriteConflictError(PatrolError):
    """Concurrent writers kept invalidating the patrol version"""
    status_code = 409
