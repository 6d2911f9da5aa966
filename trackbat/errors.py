"""Error taxonomy shared by the engine and the HTTP layer."""


class TrackingError(Exception):
    """Base class; ``code`` is the stable error code, ``status`` the HTTP status."""
    code = 'error'
    status = 400

    def __init__(self, message=None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self):
        return {'error': {'code': self.code, 'message': self.message}}


class ValidationError(TrackingError):
    """Missing, malformed or duplicate input."""
    code = 'validation_error'
    status = 400


class Unauthorized(TrackingError):
    code = 'unauthorized'
    status = 401


class Forbidden(TrackingError):
    """Principal's role lacks permission."""
    code = 'forbidden'
    status = 403


class NotFound(TrackingError):
    code = 'not_found'
    status = 404


class ConflictError(TrackingError):
    """Requested transition is not allowed from the current state."""
    code = 'conflict'
    status = 409


class InternalError(TrackingError):
    code = 'internal_error'
    status = 500
