"""Error types shared by handlers, jobs and the generation client."""


class LingoSavorError(Exception):
    pass


class CallableError(LingoSavorError):
    """Client-facing failure carrying a callable status name such as ``not-found``."""

    HTTP_STATUS = {
        'invalid-argument': 400,
        'failed-precondition': 400,
        'out-of-range': 400,
        'unauthenticated': 401,
        'permission-denied': 403,
        'not-found': 404,
        'already-exists': 409,
        'aborted': 409,
        'resource-exhausted': 429,
        'cancelled': 499,
        'unknown': 500,
        'internal': 500,
        'unimplemented': 501,
        'unavailable': 503,
        'deadline-exceeded': 504,
    }

    def __init__(self, status, message, details=None):
        if status not in self.HTTP_STATUS:
            status = 'internal'
        super().__init__(message)
        self.status = status
        self.message = message
        self.details = details

    @property
    def http_status(self):
        return self.HTTP_STATUS[self.status]

    def to_dict(self):
        payload = {
            'status': self.status.upper().replace('-', '_'),
            'message': self.message,
        }
        if self.details is not None:
            payload['details'] = self.details
        return payload


class GenerationError(LingoSavorError):
    """The generative model failed or returned nothing usable."""


class InfrastructureError(LingoSavorError):
    """Store or platform failure that makes continuing a batch run pointless."""
