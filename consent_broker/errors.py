"""Error kinds surfaced by the consent broker.

Denials (pending, rejected, revoked, expired, exhausted) are results, not
errors. Only malformed input, ownership problems, illegal transitions and
infrastructure failures raise one of these.
"""


class ConsentBrokerError(Exception):
    code = "error"
    http_status = 500
    retryable = False

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"code": self.code, "msg": self.message}


class NotFoundError(ConsentBrokerError):
    code = "not_found"
    http_status = 404


class ForbiddenError(ConsentBrokerError):
    code = "forbidden"
    http_status = 403


class InvalidArgumentError(ConsentBrokerError):
    code = "invalid_argument"
    http_status = 400


class InvalidTransitionError(ConsentBrokerError):
    code = "invalid_transition"
    http_status = 409

    def __init__(self, message, current_status=None):
        super().__init__(message)
        self.current_status = current_status


class ConflictError(ConsentBrokerError):
    """Another writer changed the record first; retry the whole call."""

    code = "conflict"
    http_status = 409
    retryable = True


class UnavailableError(ConsentBrokerError):
    """Persistence or a collaborator failed; retry the whole call."""

    code = "unavailable"
    http_status = 503
    retryable = True
