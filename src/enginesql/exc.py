import json
import logging
from typing import Optional

logger = logging.getLogger(__name__)

### PEP-249 Mandated ###
# https://peps.python.org/pep-0249/#exceptions
class Error(Exception):
    """Base class for all errors raised by this driver.
    `message`: An optional user-friendly error message. It should be short, actionable and stable
    `context`: Optional extra context about the error. MUST be JSON serializable
    """

    def __init__(self, message=None, context=None, *args, **kwargs):
        super().__init__(message, *args, **kwargs)
        self.message = message
        self.context = context or {}

    def __str__(self):
        return self.message or self.__class__.__name__

    def message_with_context(self):
        return str(self) + ": " + json.dumps(self.context, default=str)


class Warning(Exception):
    pass


class InterfaceError(Error):
    pass


class DatabaseError(Error):
    pass


class OperationalError(DatabaseError):
    pass


class ProgrammingError(DatabaseError):
    pass


class NotSupportedError(DatabaseError):
    pass


### Custom error classes ###
class InvalidUsageError(InterfaceError):
    """Thrown before any network call when the caller misuses a query session,
    for example by submitting empty SQL or re-submitting while a query is still running.
    The session is left untouched.
    """

    pass


class TransportError(OperationalError):
    """Thrown if the request could not be performed at all (connectivity, DNS, socket timeout).
    Its context will have the following keys:
    "method": The HTTP method of the failed request
    "uri": The URI that was requested
    "original-exception": The Python level original exception
    """

    pass


class MaxRetryDurationError(TransportError):
    """Thrown if the next HTTP request retry would exceed the configured
    stop_after_attempts_duration
    """


class QueryTimeoutError(OperationalError):
    """Thrown if the query did not reach a terminal state within the overall deadline."""


class ProtocolError(DatabaseError):
    """Thrown if the engine answered with a non-success HTTP status or a body that
    could not be decoded into a status envelope.
    Its context will have the following keys:
    "http-code": HTTP response code of the failed request
    "uri": The URI that was requested
    """

    def __init__(
        self,
        message=None,
        context=None,
        *args,
        http_status: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, context, *args, **kwargs)
        self.http_status = http_status


class IncoherentStateError(ProtocolError):
    """Thrown if the continuation chain ended but the engine never reported FINISHED"""


class ServerOperationError(ProtocolError):
    """Thrown if the query moved to a failure state, if for example there was a syntax
    error.
    Its context will have the following keys:
    "query-id": The engine's query id (if available)
    "state": The raw state reported by the engine
    "error-name": The engine's error name (if available)
    "error-code": The engine's numeric error code (if available)
    """

    pass
