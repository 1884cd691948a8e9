from enum import Enum
from typing import Any, List, Optional
import logging

logger = logging.getLogger(__name__)

Row = List[Any]


class ExecutionState(Enum):
    """
    Enum representing the client-side execution state of a query.

    The engine reports a richer set of states (QUEUED, PLANNING, ...) which are
    normalized here so the session state machine only has to reason about four
    values.

    Attributes:
        NOT_STARTED: No statement has been accepted by the engine yet
        RUNNING: The engine accepted the statement and more work remains
        FINISHED: The engine finished the statement successfully
        FAILED: The engine reported a failure, cancellation or unknown state
    """

    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionState.FINISHED, ExecutionState.FAILED)

    @property
    def rank(self) -> int:
        """Position in the lifecycle. FINISHED and FAILED share the last rank."""
        return _STATE_RANKS[self]

    @classmethod
    def from_server_state(cls, state: str) -> "ExecutionState":
        """
        Convert a state string reported by the engine to a normalized ExecutionState.

        State Mappings:
            - QUEUED, WAITING_FOR_RESOURCES, DISPATCHING, PLANNING, STARTING,
              RUNNING, BLOCKED, FINISHING -> RUNNING
            - FINISHED -> FINISHED
            - FAILED, CANCELED, CANCELLED, ABORTED and anything unrecognised -> FAILED
        """

        normalized = state.upper()
        if normalized in _RUNNING_SERVER_STATES:
            return cls.RUNNING
        elif normalized == "FINISHED":
            return cls.FINISHED
        elif normalized not in _FAILED_SERVER_STATES:
            logger.warning("Unknown query state reported by engine: %s", state)
        return cls.FAILED


_STATE_RANKS = {
    ExecutionState.NOT_STARTED: 0,
    ExecutionState.RUNNING: 1,
    ExecutionState.FINISHED: 2,
    ExecutionState.FAILED: 2,
}

_RUNNING_SERVER_STATES = frozenset(
    [
        "QUEUED",
        "WAITING_FOR_RESOURCES",
        "DISPATCHING",
        "PLANNING",
        "STARTING",
        "RUNNING",
        "BLOCKED",
        "FINISHING",
    ]
)

_FAILED_SERVER_STATES = frozenset(["FAILED", "CANCELED", "CANCELLED", "ABORTED"])


# TLS settings handed to the urllib3 pool manager
class SSLOptions:
    tls_verify: bool
    tls_verify_hostname: bool
    tls_trusted_ca_file: Optional[str]
    tls_client_cert_file: Optional[str]
    tls_client_cert_key_file: Optional[str]
    tls_client_cert_key_password: Optional[str]

    def __init__(
        self,
        tls_verify: bool = True,
        tls_verify_hostname: bool = True,
        tls_trusted_ca_file: Optional[str] = None,
        tls_client_cert_file: Optional[str] = None,
        tls_client_cert_key_file: Optional[str] = None,
        tls_client_cert_key_password: Optional[str] = None,
    ):
        self.tls_verify = tls_verify
        self.tls_verify_hostname = tls_verify_hostname
        self.tls_trusted_ca_file = tls_trusted_ca_file
        self.tls_client_cert_file = tls_client_cert_file
        self.tls_client_cert_key_file = tls_client_cert_key_file
        self.tls_client_cert_key_password = tls_client_cert_key_password
