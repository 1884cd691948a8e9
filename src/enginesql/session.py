import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from enginesql import __version__
from enginesql import USER_AGENT_NAME
from enginesql.auth.authenticators import AuthProvider
from enginesql.auth.retry import RequestType
from enginesql.backend.models import (
    Column,
    QueryError,
    QueryStats,
    StatusEnvelope,
    decode_envelope,
)
from enginesql.common.http import HttpHeader, HttpMethod, HttpResponse
from enginesql.common.unified_http_client import EngineHttpClient
from enginesql.exc import (
    IncoherentStateError,
    InvalidUsageError,
    ProtocolError,
    QueryTimeoutError,
    ServerOperationError,
    TransportError,
)
from enginesql.result_set import ResultSet
from enginesql.types import ExecutionState, Row

logger = logging.getLogger(__name__)

DEFAULT_HEADER_PREFIX = "X-Engine"
DEFAULT_POLL_INTERVAL = 0.5


class QuerySession:
    """
    Drives one SQL statement through the engine's continuation protocol.

    The statement is POSTed to the endpoint, then every `nextUri` handed out by
    the engine is followed until an answer arrives without one. Every answer is
    merged into the session by `_merge`, which is the only place session state
    changes after a successful submission.

    A session has a single logical owner: submit and await_completion refuse to
    run concurrently with each other. cancel() is out-of-band and may be called
    from another thread while a poll is in flight.
    """

    def __init__(
        self,
        endpoint: str,
        http_client: EngineHttpClient,
        catalog: Optional[str] = "hive",
        schema: Optional[str] = "default",
        user: str = "presto",
        auth_provider: Optional[AuthProvider] = None,
        http_headers: Optional[List[Tuple[str, str]]] = None,
        **kwargs,
    ) -> None:
        """
        Parameters:
            :param endpoint: The engine's statement submission URL
            :param http_client: Transport used for every request of this session
            :param catalog: Default catalog for the statement
            :param schema: Default schema for the statement
            :param user: User the statement runs as
            :param auth_provider: Adds authentication headers to each request
            :param http_headers: Extra static headers sent with every request
            :param source: `str`, optional. Client name reported in the User-Agent
            :param version: `str`, optional. Client version reported in the User-Agent
            :param header_prefix: `str`, optional (default is "X-Engine").
                Prefix of the identity headers, e.g. "X-Presto" or "X-Trino".
            :param poll_interval: `float`, optional (default is 0.5).
                Seconds to wait between continuation polls.
            :param query_timeout: `float`, optional (default is None).
                Overall deadline in seconds for await_completion.
            :param arraysize: `int`, optional. Default fetchmany size of results.
        """

        if not endpoint:
            raise ValueError("An endpoint is required to submit queries")

        self.endpoint = endpoint
        self.catalog = catalog
        self.schema = schema
        self.user = user
        self.source = kwargs.get("source") or USER_AGENT_NAME
        self.version = kwargs.get("version") or __version__
        self.header_prefix = kwargs.get("header_prefix") or DEFAULT_HEADER_PREFIX
        self.poll_interval = kwargs.get("poll_interval", DEFAULT_POLL_INTERVAL)
        self.query_timeout = kwargs.get("query_timeout")
        self.arraysize = kwargs.get("arraysize", 10000)

        self._http_client = http_client
        self._auth_provider = auth_provider or AuthProvider()
        self._static_headers = list(http_headers or [])
        self._lock = threading.Lock()

        self._reset()

    def _reset(self) -> None:
        self._state = ExecutionState.NOT_STARTED
        self._next_uri: Optional[str] = None
        self._info_uri: Optional[str] = None
        self._partial_cancel_uri: Optional[str] = None
        self._rows: List[Row] = []
        self._query_id: Optional[str] = None
        self._columns: Optional[List[Column]] = None
        self._stats: Optional[QueryStats] = None
        self._server_state: Optional[str] = None
        self._error: Optional[QueryError] = None

    @property
    def useragent_header(self) -> str:
        return "{}/{}".format(self.source, self.version)

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def next_uri(self) -> Optional[str]:
        return self._next_uri

    @property
    def info_uri(self) -> Optional[str]:
        return self._info_uri

    @property
    def partial_cancel_uri(self) -> Optional[str]:
        return self._partial_cancel_uri

    @property
    def rows(self) -> List[Row]:
        return list(self._rows)

    @property
    def query_id(self) -> Optional[str]:
        return self._query_id

    @property
    def columns(self) -> Optional[List[Column]]:
        return self._columns

    @property
    def stats(self) -> Optional[QueryStats]:
        return self._stats

    @property
    def error(self) -> Optional[QueryError]:
        return self._error

    @property
    def server_state(self) -> Optional[str]:
        """The last state string reported by the engine, before normalization."""
        return self._server_state

    @contextmanager
    def _exclusive(self, operation: str):
        if not self._lock.acquire(blocking=False):
            raise InvalidUsageError(
                "Cannot {} while another operation is in progress on this query session".format(
                    operation
                )
            )
        try:
            yield
        finally:
            self._lock.release()

    def _build_headers(self) -> Dict[str, str]:
        headers = dict(self._static_headers)
        headers["{}-User".format(self.header_prefix)] = self.user
        if self.catalog:
            headers["{}-Catalog".format(self.header_prefix)] = self.catalog
        if self.schema:
            headers["{}-Schema".format(self.header_prefix)] = self.schema
        headers[HttpHeader.USER_AGENT.value] = self.useragent_header
        self._auth_provider.add_headers(headers)
        return headers

    def _request(
        self,
        method: HttpMethod,
        uri: str,
        request_type: RequestType,
        body: Optional[bytes] = None,
    ) -> HttpResponse:
        headers = self._build_headers()
        if body is not None:
            headers[HttpHeader.CONTENT_TYPE.value] = "text/plain; charset=utf-8"
        return self._http_client.request(
            method, uri, headers=headers, body=body, request_type=request_type
        )

    def _fetch_envelope(
        self,
        method: HttpMethod,
        uri: str,
        request_type: RequestType,
        body: Optional[bytes] = None,
    ) -> StatusEnvelope:
        response = self._request(method, uri, request_type, body=body)

        if response.status != 200:
            raise ProtocolError(
                "Engine answered {} {} with HTTP {}".format(
                    method.value, uri, response.status
                ),
                {"http-code": response.status, "uri": uri},
                http_status=response.status,
            )

        try:
            return decode_envelope(response.data)
        except ValueError as e:
            raise ProtocolError(
                "Engine answered {} {} with an invalid status envelope: {}".format(
                    method.value, uri, e
                ),
                {"http-code": response.status, "uri": uri},
                http_status=response.status,
            ) from e

    def _advance_state(self, new_state: ExecutionState) -> None:
        if new_state == self._state:
            return
        if self._state.is_terminal or new_state.rank < self._state.rank:
            logger.warning(
                "Ignoring state change %s -> %s for query %s",
                self._state.value,
                new_state.value,
                self._query_id,
            )
            return
        logger.debug(
            "Query %s: %s -> %s", self._query_id, self._state.value, new_state.value
        )
        self._state = new_state

    def _merge(self, envelope: StatusEnvelope) -> None:
        # a missing nextUri ends the chain, it never means "keep the previous one"
        self._next_uri = envelope.next_uri

        if envelope.data is not None:
            self._rows.extend(envelope.data)

        if envelope.info_uri is not None:
            self._info_uri = envelope.info_uri
        if envelope.partial_cancel_uri is not None:
            self._partial_cancel_uri = envelope.partial_cancel_uri
        if envelope.id is not None:
            self._query_id = envelope.id
        if envelope.columns and not self._columns:
            self._columns = envelope.columns
        if envelope.error is not None:
            self._error = envelope.error

        if envelope.stats is not None:
            self._stats = envelope.stats
            if envelope.stats.state is not None:
                self._server_state = envelope.stats.state
                self._advance_state(envelope.stats.execution_state)

    def _failure_context(self) -> Dict[str, Any]:
        context: Dict[str, Any] = {
            "query-id": self._query_id,
            "state": self.server_state,
        }
        if self._error:
            context["error-name"] = self._error.error_name
            context["error-code"] = self._error.error_code
        return context

    def _failure_detail(self) -> str:
        if self._error:
            return "{} - {}".format(self._error.error_name, self._error.message)
        return "state {}".format(self.server_state)

    def _check_not_failed(self) -> None:
        # only while the chain continues; a chain that ends unfinished is incoherent
        if self._state != ExecutionState.FAILED or not self._next_uri:
            return

        raise ServerOperationError(
            "Query {} failed: {}".format(self._query_id, self._failure_detail()),
            self._failure_context(),
            http_status=200,
        )

    def submit(self, sql: str) -> None:
        """
        Submit a statement to the engine.

        On success the session is RUNNING (or already terminal if the engine
        answered with a final state) and holds only rows of this statement.

        Raises:
            InvalidUsageError: Empty SQL, or a statement is still running
            ProtocolError: The engine answered with a non-200 status or an invalid body
            TransportError: No answer could be obtained
        """
        if not sql or not sql.strip():
            raise InvalidUsageError("Cannot submit an empty statement")

        with self._exclusive("submit"):
            if self._state == ExecutionState.RUNNING:
                raise InvalidUsageError(
                    "Query {} is still running; create a new query session to run another statement".format(
                        self._query_id
                    )
                )

            envelope = self._fetch_envelope(
                HttpMethod.POST,
                self.endpoint,
                RequestType.SUBMIT_QUERY,
                body=sql.encode("utf-8"),
            )

            self._reset()
            self._state = ExecutionState.RUNNING
            self._merge(envelope)
            logger.debug(
                "Submitted query %s to %s, state %s",
                self._query_id,
                self.endpoint,
                self._state.value,
            )

    def _poll(self) -> None:
        envelope = self._fetch_envelope(
            HttpMethod.GET, self._next_uri, RequestType.POLL_STATUS
        )
        self._merge(envelope)

    def await_completion(
        self,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> ResultSet:
        """
        Follow the continuation chain until the engine stops handing out a nextUri.

        Args:
            poll_interval: Seconds to sleep before each poll. Defaults to the session's.
            timeout: Overall deadline in seconds. Defaults to the session's query_timeout.

        Returns:
            ResultSet: every row of the statement, in arrival order

        Raises:
            InvalidUsageError: No statement was submitted
            ServerOperationError: The engine reported a failure while the chain continued
            IncoherentStateError: The chain ended without the engine reporting FINISHED,
                including a chain that ended on a failure state
            QueryTimeoutError: The deadline passed before the chain ended
            ProtocolError, TransportError: A poll failed
        """
        if self._state == ExecutionState.NOT_STARTED:
            raise InvalidUsageError("No statement has been submitted on this query session")

        if poll_interval is None:
            poll_interval = self.poll_interval
        if timeout is None:
            timeout = self.query_timeout

        with self._exclusive("await completion"):
            deadline = time.monotonic() + timeout if timeout is not None else None

            self._check_not_failed()
            while self._next_uri:
                if deadline is not None and time.monotonic() + poll_interval > deadline:
                    raise QueryTimeoutError(
                        "Query {} did not complete within {} seconds".format(
                            self._query_id, timeout
                        ),
                        {"query-id": self._query_id, "state": self.server_state},
                    )
                time.sleep(poll_interval)
                self._poll()
                self._check_not_failed()

            if self._state != ExecutionState.FINISHED:
                raise IncoherentStateError(
                    "Incoherent state at end of query {}: continuation ended in {}".format(
                        self._query_id, self._failure_detail()
                    ),
                    self._failure_context(),
                    http_status=200,
                )

        return self.result()

    def execute(self, sql: str, **kwargs) -> ResultSet:
        """Submit `sql` and wait for its result. Keyword arguments go to await_completion."""
        self.submit(sql)
        return self.await_completion(**kwargs)

    def get_data(self) -> Optional[List[Row]]:
        """Every row of the statement once FINISHED, otherwise None."""
        if self._state != ExecutionState.FINISHED:
            return None
        return list(self._rows)

    def result(self) -> Optional[ResultSet]:
        """A ResultSet over the rows once FINISHED, otherwise None."""
        rows = self.get_data()
        if rows is None:
            return None
        return ResultSet(
            rows, columns=self._columns, query_id=self._query_id, arraysize=self.arraysize
        )

    def get_info(self) -> Optional[str]:
        """
        Fetch the engine's raw diagnostic document for the query.

        The engine keeps it for about 15 minutes after completion. Returns None
        if the engine never handed out an info URI.
        """
        if not self._info_uri:
            return None

        response = self._request(HttpMethod.GET, self._info_uri, RequestType.GET_INFO)
        if response.status != 200:
            raise ProtocolError(
                "Engine answered GET {} with HTTP {}".format(
                    self._info_uri, response.status
                ),
                {"http-code": response.status, "uri": self._info_uri},
                http_status=response.status,
            )
        return response.text

    def cancel(self) -> bool:
        """
        Ask the engine to stop the query.

        Returns True only if the engine acknowledged with HTTP 204. The session
        state is not changed; the next poll observes the engine's own final state.
        """
        if not self._partial_cancel_uri:
            logger.debug("Query %s has no cancel URI", self._query_id)
            return False

        try:
            response = self._request(
                HttpMethod.DELETE, self._partial_cancel_uri, RequestType.CANCEL_QUERY
            )
        except TransportError as e:
            logger.warning("Cancelling query %s failed: %s", self._query_id, e)
            return False

        if response.status != 204:
            logger.warning(
                "Cancelling query %s returned HTTP %s", self._query_id, response.status
            )
            return False
        return True
