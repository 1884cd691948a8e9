import logging
from typing import List, Optional, Tuple

from enginesql.auth.auth import get_auth_provider
from enginesql.common.http import ClientContext
from enginesql.common.unified_http_client import EngineHttpClient
from enginesql.exc import InterfaceError
from enginesql.result_set import ResultSet
from enginesql.session import QuerySession
from enginesql.types import SSLOptions

logger = logging.getLogger(__name__)

STATEMENT_PATH = "/v1/statement"


def build_endpoint(
    host: str, port: Optional[int] = None, http_scheme: str = "http"
) -> str:
    """Build the statement submission URL from a coordinator host name."""
    host = host.rstrip("/")
    if "://" in host:
        http_scheme, host = host.split("://", 1)
    if port is None:
        port = 443 if http_scheme == "https" else 8080
    return "{}://{}:{}{}".format(http_scheme, host, port, STATEMENT_PATH)


class Connection:
    def __init__(
        self,
        endpoint: Optional[str] = None,
        host: Optional[str] = None,
        catalog: Optional[str] = "hive",
        schema: Optional[str] = "default",
        user: str = "presto",
        access_token: Optional[str] = None,
        http_headers: Optional[List[Tuple[str, str]]] = None,
        **kwargs,
    ) -> None:
        """
        Connect to a query engine coordinator.

        No request is sent until a statement is executed; the connection only
        holds configuration and the HTTP transport shared by its query sessions.

        Parameters:
            :param endpoint: Full statement submission URL, e.g. "http://coordinator:8080/v1/statement".
            :param host: Coordinator host name, used when endpoint is not given.
            :param port: `int`, optional. Coordinator port (default 8080, or 443 for https).
            :param http_scheme: `str`, optional (default is "http").
            :param catalog: Default catalog for statements.
            :param schema: Default schema for statements.
            :param user: User the statements run as.
            :param access_token: Bearer token sent with every request.
            :param username: `str`, optional. Basic authentication user name.
            :param password: `str`, optional. Basic authentication password.
            :param http_headers: Extra static headers sent with every request.
            :param source: `str`, optional. Client name reported in the User-Agent.
            :param version: `str`, optional. Client version reported in the User-Agent.
            :param header_prefix: `str`, optional (default is "X-Engine").
                Prefix of the identity headers. Use "X-Presto" or "X-Trino" for those engines.
            :param max_retries: `int`, optional (default is 5).
                Maximum retries of a request that failed at the transport level. 0 disables retries.
            :param poll_interval: `float`, optional (default is 0.5).
                Seconds between continuation polls.
            :param timeout: `float`, optional. Socket connect and read timeout in seconds.
            :param query_timeout: `float`, optional. Overall deadline of a query in seconds.
            :param use_system_proxy: `bool`, optional (default is True).
        """

        if endpoint is None:
            if not host:
                raise InterfaceError("Either endpoint or host must be provided")
            endpoint = build_endpoint(
                host, kwargs.get("port"), kwargs.get("http_scheme", "http")
            )
        self.endpoint = endpoint
        self.catalog = catalog
        self.schema = schema
        self.user = user
        self.http_headers = http_headers

        self.ssl_options = SSLOptions(
            # Double negation is generally a bad thing, but it mirrors the usual driver flag
            tls_verify=not kwargs.get("_tls_no_verify", False),
            tls_verify_hostname=kwargs.get("_tls_verify_hostname", True),
            tls_trusted_ca_file=kwargs.get("_tls_trusted_ca_file"),
            tls_client_cert_file=kwargs.get("_tls_client_cert_file"),
            tls_client_cert_key_file=kwargs.get("_tls_client_cert_key_file"),
            tls_client_cert_key_password=kwargs.get("_tls_client_cert_key_password"),
        )

        self.auth_provider = get_auth_provider(
            access_token=access_token,
            username=kwargs.get("username"),
            password=kwargs.get("password"),
        )

        client_context = ClientContext(
            ssl_options=self.ssl_options,
            socket_timeout=kwargs.get("timeout"),
            retry_stop_after_attempts_count=kwargs.get("max_retries"),
            retry_delay_min=kwargs.get("_retry_delay_min"),
            retry_delay_max=kwargs.get("_retry_delay_max"),
            retry_stop_after_attempts_duration=kwargs.get(
                "_retry_stop_after_attempts_duration"
            ),
            pool_connections=kwargs.get("_pool_connections"),
            pool_maxsize=kwargs.get("_pool_maxsize"),
            use_system_proxy=kwargs.get("use_system_proxy"),
        )
        self.http_client = kwargs.get("_http_client") or EngineHttpClient(
            client_context
        )

        self._session_kwargs = {
            key: kwargs[key]
            for key in (
                "source",
                "version",
                "header_prefix",
                "poll_interval",
                "query_timeout",
                "arraysize",
            )
            if key in kwargs
        }
        self.open = True
        logger.debug("Connection to %s opened", self.endpoint)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def _check_open(self):
        if not self.open:
            raise InterfaceError("Cannot use a closed connection")

    def session(self) -> QuerySession:
        """Return a new query session; each session runs one statement at a time."""
        self._check_open()
        return QuerySession(
            endpoint=self.endpoint,
            http_client=self.http_client,
            catalog=self.catalog,
            schema=self.schema,
            user=self.user,
            auth_provider=self.auth_provider,
            http_headers=self.http_headers,
            **self._session_kwargs,
        )

    def execute(self, sql: str, **kwargs) -> ResultSet:
        """Run `sql` to completion in a fresh query session and return its rows."""
        return self.session().execute(sql, **kwargs)

    def close(self) -> None:
        """Release the HTTP connection pools."""
        if not self.open:
            return
        self.open = False
        self.http_client.close()
        logger.debug("Connection to %s closed", self.endpoint)
