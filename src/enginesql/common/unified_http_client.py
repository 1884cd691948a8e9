import logging
import ssl
import urllib.parse
import urllib.request
from typing import Dict, Optional, Tuple, Union

import urllib3
from urllib3 import PoolManager, ProxyManager
from urllib3.exceptions import HTTPError, MaxRetryError
from urllib3.util import make_headers

from enginesql.auth.retry import EngineRetryPolicy, RequestType
from enginesql.common.http import ClientContext, HttpMethod, HttpResponse
from enginesql.exc import MaxRetryDurationError, TransportError

logger = logging.getLogger(__name__)


class EngineHttpClient:
    """
    HTTP transport for every request the driver sends to the engine.

    This client uses urllib3 for HTTP communication with a bounded retry policy,
    connection pooling, SSL support, and system proxy support. Requests are issued
    against absolute URIs because the engine hands out fully qualified continuation,
    info and cancel URIs.

    The client never interprets status codes: it returns status, headers and body
    of any answer, and raises TransportError only when no answer could be obtained.
    """

    def __init__(self, client_context: ClientContext):
        self.config = client_context
        self._direct_pool_manager: Optional[PoolManager] = None
        self._proxy_pool_manager: Optional[ProxyManager] = None
        self._proxy_uri: Optional[str] = None
        self._retry_policy = EngineRetryPolicy(
            delay_min=self.config.retry_delay_min,
            delay_max=self.config.retry_delay_max,
            stop_after_attempts_count=self.config.retry_stop_after_attempts_count,
            stop_after_attempts_duration=self.config.retry_stop_after_attempts_duration,
        )
        self._setup_pool_managers()

    def _create_ssl_context(self) -> Optional[ssl.SSLContext]:
        ssl_options = self.config.ssl_options
        if not ssl_options:
            return None

        ssl_context = ssl.create_default_context()

        if not ssl_options.tls_verify:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
        elif not ssl_options.tls_verify_hostname:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_REQUIRED

        if ssl_options.tls_trusted_ca_file:
            ssl_context.load_verify_locations(ssl_options.tls_trusted_ca_file)

        if ssl_options.tls_client_cert_file:
            ssl_context.load_cert_chain(
                ssl_options.tls_client_cert_file,
                ssl_options.tls_client_cert_key_file,
                ssl_options.tls_client_cert_key_password,
            )

        return ssl_context

    def _setup_pool_managers(self):
        """Set up both direct and proxy pool managers for per-request proxy decisions."""

        pool_kwargs = {
            "num_pools": self.config.pool_connections,
            "maxsize": self.config.pool_maxsize,
            "timeout": urllib3.Timeout(
                connect=self.config.socket_timeout, read=self.config.socket_timeout
            )
            if self.config.socket_timeout
            else None,
            "ssl_context": self._create_ssl_context(),
        }

        self._direct_pool_manager = PoolManager(**pool_kwargs)

        if not self.config.use_system_proxy:
            return

        # Bypass rules are checked per request in _should_use_proxy
        proxy_url, proxy_auth = self._detect_system_proxy()
        if proxy_url:
            self._proxy_uri = proxy_url
            self._proxy_pool_manager = ProxyManager(
                proxy_url, proxy_headers=proxy_auth, **pool_kwargs
            )
            logger.debug("Initialized with proxy support: %s", proxy_url)
        else:
            logger.debug("No system proxy detected, using direct connections only")

    def _detect_system_proxy(self) -> Tuple[Optional[str], Optional[Dict[str, str]]]:
        """Return the first https or http proxy from the environment, with its auth headers."""
        proxies = urllib.request.getproxies()
        for scheme in ("https", "http"):
            proxy_url = proxies.get(scheme)
            if not proxy_url:
                continue

            parsed = urllib.parse.urlparse(proxy_url)
            proxy_headers = None
            if parsed.username:
                proxy_headers = make_headers(
                    proxy_basic_auth="{}:{}".format(
                        urllib.parse.unquote(parsed.username),
                        urllib.parse.unquote(parsed.password or ""),
                    )
                )
            return proxy_url, proxy_headers
        return None, None

    def _should_use_proxy(self, target_host: str) -> bool:
        if not self._proxy_pool_manager or not self._proxy_uri:
            return False

        # proxy_bypass returns True if the host should BYPASS the proxy
        return not urllib.request.proxy_bypass(target_host)

    def _get_pool_manager_for_url(self, url: str) -> Union[PoolManager, ProxyManager]:
        target_host = urllib.parse.urlparse(url).hostname

        if target_host and self._should_use_proxy(target_host):
            logger.debug("Using proxy for request to %s", target_host)
            return self._proxy_pool_manager
        return self._direct_pool_manager

    def request(
        self,
        method: HttpMethod,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[bytes] = None,
        request_type: RequestType = RequestType.OTHER,
    ) -> HttpResponse:
        """
        Perform one HTTP request, retrying transport failures per the retry policy.

        Args:
            method: HTTP method (HttpMethod.GET, HttpMethod.POST, HttpMethod.DELETE)
            url: Absolute URL to request
            headers: Optional headers dict
            body: Optional raw request body
            request_type: What the request does, used by the retry policy

        Returns:
            HttpResponse: status, headers and the fully read body

        Raises:
            TransportError: If no answer could be obtained from the engine
        """
        if self._direct_pool_manager is None:
            raise TransportError(
                "HTTP client is closed", {"method": method.value, "uri": url}
            )

        logger.debug("Making %s request to %s", method.value, url)

        pool_manager = self._get_pool_manager_for_url(url)
        try:
            response = pool_manager.request(
                method=method.value,
                url=url,
                headers=headers or {},
                body=body,
                retries=self._retry_policy.for_request(request_type),
                preload_content=True,
            )
        except MaxRetryDurationError:
            raise
        except (MaxRetryError, HTTPError, OSError) as e:
            logger.error("%s request to %s failed: %s", method.value, url, e)
            raise TransportError(
                f"Error during request to server. {e}",
                {
                    "method": method.value,
                    "uri": url,
                    "original-exception": e,
                },
            ) from e

        return HttpResponse(
            status=response.status,
            headers=dict(response.headers),
            data=response.data or b"",
        )

    def using_proxy(self) -> bool:
        """Check if proxy support is available (not whether it's being used for a specific request)."""
        return self._proxy_pool_manager is not None

    def close(self):
        """Close the underlying connection pools."""
        if self._direct_pool_manager:
            self._direct_pool_manager.clear()
            self._direct_pool_manager = None
        if self._proxy_pool_manager:
            self._proxy_pool_manager.clear()
            self._proxy_pool_manager = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
