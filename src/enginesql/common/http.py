from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


# Enums for HTTP Methods
class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"


# HTTP request headers
class HttpHeader(str, Enum):
    CONTENT_TYPE = "Content-Type"
    AUTHORIZATION = "Authorization"
    USER_AGENT = "User-Agent"


@dataclass
class HttpResponse:
    """Status, headers and raw body of one completed HTTP exchange."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    data: bytes = b""

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


class ClientContext:
    """HTTP configuration shared by every request a connection issues."""

    def __init__(
        self,
        ssl_options=None,  # SSLOptions type
        socket_timeout: Optional[float] = None,
        retry_stop_after_attempts_count: Optional[int] = None,
        retry_delay_min: Optional[float] = None,
        retry_delay_max: Optional[float] = None,
        retry_stop_after_attempts_duration: Optional[float] = None,
        pool_connections: Optional[int] = None,
        pool_maxsize: Optional[int] = None,
        use_system_proxy: Optional[bool] = None,
    ):
        self.ssl_options = ssl_options
        self.socket_timeout = socket_timeout
        self.retry_stop_after_attempts_count = (
            5
            if retry_stop_after_attempts_count is None
            else retry_stop_after_attempts_count
        )
        self.retry_delay_min = retry_delay_min or 1.0
        self.retry_delay_max = retry_delay_max or 60.0
        self.retry_stop_after_attempts_duration = (
            retry_stop_after_attempts_duration or 900.0
        )
        self.pool_connections = pool_connections or 10
        self.pool_maxsize = pool_maxsize or 1
        self.use_system_proxy = True if use_system_proxy is None else use_system_proxy
