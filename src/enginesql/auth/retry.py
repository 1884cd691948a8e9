import logging
import time
import typing
from enum import Enum
from typing import List, Optional, Tuple, Union

from urllib3 import Retry
from urllib3.util.retry import RequestHistory

from enginesql.exc import MaxRetryDurationError

logger = logging.getLogger(__name__)


class RequestType(Enum):
    SUBMIT_QUERY = "SubmitQuery"
    POLL_STATUS = "PollStatus"
    GET_INFO = "GetInfo"
    CANCEL_QUERY = "CancelQuery"
    OTHER = "Other"


class EngineRetryPolicy(Retry):
    """
    Bounded retry of transport failures, built on urllib3's retry machinery.

    Only failures where the engine never produced an answer are retried:

        1. Connection errors (the request never left this process) are retried for
           every request type.
        2. Read errors (the request was sent but no answer arrived) are retried only
           for idempotent requests (GET status polls, info fetches, DELETE cancels).
           A SubmitQuery POST is never replayed because the engine may already have
           accepted the statement.
        3. HTTP statuses are never retried. A non-200 answer is reported to the
           session which turns it into a ProtocolError, and a failure state reported
           by the engine is final.

    :param delay_min:
        Float of seconds for the minimum delay between retries. Passed to urllib3 as its
        backoff_factor, so successive waits are delay_min, 2 * delay_min, 4 * delay_min...

    :param delay_max:
        Float of seconds for the maximum delay between retries. Passed to urllib3 as its
        backoff_max

    :param stop_after_attempts_count:
        Integer maximum number of attempts that will be retried. Passed to urllib3 as its
        total. Zero disables retries.

    :param stop_after_attempts_duration:
        Float of maximum number of seconds from the beginning of the first request that a
        request may be retried. This behaviour is not implemented in urllib3.

    :param _retry_start_time:
        Float unix timestamp. Used to monitor the overall request duration across successive
        retries. Never set this value directly. Use self.start_retry_timer() instead.

    :param _request_type:
        RequestType of the current request being retried. Set by for_request().

    :param urllib3_kwargs:
        Dictionary of arguments that are passed to Retry.__init__. Any setting of Retry() that
        this policy does not override or extend may be modified here.
    """

    IDEMPOTENT_METHODS = ["GET", "DELETE"]

    def __init__(
        self,
        delay_min: float,
        delay_max: float,
        stop_after_attempts_count: int,
        stop_after_attempts_duration: float,
        _retry_start_time: Optional[float] = None,
        _request_type: Optional[RequestType] = None,
        urllib3_kwargs: Optional[dict] = None,
    ):
        urllib3_kwargs = dict(urllib3_kwargs or {})

        # These values do not change from one request to the next
        self.delay_max = delay_max
        self.delay_min = delay_min
        self.stop_after_attempts_count = stop_after_attempts_count
        self.stop_after_attempts_duration = stop_after_attempts_duration

        # These values do change from one request to the next
        self._retry_start_time = _retry_start_time
        self.request_type = _request_type

        # the length of _history increases as retries are performed
        _history: Union[Tuple[RequestHistory, ...], None] = urllib3_kwargs.get(
            "history"
        )

        if not _history:
            _attempts_remaining = self.stop_after_attempts_count
        else:
            # at least one attempt has been consumed, and urllib3 will have set a total
            _attempts_remaining = urllib3_kwargs.pop("total")

        _urllib_kwargs_we_care_about = dict(
            total=_attempts_remaining,
            other=0,
            redirect=urllib3_kwargs.get("redirect", 3),
            status=0,
            raise_on_status=False,
            respect_retry_after_header=False,
            backoff_factor=self.delay_min,
            backoff_max=self.delay_max,
            allowed_methods=self.IDEMPOTENT_METHODS,
            status_forcelist=[],
        )

        if _history:
            # keep the counters urllib3 has already decremented
            for counter in ("other", "status"):
                if counter in urllib3_kwargs:
                    _urllib_kwargs_we_care_about.pop(counter)

        urllib3_kwargs.update(**_urllib_kwargs_we_care_about)

        super().__init__(
            **urllib3_kwargs,  # type: ignore
        )

    def new(self, **urllib3_incremented_counters: typing.Any) -> Retry:
        """Pass the entire retry state to its next iteration.

        urllib3 calls Retry.new() between successive requests as part of its `.increment()` method,
        passing the counters it modified. Since this subclass has its own __init__ signature and
        state, the method is overridden to pipe that state through while preserving the
        super-class's behaviour.
        """

        engine_init_params = dict(
            delay_min=self.delay_min,
            delay_max=self.delay_max,
            stop_after_attempts_count=self.stop_after_attempts_count,
            stop_after_attempts_duration=self.stop_after_attempts_duration,
            _retry_start_time=self._retry_start_time,
            _request_type=self._request_type,
            urllib3_kwargs={},
        )

        # Note: if we update urllib3 we may need to add/remove arguments from this dict
        urllib3_init_params = dict(
            total=self.total,
            connect=self.connect,
            read=self.read,
            redirect=self.redirect,
            status=self.status,
            other=self.other,
            allowed_methods=self.allowed_methods,
            status_forcelist=self.status_forcelist,
            backoff_factor=self.backoff_factor,  # type: ignore
            backoff_max=self.backoff_max,  # type: ignore
            raise_on_redirect=self.raise_on_redirect,
            raise_on_status=self.raise_on_status,
            history=self.history,
            remove_headers_on_redirect=self.remove_headers_on_redirect,
            respect_retry_after_header=self.respect_retry_after_header,
            backoff_jitter=self.backoff_jitter,  # type: ignore
        )

        urllib3_init_params.update(**urllib3_incremented_counters)

        engine_init_params["urllib3_kwargs"].update(**urllib3_init_params)  # type: ignore

        return type(self)(
            **engine_init_params,  # type: ignore[arg-type]
        )

    def for_request(self, request_type: RequestType) -> "EngineRetryPolicy":
        """Return a fresh copy of this policy for one request, with its timer started."""
        policy = type(self)(
            delay_min=self.delay_min,
            delay_max=self.delay_max,
            stop_after_attempts_count=self.stop_after_attempts_count,
            stop_after_attempts_duration=self.stop_after_attempts_duration,
            _request_type=request_type,
        )
        policy.start_retry_timer()
        return policy

    @property
    def request_type(self) -> Optional[RequestType]:
        return self._request_type or None

    @request_type.setter
    def request_type(self, value: Optional[RequestType]):
        self._request_type = value

    def start_retry_timer(self):
        """Timer is used to monitor the overall time across successive attempts of one request"""
        self._retry_start_time = time.time()

    def check_timer_duration(self) -> float:
        """Return time in seconds since the timer was started"""
        if self._retry_start_time is None:
            return 0.0
        return time.time() - self._retry_start_time

    def check_proposed_wait(self, proposed_wait: Union[int, float]) -> None:
        """Raise an exception if the proposed wait would exceed the configured stop_after_attempts_duration"""

        proposed_overall_time = self.check_timer_duration() + proposed_wait
        if proposed_overall_time > self.stop_after_attempts_duration:
            raise MaxRetryDurationError(
                f"Retry request would exceed Retry policy max retry duration of {self.stop_after_attempts_duration} seconds"
            )

    def get_backoff_time(self) -> float:
        """Calls urllib3's built-in get_backoff_time.

        Never returns a value larger than self.delay_max
        A MaxRetryDurationError will be raised if the calculated backoff would exceed
        self.stop_after_attempts_duration
        """

        proposed_backoff = super().get_backoff_time()
        proposed_backoff = min(proposed_backoff, self.delay_max)
        self.check_proposed_wait(proposed_backoff)

        return proposed_backoff

    def _is_method_retryable(self, method: str) -> bool:
        """Read errors are only retried for idempotent requests.

        urllib3 consults this for read errors only; connection errors are always retried.
        """
        if self.request_type == RequestType.SUBMIT_QUERY:
            return False
        return super()._is_method_retryable(method)

    def should_retry(self, method: str, status_code: int) -> Tuple[bool, str]:
        """HTTP answers are never retried, whatever their status.

        Returns a (should_retry, reason) tuple so the decision can be logged.
        """

        if status_code == 200:
            return False, "200 codes are not retried"

        return (
            False,
            f"{self.request_type and self.request_type.value} received HTTP {status_code}; "
            "statuses are reported to the session, not retried",
        )

    def is_retry(
        self, method: str, status_code: int, has_retry_after: bool = False
    ) -> bool:
        """
        Called by urllib3 when determining whether or not to retry

        Logs a debug message explaining the decision
        """

        should_retry, msg = self.should_retry(method, status_code)
        logger.debug(msg)
        return should_retry
