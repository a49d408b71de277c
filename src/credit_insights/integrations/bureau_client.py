"""Credit bureau HTTP client with classified retries and exponential backoff."""

import logging
import random
import time
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from ..models.core import BureauConfig, CreditCheckRequest, CreditReport, RetryOutcome
from ..utils.error_handler import ErrorCategory, ErrorHandler


logger = logging.getLogger(__name__)


CHECK_PATH = "/v1/credit/check"
NETWORK_ERROR_STATUS = 0
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
MAX_JITTER = 0.3


class IntegrationError(Exception):
    """A single attempt against the bureau failed"""

    def __init__(self, message: str, status_code: int = NETWORK_ERROR_STATUS):
        self.status_code = status_code
        super().__init__(message)


class TransientIntegrationError(IntegrationError):
    """Network failure, rate limit or 5xx; worth another attempt"""


class PermanentIntegrationError(IntegrationError):
    """Client-side or unexpected failure; retrying will not help"""


def is_retryable_status(status_code: int) -> bool:
    return status_code == NETWORK_ERROR_STATUS or status_code in RETRYABLE_STATUS_CODES


class BureauClient:
    """Executes one logical credit check per call, retrying transient failures.

    The client keeps no state between calls apart from its configuration and
    the underlying httpx.Client, so one instance can serve concurrent callers.

    Args:
        config: Endpoint, credentials and retry settings
        http_client: Client used for requests. Created from config when omitted.
        sleep: Called with the backoff delay in seconds between attempts
        jitter: Returns the random jitter factor, uniform in [0, 0.3] by default
        error_handler: Optional handler receiving structured integration failures
    """

    def __init__(self,
                 config: Optional[BureauConfig] = None,
                 http_client: Optional[httpx.Client] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 jitter: Optional[Callable[[], float]] = None,
                 error_handler: Optional[ErrorHandler] = None):
        self.config = config or BureauConfig()
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.Client(timeout=self.config.timeout)
        self.sleep = sleep
        self.jitter = jitter or (lambda: random.uniform(0, MAX_JITTER))
        self.error_handler = error_handler

    def close(self) -> None:
        if self._owns_client:
            self.http_client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def check_url(self) -> str:
        return self.config.base_url.rstrip('/') + CHECK_PATH

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds before retry attempt number ``attempt`` (1-based)"""
        exponential_delay = self.config.base_delay * (2 ** (attempt - 1))
        return min(exponential_delay * (1 + self.jitter()), self.config.max_delay)

    def check_credit(self, request: CreditCheckRequest) -> RetryOutcome:
        """Run a credit check, retrying up to ``max_retries`` extra times.

        Never raises for bureau failures: exhaustion and non-retryable errors
        come back as a failed RetryOutcome.
        """
        start_time = time.monotonic()
        max_retries = self.config.max_retries
        last_error = ''
        status_code = NETWORK_ERROR_STATUS
        attempts = 0

        logger.info(f"Starting credit check for email: {request.email}")

        for attempt in range(max_retries + 1):
            if attempt > 0:
                delay = self.backoff_delay(attempt)
                logger.info(f"Retry attempt {attempt} after {delay:.3f}s delay")
                self.sleep(delay)

            attempts += 1
            try:
                status_code, data, report = self._send(request)
            except PermanentIntegrationError as e:
                logger.warning(f"Non-retryable error ({e.status_code}), stopping retries")
                self._record_failure(str(e), "PERMANENT_INTEGRATION_ERROR", request, e.status_code, attempts)
                return RetryOutcome(
                    success=False,
                    status_code=e.status_code,
                    elapsed_time=time.monotonic() - start_time,
                    attempts_used=attempts,
                    error_message=str(e)
                )
            except TransientIntegrationError as e:
                last_error = str(e)
                status_code = e.status_code
                logger.warning(f"Request attempt {attempt + 1} failed ({e.status_code}): {e}")
                self._record_transient(str(e), request, e.status_code, attempts)
                continue

            logger.info(f"Credit check successful after {attempts - 1} retries")
            return RetryOutcome(
                success=True,
                status_code=status_code,
                elapsed_time=time.monotonic() - start_time,
                attempts_used=attempts,
                response_data=data,
                reference_id=report.reference_id or None,
                report=report
            )

        error_message = f"Failed after {max_retries} retries: {last_error}"
        logger.error(f"Credit check failed after {max_retries} retries: {last_error}")
        self._record_failure(error_message, "RETRIES_EXHAUSTED", request, status_code, attempts)

        return RetryOutcome(
            success=False,
            status_code=status_code,
            elapsed_time=time.monotonic() - start_time,
            attempts_used=attempts,
            error_message=error_message
        )

    def _send(self, request: CreditCheckRequest) -> Tuple[int, Dict[str, Any], CreditReport]:
        """Make one attempt and classify its failure.

        Returns:
            Tuple of (status code, raw credit data, parsed report)

        Raises:
            TransientIntegrationError: Network failure or retryable status
            PermanentIntegrationError: Any other failure
        """
        headers = {'X-API-KEY': self.config.api_key} if self.config.api_key else {}

        try:
            response = self.http_client.post(
                self.check_url,
                json=request.to_payload(),
                headers=headers,
                timeout=self.config.timeout
            )
        except httpx.RequestError as e:
            raise TransientIntegrationError(
                f"Network error: {e.__class__.__name__}: {e}", NETWORK_ERROR_STATUS
            ) from e

        if response.is_success:
            data, report = self._extract_credit_data(response)
            return response.status_code, data, report

        message = f"HTTP {response.status_code}: {self._error_detail(response)}"
        if is_retryable_status(response.status_code):
            raise TransientIntegrationError(message, response.status_code)
        raise PermanentIntegrationError(message, response.status_code)

    @staticmethod
    def _extract_credit_data(response: httpx.Response) -> Tuple[Dict[str, Any], CreditReport]:
        """Unwrap the credit payload, bare or nested under "data"."""
        try:
            body = response.json()
        except ValueError:
            raise PermanentIntegrationError(
                "Bureau returned a non-JSON body", response.status_code
            ) from None

        data = body.get('data') if isinstance(body, dict) and isinstance(body.get('data'), dict) else body
        if not isinstance(data, dict) or 'score' not in data:
            raise PermanentIntegrationError(
                "Bureau response is missing credit data", response.status_code
            )

        try:
            report = CreditReport.from_payload(data)
        except (KeyError, TypeError, ValueError) as e:
            raise PermanentIntegrationError(
                f"Bureau response has invalid credit data: {e}", response.status_code
            ) from e
        return data, report

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase

        if isinstance(body, dict):
            for key in ('message', 'error'):
                if body.get(key):
                    return str(body[key])
        return response.reason_phrase

    def _record_failure(self, message: str, error_type: str, request: CreditCheckRequest,
                        status_code: int, attempts: int) -> None:
        if not self.error_handler:
            return
        self.error_handler.log_error(
            message,
            error_type,
            ErrorCategory.INTEGRATION,
            context={
                'email': request.email,
                'status_code': status_code,
                'attempts': attempts
            }
        )

    def _record_transient(self, message: str, request: CreditCheckRequest,
                          status_code: int, attempt: int) -> None:
        if not self.error_handler:
            return
        self.error_handler.log_warning(
            message,
            "TRANSIENT_INTEGRATION_ERROR",
            ErrorCategory.INTEGRATION,
            context={
                'email': request.email,
                'status_code': status_code,
                'attempt': attempt
            }
        )
