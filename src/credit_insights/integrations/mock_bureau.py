"""In-process stand-in for the credit bureau, served through httpx.MockTransport.

Credit data is derived from a hash of the email, so the same email always
gets the same score and counts.
"""

import json
import logging
import random
import re
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx

from ..models.core import RiskBand
from .bureau_client import CHECK_PATH


logger = logging.getLogger(__name__)


EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

# Per-request failure odds when failures are simulated
SERVER_ERROR_RATE = 0.05
RATE_LIMIT_RATE = 0.03
BAD_REQUEST_RATE = 0.02

SCORE_BANDS = (
    (800, RiskBand.EXCELLENT),
    (740, RiskBand.GOOD),
    (670, RiskBand.FAIR),
    (580, RiskBand.POOR),
)


def email_seed(email: str) -> int:
    """32-bit string hash of the email, made non-negative"""
    value = 0
    for char in email:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def score_band(score: int) -> RiskBand:
    for floor, band in SCORE_BANDS:
        if score >= floor:
            return band
    return RiskBand.VERY_POOR


def generate_mock_credit_data(email: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Build a deterministic credit report for an email.

    Only ``reference_id`` and ``timestamp`` depend on the clock.
    """
    now = now or datetime.now(timezone.utc)
    seed = email_seed(email)
    score = 300 + seed % 551

    return {
        'score': score,
        'risk_band': score_band(score).value,
        'enquiries_6m': seed % 8,
        'defaults': seed % 4,
        'open_loans': seed % 6,
        'trade_lines': 5 + seed % 16,
        'reference_id': f"BUREAU_{int(now.timestamp() * 1000)}_{seed}",
        'timestamp': now.isoformat(),
    }


class MockBureau:
    """Request handler mimicking the bureau's credit-check endpoint.

    Args:
        api_key: Key expected in the X-API-KEY header. Empty accepts any key.
        simulate_failures: Randomly answer 500, 429 or 400 like a flaky bureau
        rng: Source of randomness for failure simulation
        clock: Returns the time stamped on generated reports
    """

    def __init__(self,
                 api_key: str = "",
                 simulate_failures: bool = False,
                 rng: Optional[random.Random] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.api_key = api_key
        self.simulate_failures = simulate_failures
        self.rng = rng or random.Random()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.request_count = 0
        self._count_lock = threading.Lock()

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        with self._count_lock:
            self.request_count += 1

        if request.method == 'GET' and request.url.path == '/health':
            return httpx.Response(200, json={'status': 'healthy', 'service': 'mock-bureau'})

        if request.method != 'POST' or request.url.path != CHECK_PATH:
            return httpx.Response(404, json={'status': 'error', 'message': 'Not found'})

        started = time.monotonic()

        if not request.headers.get('X-API-KEY'):
            return self._error(401, 'API key required')
        if self.api_key and request.headers['X-API-KEY'] != self.api_key:
            return self._error(401, 'Invalid API key')

        try:
            body = json.loads(request.content or b'{}')
        except ValueError:
            return self._error(400, 'Request body must be JSON')

        email = body.get('email') if isinstance(body, dict) else None
        if not email or not isinstance(email, str) or not EMAIL_PATTERN.match(email):
            return self._error(400, 'Valid email is required')

        if self.simulate_failures:
            failure = self._simulated_failure()
            if failure is not None:
                return failure

        data = generate_mock_credit_data(email, now=self.clock())
        logger.debug(f"Mock bureau scored {email}: {data['score']} ({data['risk_band']})")

        return httpx.Response(200, json={
            'status': 'success',
            'data': data,
            'request_id': str(uuid.uuid4()),
            'processing_time_ms': int((time.monotonic() - started) * 1000),
        })

    def _simulated_failure(self) -> Optional[httpx.Response]:
        roll = self.rng.random()
        if roll < SERVER_ERROR_RATE:
            return self._error(500, 'Internal server error')
        if roll < SERVER_ERROR_RATE + RATE_LIMIT_RATE:
            return self._error(429, 'Rate limit exceeded')
        if roll < SERVER_ERROR_RATE + RATE_LIMIT_RATE + BAD_REQUEST_RATE:
            return self._error(400, 'Bad request')
        return None

    @staticmethod
    def _error(status_code: int, message: str) -> httpx.Response:
        return httpx.Response(status_code, json={'status': 'error', 'message': message})
