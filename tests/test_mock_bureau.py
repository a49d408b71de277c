"""Tests for the in-process mock bureau"""

import threading
from datetime import datetime, timezone

import httpx

from credit_insights.integrations.bureau_client import BureauClient
from credit_insights.integrations.mock_bureau import (
    MockBureau,
    email_seed,
    generate_mock_credit_data,
    score_band,
)
from credit_insights.models.core import BureauConfig, CreditCheckRequest, RiskBand


FIXED_NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FixedRandom:
    """Returns queued values from random()"""

    def __init__(self, *values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


class TestMockCreditData:

    def test_seed_of_short_strings(self):
        assert email_seed("a") == 97
        assert email_seed("ab") == 97 * 31 + 98
        assert email_seed("") == 0

    def test_known_email(self):
        data = generate_mock_credit_data("a", now=FIXED_NOW)

        assert data['score'] == 397
        assert data['risk_band'] == 'very_poor'
        assert data['enquiries_6m'] == 1
        assert data['defaults'] == 1
        assert data['open_loans'] == 1
        assert data['trade_lines'] == 6
        assert data['reference_id'] == "BUREAU_1735689600000_97"
        assert data['timestamp'] == FIXED_NOW.isoformat()

    def test_deterministic_and_in_range(self):
        for email in ["jane@example.com", "john.smith@bank.co.uk", "x" * 200 + "@long.io"]:
            first = generate_mock_credit_data(email, now=FIXED_NOW)
            second = generate_mock_credit_data(email, now=FIXED_NOW)

            assert first == second
            assert 300 <= first['score'] <= 850
            assert first['risk_band'] == score_band(first['score']).value
            assert 0 <= first['enquiries_6m'] < 8
            assert 5 <= first['trade_lines'] <= 20

    def test_score_bands(self):
        assert score_band(850) == RiskBand.EXCELLENT
        assert score_band(800) == RiskBand.EXCELLENT
        assert score_band(740) == RiskBand.GOOD
        assert score_band(670) == RiskBand.FAIR
        assert score_band(580) == RiskBand.POOR
        assert score_band(579) == RiskBand.VERY_POOR


class TestMockBureau:

    def setup_method(self):
        self.bureau = MockBureau(api_key="secret", clock=lambda: FIXED_NOW)
        self.client = httpx.Client(transport=self.bureau.transport())

    def teardown_method(self):
        self.client.close()

    def post(self, body, api_key="secret"):
        headers = {'X-API-KEY': api_key} if api_key else {}
        return self.client.post("http://bureau.test/v1/credit/check", json=body, headers=headers)

    def test_success_envelope(self):
        response = self.post({'email': 'jane@example.com'})

        assert response.status_code == 200
        body = response.json()
        assert body['status'] == 'success'
        assert body['data'] == generate_mock_credit_data('jane@example.com', now=FIXED_NOW)
        assert 'request_id' in body

    def test_missing_api_key(self):
        assert self.post({'email': 'jane@example.com'}, api_key=None).status_code == 401

    def test_wrong_api_key(self):
        assert self.post({'email': 'jane@example.com'}, api_key="nope").status_code == 401

    def test_invalid_email(self):
        response = self.post({'email': 'not-an-email'})

        assert response.status_code == 400
        assert response.json()['message'] == 'Valid email is required'

    def test_health(self):
        assert self.client.get("http://bureau.test/health").json()['status'] == 'healthy'

    def test_unknown_route(self):
        assert self.client.get("http://bureau.test/v1/other").status_code == 404

    def test_request_count_under_concurrent_callers(self):
        request = httpx.Request("GET", "http://bureau.test/health")

        def call_many():
            for _ in range(200):
                self.bureau.handle(request)

        threads = [threading.Thread(target=call_many) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert self.bureau.request_count == 1600

    def test_simulated_failures(self):
        bureau = MockBureau(api_key="secret", simulate_failures=True,
                            rng=FixedRandom(0.01, 0.06, 0.09, 0.5))

        with httpx.Client(transport=bureau.transport()) as client:
            statuses = [
                client.post("http://bureau.test/v1/credit/check",
                            json={'email': 'jane@example.com'},
                            headers={'X-API-KEY': 'secret'}).status_code
                for _ in range(4)
            ]

        assert statuses == [500, 429, 400, 200]

    def test_client_retries_through_flaky_bureau(self):
        bureau = MockBureau(api_key="secret", simulate_failures=True,
                            rng=FixedRandom(0.01, 0.07, 0.5), clock=lambda: FIXED_NOW)
        http_client = httpx.Client(transport=bureau.transport())
        config = BureauConfig(base_url="http://bureau.test", api_key="secret")

        with BureauClient(config, http_client=http_client, sleep=lambda _: None) as client:
            outcome = client.check_credit(CreditCheckRequest(email="jane@example.com"))

        assert outcome.success is True
        assert outcome.retry_count == 2
        assert bureau.request_count == 3

        assert outcome.report.reference_id == outcome.reference_id
        assert 300 <= outcome.report.score <= 850
        assert outcome.report.risk_band == score_band(outcome.report.score)
