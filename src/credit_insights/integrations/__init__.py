"""Credit bureau integration"""

from .bureau_client import (
    BureauClient,
    IntegrationError,
    PermanentIntegrationError,
    TransientIntegrationError,
    RETRYABLE_STATUS_CODES,
)
from .mock_bureau import MockBureau, generate_mock_credit_data

__all__ = [
    'BureauClient',
    'IntegrationError',
    'PermanentIntegrationError',
    'TransientIntegrationError',
    'RETRYABLE_STATUS_CODES',
    'MockBureau',
    'generate_mock_credit_data',
]
