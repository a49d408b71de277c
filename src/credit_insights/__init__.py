"""Bank statement insights and resilient credit bureau checks."""

__version__ = "0.1.0"

from .analytics.engine import InsightsEngine, EmptyInputError
from .integrations.bureau_client import BureauClient
from .parsers.csv_parser import StatementRowParser
from .pipeline import InsightsService, InsightsWorker, StatementProcessor

__all__ = [
    '__version__',
    'InsightsEngine',
    'EmptyInputError',
    'BureauClient',
    'StatementRowParser',
    'InsightsService',
    'InsightsWorker',
    'StatementProcessor',
]
