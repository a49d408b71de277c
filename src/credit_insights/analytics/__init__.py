"""Statement analytics"""

from .engine import InsightsEngine, EmptyInputError

__all__ = ['InsightsEngine', 'EmptyInputError']
