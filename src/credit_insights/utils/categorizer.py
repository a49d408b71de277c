"""Keyword-based transaction categorization and income detection.

Categories are matched by scanning an ordered table of keyword sets against
the lower-cased description. The first category with a substring hit wins;
there is no scoring across categories.
"""

from typing import Iterable, Optional, Tuple, FrozenSet

from ..models.core import TransactionCategory


# Order matters: "food delivery" is a dining keyword but "food" hits groceries first.
DEFAULT_CATEGORY_KEYWORDS: Tuple[Tuple[TransactionCategory, Tuple[str, ...]], ...] = (
    (TransactionCategory.GROCERIES, (
        'supermarket', 'grocery', 'food', 'market', 'tesco', 'sainsbury', 'asda'
    )),
    (TransactionCategory.ENTERTAINMENT, (
        'cinema', 'movie', 'netflix', 'spotify', 'entertainment', 'game', 'theatre'
    )),
    (TransactionCategory.TRANSPORT, (
        'uber', 'taxi', 'bus', 'train', 'fuel', 'petrol', 'parking', 'transport'
    )),
    (TransactionCategory.UTILITIES, (
        'electric', 'gas', 'water', 'internet', 'phone', 'utility', 'council tax'
    )),
    (TransactionCategory.HEALTHCARE, (
        'pharmacy', 'doctor', 'hospital', 'health', 'medical', 'dental'
    )),
    (TransactionCategory.SHOPPING, (
        'amazon', 'shop', 'store', 'retail', 'purchase', 'online'
    )),
    (TransactionCategory.DINING, (
        'restaurant', 'cafe', 'takeaway', 'mcdonald', 'kfc', 'dining', 'food delivery'
    )),
    (TransactionCategory.EDUCATION, (
        'school', 'university', 'course', 'education', 'tuition', 'books'
    )),
    (TransactionCategory.INVESTMENT, (
        'investment', 'stocks', 'shares', 'trading', 'crypto', 'fund'
    )),
    (TransactionCategory.LOAN_PAYMENT, (
        'loan', 'mortgage', 'credit card', 'repayment', 'installment'
    )),
    (TransactionCategory.FEES_CHARGES, (
        'fee', 'charge', 'penalty', 'overdraft', 'commission', 'service charge'
    )),
)

DEFAULT_INCOME_KEYWORDS: FrozenSet[str] = frozenset({
    'salary', 'wage', 'income', 'dividend', 'interest', 'refund', 'deposit',
    'credit transfer', 'payment received', 'cashback', 'bonus', 'commission'
})

DEFAULT_CATEGORY = TransactionCategory.OTHER
EXACT_MATCH_CONFIDENCE = 1.0
PARTIAL_MATCH_CONFIDENCE = 0.8
DEFAULT_CONFIDENCE = 0.1


class TransactionCategorizer:
    """Assigns a category and confidence to transaction descriptions.

    The keyword tables are frozen at construction, so one instance can be
    shared between threads.
    """

    def __init__(self,
                 category_keywords: Optional[Iterable[Tuple[TransactionCategory, Iterable[str]]]] = None,
                 income_keywords: Optional[Iterable[str]] = None):
        if category_keywords is None:
            category_keywords = DEFAULT_CATEGORY_KEYWORDS
        if income_keywords is None:
            income_keywords = DEFAULT_INCOME_KEYWORDS

        self.category_keywords = tuple(
            (category, tuple(keyword.lower() for keyword in keywords))
            for category, keywords in category_keywords
        )
        self.income_keywords = frozenset(keyword.lower() for keyword in income_keywords)

    def categorize(self, description: str) -> Tuple[TransactionCategory, float]:
        """Return the first matching category and its confidence.

        Args:
            description: Transaction description text

        Returns:
            Tuple of (category, confidence). Confidence is 1.0 when the whole
            description equals the keyword, 0.8 for a partial match and 0.1
            for the catch-all category.
        """
        lower_description = (description or "").lower()

        for category, keywords in self.category_keywords:
            for keyword in keywords:
                if keyword in lower_description:
                    if lower_description == keyword:
                        return category, EXACT_MATCH_CONFIDENCE
                    return category, PARTIAL_MATCH_CONFIDENCE

        return DEFAULT_CATEGORY, DEFAULT_CONFIDENCE

    def is_income(self, description: str) -> bool:
        """Check whether a description contains any income keyword"""
        lower_description = (description or "").lower()
        return any(keyword in lower_description for keyword in self.income_keywords)
