"""
Insurance-type classification.

Maps free text to one of the supported product categories using a fixed,
ordered keyword table. First match wins.
"""

from enum import Enum
from typing import Optional

from .rules import DEFAULT_RULES, KeywordRules, contains_any


class InsuranceType(str, Enum):
    """Supported insurance products."""
    AUTO = "auto"
    HEALTH = "health"
    LIFE = "life"
    BUSINESS = "business"


class InsuranceTypeClassifier:
    """Keyword classifier for insurance products."""

    def __init__(self, rules: KeywordRules = DEFAULT_RULES):
        self.rules = rules

    def classify(self, text: str) -> Optional[InsuranceType]:
        """
        Classify text into an insurance type.

        Args:
            text: Free-text message

        Returns:
            InsuranceType, or None when no product keyword is present
        """
        if not text:
            return None
        for type_name, keywords in self.rules.insurance_types:
            if contains_any(text, keywords):
                return InsuranceType(type_name)
        return None

    @staticmethod
    def parse(value: Optional[str]) -> Optional[InsuranceType]:
        """Coerce a stored string (profile, hints) into an InsuranceType."""
        if not value:
            return None
        try:
            return InsuranceType(str(value).strip().lower())
        except ValueError:
            return None
