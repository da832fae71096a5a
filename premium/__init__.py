"""
Premium Module for the Insurance Sales Assistant.

This module provides premium-calculation capabilities:
- Insurance-type classification (auto, health, life, business)
- Parameter extraction from free text and conversation history
- Per-product premium rule sets with explained breakdowns
"""

from .errors import (
    InvalidCalculationInputError,
    MissingParametersError,
    PremiumCalculationError,
    UnsupportedInsuranceTypeError,
)
from .insurance_classifier import InsuranceType, InsuranceTypeClassifier
from .parameter_extractor import ParameterExtractor, COMPREHENSIVE, THIRD_PARTY
from .calculator import PremiumCalculator, PremiumQuote
from .rules import DEFAULT_RULES, KeywordRules

__all__ = [
    "InvalidCalculationInputError",
    "MissingParametersError",
    "PremiumCalculationError",
    "UnsupportedInsuranceTypeError",
    "InsuranceType",
    "InsuranceTypeClassifier",
    "ParameterExtractor",
    "COMPREHENSIVE",
    "THIRD_PARTY",
    "PremiumCalculator",
    "PremiumQuote",
    "DEFAULT_RULES",
    "KeywordRules",
]
