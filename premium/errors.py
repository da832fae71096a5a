"""
Exceptions raised by premium calculation.
"""

from typing import List


class PremiumCalculationError(Exception):
    """Base class for premium calculation failures."""


class MissingParametersError(PremiumCalculationError):
    """Required calculation fields are absent or unusable."""

    def __init__(self, insurance_type: str, missing_fields: List[str]):
        self.insurance_type = insurance_type
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Missing parameters for {insurance_type} insurance: {', '.join(self.missing_fields)}"
        )


class InvalidCalculationInputError(PremiumCalculationError):
    """A field was present but could not be interpreted."""

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = value
        super().__init__(f"Invalid value for {field_name}: {value!r}")


class UnsupportedInsuranceTypeError(PremiumCalculationError):
    """No rule set exists for the requested insurance type."""

    def __init__(self, insurance_type: str):
        self.insurance_type = insurance_type
        super().__init__(f"Premium calculation not yet supported for {insurance_type} insurance")
