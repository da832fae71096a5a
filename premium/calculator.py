"""
Premium Calculator.

Self-contained rule sets per insurance product. Each calculation returns a
PremiumQuote whose breakdown exposes every multiplier separately so the
response layer can explain deviations from 1.0.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Tuple, Union

from .errors import (
    InvalidCalculationInputError,
    MissingParametersError,
    UnsupportedInsuranceTypeError,
)
from .insurance_classifier import InsuranceType
from .parameter_extractor import COMPREHENSIVE, THIRD_PARTY

logger = logging.getLogger(__name__)

QUOTE_VALIDITY_DAYS = 30


@dataclass
class PremiumQuote:
    """Calculated premium for one insurance product."""
    insurance_type: str
    annual_premium: int
    monthly_premium: int
    breakdown: Dict[str, Any] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)
    valid_days: int = QUOTE_VALIDITY_DAYS
    is_estimate: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def valid_until(self) -> datetime:
        return self.created_at + timedelta(days=self.valid_days)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "insurance_type": self.insurance_type,
            "annual_premium": self.annual_premium,
            "monthly_premium": self.monthly_premium,
            "breakdown": self.breakdown,
            "parameters": self.parameters,
            "valid_days": self.valid_days,
            "valid_until": self.valid_until.isoformat(),
            "is_estimate": self.is_estimate,
        }


class PremiumCalculator:
    """
    Calculates insurance premiums in whole Ghana cedis.

    Auto:     vehicle_value x 3% x age x location x coverage x history
              x vehicle age x security discount
    Health:   plan base x family x age x smoking x pre-existing conditions
    Life:     (coverage_amount / 1000) x age-bracket rate per thousand
    Business: estimate from property, revenue and headcount x business type
    """

    REQUIRED_FIELDS = {
        InsuranceType.AUTO: ["age", "vehicle_value", "location", "coverage_type"],
        InsuranceType.HEALTH: ["age", "plan_type", "family_size", "smoking_status"],
        InsuranceType.LIFE: ["age", "coverage_amount"],
        InsuranceType.BUSINESS: ["business_type", "employee_count", "property_value", "annual_revenue"],
    }

    MULTIPLIER_KEYS = {
        InsuranceType.AUTO: [
            "age_multiplier", "location_multiplier", "coverage_multiplier",
            "driving_history_multiplier", "vehicle_age_multiplier",
            "security_discount_multiplier",
        ],
        InsuranceType.HEALTH: [
            "family_multiplier", "age_multiplier", "smoking_multiplier",
            "pre_existing_multiplier",
        ],
        InsuranceType.LIFE: ["rate_per_thousand"],
        InsuranceType.BUSINESS: ["business_type_multiplier"],
    }

    # Typical annual premium ranges, shown while parameters are collected
    ESTIMATED_RANGES = {
        InsuranceType.AUTO: (240, 12000),
        InsuranceType.HEALTH: (150, 3200),
        InsuranceType.LIFE: (100, 50000),
        InsuranceType.BUSINESS: (1200, 24000),
    }

    # Auto rules
    AUTO_BASE_RATE = Decimal("0.03")
    AUTO_AGE_BRACKETS = [(25, "1.5"), (30, "1.2"), (50, "1.0"), (65, "1.1")]
    AUTO_AGE_SENIOR = "1.3"
    LOCATION_MULTIPLIERS = {
        "accra": "1.2",
        "kumasi": "1.15",
        "tema": "1.1",
        "takoradi": "1.05",
        "sekondi": "1.05",
        "tamale": "0.95",
    }
    COVERAGE_MULTIPLIERS = {COMPREHENSIVE: "1.0", THIRD_PARTY: "0.3"}
    DRIVING_HISTORY_MULTIPLIERS = {"clean": "0.9", "minor_claims": "1.15", "major_claims": "1.4"}
    VEHICLE_AGE_BRACKETS = [(3, "1.0"), (7, "1.05"), (12, "1.1")]
    VEHICLE_AGE_OLD = "1.2"
    SECURITY_DISCOUNT_PER_FEATURE = Decimal("0.05")
    SECURITY_DISCOUNT_CAP = Decimal("0.15")

    # Health rules
    HEALTH_PLAN_BASE = {"basic": 1200, "standard": 2400, "premium": 4800}
    FAMILY_MULTIPLIERS = {1: "1.0", 2: "1.8", 3: "2.4", 4: "3.0"}
    FAMILY_EXTRA_MEMBER = Decimal("0.5")
    HEALTH_AGE_BRACKETS = [(30, "0.9"), (45, "1.0"), (60, "1.3")]
    HEALTH_AGE_SENIOR = "1.7"
    SMOKER_MULTIPLIER = "1.3"
    CONDITION_LOADING = Decimal("0.15")
    CONDITION_CAP = Decimal("1.6")

    # Life rules: rate per GH₵ 1,000 of cover
    LIFE_RATE_BRACKETS = [(35, "1.5"), (45, "2.5"), (55, "4.5")]
    LIFE_RATE_SENIOR = "8.0"

    # Business estimate
    PROPERTY_RATE = Decimal("0.004")
    REVENUE_RATE = Decimal("0.001")
    PER_EMPLOYEE = Decimal("150")
    BUSINESS_MINIMUM = Decimal("1200")
    BUSINESS_TYPE_MULTIPLIERS = {
        "retail": "1.0",
        "restaurant": "1.3",
        "manufacturing": "1.5",
        "construction": "1.6",
        "transport": "1.4",
        "hospitality": "1.2",
        "professional_services": "0.8",
        "agriculture": "1.1",
        "pharmacy": "1.1",
    }

    def __init__(self, validity_days: int = QUOTE_VALIDITY_DAYS):
        self.validity_days = validity_days

    def calculate(
        self,
        insurance_type: Union[InsuranceType, str],
        params: Dict[str, Any]
    ) -> PremiumQuote:
        """
        Calculate a premium.

        Args:
            insurance_type: Product to price
            params: Calculation parameters

        Returns:
            PremiumQuote

        Raises:
            MissingParametersError: A required field is absent or invalid
            UnsupportedInsuranceTypeError: No rule set for the product
        """
        insurance_type = self._resolve_type(insurance_type)
        values, missing = self._validate(insurance_type, params)
        if missing:
            raise MissingParametersError(insurance_type.value, missing)

        if insurance_type == InsuranceType.AUTO:
            annual, breakdown = self._calculate_auto(values, params)
        elif insurance_type == InsuranceType.HEALTH:
            annual, breakdown = self._calculate_health(values, params)
        elif insurance_type == InsuranceType.LIFE:
            annual, breakdown = self._calculate_life(values)
        else:
            annual, breakdown = self._calculate_business(values)

        annual_premium = _round_cedis(annual)
        monthly_premium = _round_cedis(Decimal(annual_premium) / 12)

        logger.info(
            f"Calculated {insurance_type.value} premium: GH₵{annual_premium} "
            f"(monthly GH₵{monthly_premium})"
        )

        return PremiumQuote(
            insurance_type=insurance_type.value,
            annual_premium=annual_premium,
            monthly_premium=monthly_premium,
            breakdown=breakdown,
            parameters={**params, **_plain(values)},
            valid_days=self.validity_days,
            is_estimate=insurance_type == InsuranceType.BUSINESS,
        )

    def missing_fields(
        self,
        insurance_type: Union[InsuranceType, str],
        params: Dict[str, Any]
    ) -> List[str]:
        """List required fields that are absent or unusable."""
        _, missing = self._validate(self._resolve_type(insurance_type), params)
        return missing

    def estimated_range(self, insurance_type: Union[InsuranceType, str]) -> Tuple[int, int]:
        """Typical annual premium range for a product."""
        return self.ESTIMATED_RANGES[self._resolve_type(insurance_type)]

    @staticmethod
    def describe_adjustments(breakdown: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Express each multiplier as a percentage increase or discount.

        Returns:
            List of {factor, multiplier, percent, direction}
        """
        adjustments = []
        for key, value in breakdown.items():
            if not key.endswith("_multiplier"):
                continue
            multiplier = Decimal(str(value))
            percent = abs((multiplier - 1) * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
            if multiplier > 1:
                direction = "increase"
            elif multiplier < 1:
                direction = "discount"
            else:
                direction = "none"
            adjustments.append({
                "factor": key[: -len("_multiplier")],
                "multiplier": float(multiplier),
                "percent": float(percent),
                "direction": direction,
            })
        return adjustments

    # ── Validation ────────────────────────────────────────

    def _resolve_type(self, insurance_type: Union[InsuranceType, str]) -> InsuranceType:
        if isinstance(insurance_type, InsuranceType):
            return insurance_type
        try:
            return InsuranceType(str(insurance_type).lower())
        except ValueError:
            raise UnsupportedInsuranceTypeError(str(insurance_type))

    def _validate(
        self,
        insurance_type: InsuranceType,
        params: Dict[str, Any]
    ) -> Tuple[Dict[str, Any], List[str]]:
        """Coerce required fields; invalid values are reported as missing."""
        values: Dict[str, Any] = {}
        missing: List[str] = []

        for field_name in self.REQUIRED_FIELDS[insurance_type]:
            raw = params.get(field_name)
            if raw is None or raw == "":
                missing.append(field_name)
                continue
            try:
                values[field_name] = self._coerce(field_name, raw)
            except InvalidCalculationInputError as e:
                logger.warning(f"Discarding calculation input: {e}")
                missing.append(field_name)

        return values, missing

    def _coerce(self, field_name: str, raw: Any) -> Any:
        """Normalise one required field or raise InvalidCalculationInputError."""
        if field_name == "age":
            age = _as_number(field_name, raw)
            if not 16 <= age <= 100:
                raise InvalidCalculationInputError(field_name, raw)
            return int(age)

        if field_name in ("vehicle_value", "coverage_amount", "property_value", "annual_revenue"):
            amount = _as_number(field_name, raw)
            if amount <= 0:
                raise InvalidCalculationInputError(field_name, raw)
            return amount

        if field_name == "family_size":
            size = _as_number(field_name, raw)
            if size < 1 or size != int(size):
                raise InvalidCalculationInputError(field_name, raw)
            return int(size)

        if field_name == "employee_count":
            count = _as_number(field_name, raw)
            if count < 0 or count != int(count):
                raise InvalidCalculationInputError(field_name, raw)
            return int(count)

        text = str(raw).strip().lower()
        allowed = {
            "coverage_type": self.COVERAGE_MULTIPLIERS,
            "plan_type": self.HEALTH_PLAN_BASE,
            "smoking_status": ("smoker", "non_smoker"),
        }.get(field_name)
        if allowed is not None and text not in allowed:
            raise InvalidCalculationInputError(field_name, raw)
        if not text:
            raise InvalidCalculationInputError(field_name, raw)
        return text

    # ── Rule sets ─────────────────────────────────────────

    def _calculate_auto(
        self,
        values: Dict[str, Any],
        params: Dict[str, Any]
    ) -> Tuple[Decimal, Dict[str, Any]]:
        base = values["vehicle_value"] * self.AUTO_BASE_RATE

        age_multiplier = _bracket(values["age"], self.AUTO_AGE_BRACKETS, self.AUTO_AGE_SENIOR)
        location_multiplier = Decimal(self.LOCATION_MULTIPLIERS.get(values["location"], "1.0"))
        coverage_multiplier = Decimal(self.COVERAGE_MULTIPLIERS[values["coverage_type"]])
        history_multiplier = Decimal(
            self.DRIVING_HISTORY_MULTIPLIERS.get(params.get("driving_history"), "1.0")
        )

        vehicle_age = params.get("vehicle_age")
        if isinstance(vehicle_age, (int, float)) and vehicle_age >= 0:
            vehicle_age_multiplier = _bracket(
                vehicle_age, self.VEHICLE_AGE_BRACKETS, self.VEHICLE_AGE_OLD, inclusive=True
            )
        else:
            vehicle_age_multiplier = Decimal("1.0")

        features = params.get("security_features") or []
        discount = min(self.SECURITY_DISCOUNT_PER_FEATURE * len(features), self.SECURITY_DISCOUNT_CAP)
        security_multiplier = Decimal("1") - discount

        annual = (
            base * age_multiplier * location_multiplier * coverage_multiplier
            * history_multiplier * vehicle_age_multiplier * security_multiplier
        )

        breakdown = {
            "base_premium": _round_cedis(base),
            "base_rate": float(self.AUTO_BASE_RATE),
            "age_multiplier": float(age_multiplier),
            "location_multiplier": float(location_multiplier),
            "coverage_multiplier": float(coverage_multiplier),
            "driving_history_multiplier": float(history_multiplier),
            "vehicle_age_multiplier": float(vehicle_age_multiplier),
            "security_discount_multiplier": float(security_multiplier),
        }
        return annual, breakdown

    def _calculate_health(
        self,
        values: Dict[str, Any],
        params: Dict[str, Any]
    ) -> Tuple[Decimal, Dict[str, Any]]:
        base = Decimal(self.HEALTH_PLAN_BASE[values["plan_type"]])

        family_size = values["family_size"]
        if family_size in self.FAMILY_MULTIPLIERS:
            family_multiplier = Decimal(self.FAMILY_MULTIPLIERS[family_size])
        else:
            extra = family_size - max(self.FAMILY_MULTIPLIERS)
            family_multiplier = Decimal(self.FAMILY_MULTIPLIERS[4]) + self.FAMILY_EXTRA_MEMBER * extra

        age_multiplier = _bracket(values["age"], self.HEALTH_AGE_BRACKETS, self.HEALTH_AGE_SENIOR)
        smoking_multiplier = Decimal(
            self.SMOKER_MULTIPLIER if values["smoking_status"] == "smoker" else "1.0"
        )

        conditions = params.get("pre_existing_conditions") or []
        pre_existing_multiplier = min(
            Decimal("1") + self.CONDITION_LOADING * len(conditions), self.CONDITION_CAP
        )

        annual = base * family_multiplier * age_multiplier * smoking_multiplier * pre_existing_multiplier

        breakdown = {
            "base_premium": int(base),
            "plan_type": values["plan_type"],
            "family_multiplier": float(family_multiplier),
            "age_multiplier": float(age_multiplier),
            "smoking_multiplier": float(smoking_multiplier),
            "pre_existing_multiplier": float(pre_existing_multiplier),
        }
        return annual, breakdown

    def _calculate_life(self, values: Dict[str, Any]) -> Tuple[Decimal, Dict[str, Any]]:
        rate = _bracket(values["age"], self.LIFE_RATE_BRACKETS, self.LIFE_RATE_SENIOR)
        units = values["coverage_amount"] / Decimal("1000")
        annual = units * rate

        breakdown = {
            "coverage_amount": _round_cedis(values["coverage_amount"]),
            "rate_per_thousand": float(rate),
            "age_bracket": _life_bracket_label(values["age"]),
        }
        return annual, breakdown

    def _calculate_business(self, values: Dict[str, Any]) -> Tuple[Decimal, Dict[str, Any]]:
        property_component = values["property_value"] * self.PROPERTY_RATE
        revenue_component = values["annual_revenue"] * self.REVENUE_RATE
        staff_component = self.PER_EMPLOYEE * values["employee_count"]
        type_multiplier = Decimal(self.BUSINESS_TYPE_MULTIPLIERS.get(values["business_type"], "1.0"))

        annual = max(
            (property_component + revenue_component + staff_component) * type_multiplier,
            self.BUSINESS_MINIMUM,
        )

        breakdown = {
            "property_component": _round_cedis(property_component),
            "revenue_component": _round_cedis(revenue_component),
            "staff_component": _round_cedis(staff_component),
            "business_type_multiplier": float(type_multiplier),
            "minimum_premium": int(self.BUSINESS_MINIMUM),
        }
        return annual, breakdown


def _as_number(field_name: str, raw: Any) -> Decimal:
    if isinstance(raw, bool):
        raise InvalidCalculationInputError(field_name, raw)
    try:
        value = Decimal(str(raw).replace(",", "").strip())
    except ArithmeticError:
        raise InvalidCalculationInputError(field_name, raw)
    if not value.is_finite():
        raise InvalidCalculationInputError(field_name, raw)
    return value


def _plain(values: Dict[str, Any]) -> Dict[str, Any]:
    """Convert Decimal fields back to int/float for serialisation."""
    plain = {}
    for key, value in values.items():
        if isinstance(value, Decimal):
            value = int(value) if value == value.to_integral_value() else float(value)
        plain[key] = value
    return plain


def _bracket(
    value: Any,
    brackets: List[Tuple[int, str]],
    above: str,
    inclusive: bool = False
) -> Decimal:
    """Look up the multiplier for the first bracket whose bound fits value."""
    for bound, multiplier in brackets:
        if value < bound or (inclusive and value == bound):
            return Decimal(multiplier)
    return Decimal(above)


def _life_bracket_label(age: int) -> str:
    if age < 35:
        return "under_35"
    if age < 45:
        return "35_44"
    if age < 55:
        return "45_54"
    return "55_plus"


def _round_cedis(amount: Decimal) -> int:
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
