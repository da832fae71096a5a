"""Tests for the premium calculator."""

import pytest

from premium.calculator import PremiumCalculator
from premium.errors import MissingParametersError, UnsupportedInsuranceTypeError
from premium.insurance_classifier import InsuranceType


@pytest.fixture
def calculator():
    return PremiumCalculator()


@pytest.fixture
def auto_params():
    return {
        "age": 41,
        "vehicle_value": 400_000,
        "location": "accra",
        "coverage_type": "comprehensive",
    }


# ── Auto ──────────────────────────────────────────────

class TestAutoPremium:
    def test_comprehensive_accra(self, calculator, auto_params):
        quote = calculator.calculate(InsuranceType.AUTO, auto_params)
        assert quote.annual_premium == 14_400
        assert quote.monthly_premium == 1_200
        assert quote.breakdown["base_premium"] == 12_000
        assert quote.breakdown["location_multiplier"] == 1.2
        assert quote.is_estimate is False

    def test_third_party_is_thirty_percent(self, calculator, auto_params):
        auto_params["coverage_type"] = "third_party"
        assert calculator.calculate("auto", auto_params).annual_premium == 4_320

    def test_young_driver_loading(self, calculator, auto_params):
        auto_params["age"] = 22
        assert calculator.calculate("auto", auto_params).annual_premium == 21_600

    def test_unknown_city_has_no_loading(self, calculator, auto_params):
        auto_params["location"] = "ho"
        assert calculator.calculate("auto", auto_params).annual_premium == 12_000

    def test_optional_factors(self, calculator, auto_params):
        auto_params.update({
            "driving_history": "clean",
            "vehicle_age": 10,
            "security_features": ["tracker", "immobilizer", "alarm", "dashcam"],
        })
        quote = calculator.calculate("auto", auto_params)
        # 12000 x 1.2 x 0.9 x 1.1 x 0.85 (discount capped at 15%)
        assert quote.annual_premium == 12_118
        assert quote.breakdown["security_discount_multiplier"] == 0.85

    def test_string_inputs_are_coerced(self, calculator):
        quote = calculator.calculate("AUTO", {
            "age": "41",
            "vehicle_value": "400,000",
            "location": "accra",
            "coverage_type": "Comprehensive",
        })
        assert quote.annual_premium == 14_400


# ── Health, Life, Business ────────────────────────────

class TestOtherPremiums:
    def test_health_family(self, calculator):
        quote = calculator.calculate("health", {
            "age": 38,
            "plan_type": "standard",
            "family_size": 4,
            "smoking_status": "non_smoker",
        })
        assert quote.annual_premium == 7_200
        assert quote.monthly_premium == 600

    def test_health_smoker_with_conditions(self, calculator):
        quote = calculator.calculate("health", {
            "age": 28,
            "plan_type": "basic",
            "family_size": 1,
            "smoking_status": "smoker",
            "pre_existing_conditions": ["diabetes"],
        })
        # 1200 x 0.9 x 1.3 x 1.15
        assert quote.annual_premium == 1_615

    def test_large_family(self, calculator):
        quote = calculator.calculate("health", {
            "age": 40, "plan_type": "basic", "family_size": 6, "smoking_status": "non_smoker",
        })
        assert quote.breakdown["family_multiplier"] == 4.0
        assert quote.annual_premium == 4_800

    def test_life_rate_per_thousand(self, calculator):
        quote = calculator.calculate("life", {"age": 30, "coverage_amount": 200_000})
        assert quote.annual_premium == 300
        assert quote.breakdown["age_bracket"] == "under_35"

    def test_life_senior_rate(self, calculator):
        quote = calculator.calculate("life", {"age": 60, "coverage_amount": 100_000})
        assert quote.annual_premium == 800

    def test_business_is_an_estimate(self, calculator):
        quote = calculator.calculate("business", {
            "business_type": "restaurant",
            "employee_count": 10,
            "property_value": 500_000,
            "annual_revenue": 1_000_000,
        })
        # (2000 + 1000 + 1500) x 1.3
        assert quote.annual_premium == 5_850
        assert quote.is_estimate is True

    def test_business_minimum(self, calculator):
        quote = calculator.calculate("business", {
            "business_type": "professional_services",
            "employee_count": 1,
            "property_value": 20_000,
            "annual_revenue": 50_000,
        })
        assert quote.annual_premium == 1_200


# ── Validation ────────────────────────────────────────

class TestValidation:
    def test_missing_fields_listed(self, calculator):
        assert calculator.missing_fields("auto", {"age": 41}) == [
            "vehicle_value", "location", "coverage_type",
        ]

    def test_missing_raises(self, calculator):
        with pytest.raises(MissingParametersError) as exc:
            calculator.calculate("life", {"age": 30})
        assert exc.value.missing_fields == ["coverage_amount"]

    def test_invalid_values_reported_as_missing(self, calculator, auto_params):
        auto_params["age"] = 12
        auto_params["coverage_type"] = "platinum"
        assert calculator.missing_fields("auto", auto_params) == ["age", "coverage_type"]

    def test_unsupported_type(self, calculator):
        with pytest.raises(UnsupportedInsuranceTypeError):
            calculator.calculate("travel", {})

    def test_estimated_range(self, calculator):
        assert calculator.estimated_range("auto") == (240, 12_000)


# ── Adjustments ───────────────────────────────────────

class TestAdjustments:
    def test_describe_adjustments(self, calculator, auto_params):
        auto_params["driving_history"] = "clean"
        quote = calculator.calculate("auto", auto_params)
        adjustments = {a["factor"]: a for a in calculator.describe_adjustments(quote.breakdown)}

        assert adjustments["location"]["direction"] == "increase"
        assert adjustments["location"]["percent"] == 20.0
        assert adjustments["driving_history"]["direction"] == "discount"
        assert adjustments["driving_history"]["percent"] == 10.0
        assert adjustments["age"]["direction"] == "none"
        assert "base" not in adjustments

    def test_quote_to_dict(self, calculator, auto_params):
        data = calculator.calculate("auto", auto_params).to_dict()
        assert data["insurance_type"] == "auto"
        assert data["valid_days"] == 30
        assert "valid_until" in data
