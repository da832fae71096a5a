"""Tests for premium parameter extraction and insurance-type classification."""

import pytest

from llm.conversation_store import ConversationMessage
from premium.insurance_classifier import InsuranceType, InsuranceTypeClassifier
from premium.parameter_extractor import COMPREHENSIVE, THIRD_PARTY, ParameterExtractor


@pytest.fixture
def extractor():
    return ParameterExtractor()


@pytest.fixture
def classifier():
    return InsuranceTypeClassifier()


# ── Insurance-Type Classifier ─────────────────────────

class TestInsuranceTypeClassifier:
    def test_auto(self, classifier):
        assert classifier.classify("I need insurance for my car") == InsuranceType.AUTO

    def test_health(self, classifier):
        assert classifier.classify("medical cover for my family") == InsuranceType.HEALTH

    def test_life(self, classifier):
        assert classifier.classify("life insurance with a funeral benefit") == InsuranceType.LIFE

    def test_business(self, classifier):
        assert classifier.classify("cover for my shop") == InsuranceType.BUSINESS

    def test_first_match_wins(self, classifier):
        # auto is checked before business
        assert classifier.classify("my company car") == InsuranceType.AUTO

    def test_whole_words_only(self, classifier):
        assert classifier.classify("I was careful") is None

    def test_unknown(self, classifier):
        assert classifier.classify("hello there") is None
        assert classifier.classify("") is None

    def test_parse(self, classifier):
        assert classifier.parse("Health") == InsuranceType.HEALTH
        assert classifier.parse("pets") is None
        assert classifier.parse(None) is None


# ── Auto Parameters ───────────────────────────────────

class TestAutoExtraction:
    def test_full_auto_message(self, extractor):
        params = extractor.extract(
            "I need car insurance. I'm 41, my car is worth GH₵ 400,000, I live in Accra, comprehensive"
        )
        assert params["insurance_type"] == "auto"
        assert params["age"] == 41
        assert params["vehicle_value"] == 400_000
        assert params["location"] == "accra"
        assert params["coverage_type"] == COMPREHENSIVE

    def test_amount_suffixes(self, extractor):
        assert extractor.extract("my car is worth 80k")["vehicle_value"] == 80_000
        assert extractor.extract("vehicle valued at 1.2m cedis")["vehicle_value"] == 1_200_000

    def test_small_numbers_are_not_amounts(self, extractor):
        params = extractor.extract("my car has 4 doors and costs 500")
        assert "vehicle_value" not in params

    def test_vehicle_age_is_not_driver_age(self, extractor):
        params = extractor.extract("my car is 5 years old")
        assert params["vehicle_age"] == 5
        assert "age" not in params

    def test_driver_age_out_of_range_discarded(self, extractor):
        assert "age" not in extractor.extract("I am 7 years old")
        assert "age" not in extractor.extract("age 150")

    def test_third_party(self, extractor):
        assert extractor.extract("how much is third party instead")["coverage_type"] == THIRD_PARTY

    def test_rejected_coverage(self, extractor):
        params = extractor.extract("third party instead of comprehensive please")
        assert params["coverage_type"] == THIRD_PARTY
        params = extractor.extract("comprehensive rather than third party")
        assert params["coverage_type"] == COMPREHENSIVE

    def test_driving_history_and_security(self, extractor):
        params = extractor.extract("clean driving record and the car has a tracker and an alarm")
        assert params["driving_history"] == "clean"
        assert params["security_features"] == ["tracker", "alarm"]


# ── Other Products ────────────────────────────────────

class TestOtherProducts:
    def test_health(self, extractor):
        params = extractor.extract("health cover, standard plan, family of four, I'm 38 and a non-smoker")
        assert params["insurance_type"] == "health"
        assert params["plan_type"] == "standard"
        assert params["family_size"] == 4
        assert params["age"] == 38
        assert params["smoking_status"] == "non_smoker"

    def test_children_count(self, extractor):
        assert extractor.extract("me, my wife and 3 children")["family_size"] == 5

    def test_conditions(self, extractor):
        params = extractor.extract("I have diabetes and high blood pressure", InsuranceType.HEALTH)
        assert params["pre_existing_conditions"] == ["diabetes", "hypertension"]
        assert extractor.extract("no pre-existing conditions")["pre_existing_conditions"] == []

    def test_life_unlabelled_amount_uses_hint(self, extractor):
        params = extractor.extract("GH₵ 200,000 please", InsuranceType.LIFE)
        assert params["coverage_amount"] == 200_000

    def test_business(self, extractor):
        params = extractor.extract(
            "business insurance for my pharmacy, 12 employees, "
            "property worth GH₵ 500,000 and revenue of GH₵ 1,200,000"
        )
        assert params["insurance_type"] == "business"
        assert params["business_type"] == "pharmacy"
        assert params["employee_count"] == 12
        assert params["property_value"] == 500_000
        assert params["annual_revenue"] == 1_200_000


# ── History, Merge and Defaults ───────────────────────

class TestHistoryAndDefaults:
    def test_history_skips_assistant_turns(self, extractor):
        messages = [
            ConversationMessage("user", "car insurance please, I'm 30"),
            ConversationMessage("assistant", "e.g. my car is worth 80,000 cedis, Kumasi"),
            {"role": "user", "content": "my car is worth 90,000 cedis"},
        ]
        params = extractor.extract_from_history(messages, InsuranceType.AUTO)
        assert params["age"] == 30
        assert params["vehicle_value"] == 90_000
        assert "location" not in params

    def test_history_messages_are_extracted_separately(self, extractor):
        messages = [
            {"role": "user", "content": "what does the policy include?"},
            {"role": "user", "content": "60,000 cedis"},
        ]
        params = extractor.extract_from_history(messages, InsuranceType.AUTO)
        assert params["vehicle_value"] == 60_000
        assert "coverage_amount" not in params

    def test_later_history_wins(self, extractor):
        messages = [
            {"role": "user", "content": "I live in Kumasi"},
            {"role": "user", "content": "actually I moved to Tema"},
        ]
        assert extractor.extract_from_history(messages)["location"] == "tema"

    def test_merge_current_wins(self, extractor):
        merged = extractor.merge({"age": 35}, {"age": 30, "location": "accra"})
        assert merged == {"age": 35, "location": "accra"}

    def test_defaults_never_shadow_values(self, extractor):
        params = extractor.apply_defaults({"location": "kumasi"}, InsuranceType.AUTO)
        assert params["location"] == "kumasi"
        assert params["coverage_type"] == COMPREHENSIVE

    def test_defaults_for_non_auto(self, extractor):
        params = extractor.apply_defaults({}, InsuranceType.LIFE)
        assert params == {"location": "accra"}


# ── Contact Details ───────────────────────────────────

class TestContactExtraction:
    def test_local_phone(self, extractor):
        assert extractor.extract_contact("call me on 024 412 3456") == {"phone": "+233244123456"}

    def test_international_phone_and_email(self, extractor):
        contact = extractor.extract_contact("+233 20 111 2222 or Kofi.Mensah@Example.com")
        assert contact["phone"] == "+233201112222"
        assert contact["email"] == "kofi.mensah@example.com"

    def test_nothing_found(self, extractor):
        assert extractor.extract_contact("no thanks") == {}
