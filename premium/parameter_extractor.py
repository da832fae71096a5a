"""
Parameter Extraction for premium calculation.

Pulls calculation fields out of free text:
- Age, vehicle value, coverage amount
- Location and coverage type
- Family size, smoking status, plan tier
- Vehicle age, driving history, security features
- Business details (type, headcount, property value, revenue)

Extraction is pure: the same text always yields the same fields, and a
field is only returned when the text states it.
"""

import re
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .insurance_classifier import InsuranceType, InsuranceTypeClassifier
from .rules import DEFAULT_RULES, KeywordRules, contains_any, phrase_pattern

logger = logging.getLogger(__name__)

COMPREHENSIVE = "comprehensive"
THIRD_PARTY = "third_party"

MIN_AGE = 16
MAX_AGE = 100
MIN_MONETARY_VALUE = 1000

WORD_NUMBERS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}


class ParameterExtractor:
    """
    Extracts premium-calculation parameters from customer messages.

    Defaults are never applied during extraction. Call apply_defaults()
    after merging history so a default cannot shadow a value the customer
    gave in an earlier message.
    """

    # Words in front of an amount that say which field it belongs to
    AMOUNT_LABELS = {
        "vehicle_value": ["car", "vehicle", "auto", "motor", "truck", "taxi"],
        "coverage_amount": [
            "cover", "coverage", "sum assured", "benefit", "policy", "payout", "insured for",
        ],
        "annual_revenue": ["revenue", "turnover", "sales", "annual income"],
        "property_value": ["property", "premises", "building", "stock", "assets", "equipment", "shop"],
    }

    UNLABELLED_AMOUNT_FIELD = {
        InsuranceType.AUTO: "vehicle_value",
        InsuranceType.LIFE: "coverage_amount",
        InsuranceType.HEALTH: "coverage_amount",
        InsuranceType.BUSINESS: "property_value",
    }

    SECURITY_FEATURES = {
        "tracker": ["tracker", "tracking device", "gps"],
        "immobilizer": ["immobilizer", "immobiliser"],
        "alarm": ["alarm", "car alarm"],
        "dashcam": ["dashcam", "dash cam"],
        "steering_lock": ["steering lock", "anti-theft"],
    }

    CONDITIONS = {
        "diabetes": ["diabetes", "diabetic"],
        "hypertension": ["hypertension", "high blood pressure"],
        "asthma": ["asthma", "asthmatic"],
        "heart_disease": ["heart disease", "heart condition"],
        "sickle_cell": ["sickle cell"],
        "cancer": ["cancer"],
        "kidney_disease": ["kidney disease"],
    }

    BUSINESS_TYPES = {
        "retail": ["shop", "store", "retail", "supermarket", "boutique", "provision store"],
        "restaurant": ["restaurant", "chop bar", "eatery", "catering", "bakery"],
        "manufacturing": ["factory", "manufacturing", "production", "processing"],
        "construction": ["construction", "contractor", "building firm"],
        "transport": ["transport", "logistics", "haulage", "delivery"],
        "hospitality": ["hotel", "guest house", "lodge", "hospitality"],
        "professional_services": ["office", "consulting", "consultancy", "law firm", "accounting"],
        "agriculture": ["farm", "farming", "agric", "agriculture", "poultry"],
        "pharmacy": ["pharmacy", "chemist", "drug store"],
    }

    NON_SMOKER_PHRASES = [
        "non-smoker", "non smoker", "nonsmoker", "don't smoke", "dont smoke",
        "do not smoke", "never smoked", "not a smoker", "quit smoking",
    ]
    SMOKER_PHRASES = ["smoker", "i smoke", "smoke daily", "smoking"]

    def __init__(
        self,
        rules: KeywordRules = DEFAULT_RULES,
        default_city: str = "accra",
        classifier: Optional[InsuranceTypeClassifier] = None,
    ):
        """
        Initialize the parameter extractor.

        Args:
            rules: Keyword tables (cities, coverage phrases)
            default_city: City used when no location is known
            classifier: Insurance-type classifier
        """
        self.rules = rules
        self.default_city = default_city.lower()
        self.classifier = classifier or InsuranceTypeClassifier(rules)

        self._build_patterns()

    def _build_patterns(self):
        """Build regex patterns for parameter extraction."""
        # Vehicle-age phrases are removed before looking for the driver's age
        self.vehicle_age_patterns = [
            re.compile(
                r'\b(?:car|vehicle|auto|truck|it)\s+is\s+(\d{1,2})\s*(?:years?|yrs?)\s*old\b',
                re.IGNORECASE
            ),
            re.compile(
                r'\b(\d{1,2})[\s-]*(?:years?|yrs?)[\s-]*old\s+(?:car|vehicle|truck)\b',
                re.IGNORECASE
            ),
        ]

        self.age_patterns = [
            re.compile(r'\bage(?:d)?\s*(?:is|of|:|=)?\s*(\d{1,3})\b(?![,.]\d)', re.IGNORECASE),
            re.compile(r'\b(\d{1,3})\s*(?:years?|yrs?)[\s-]*old\b', re.IGNORECASE),
            re.compile(r"\b(?:i am|i'm|i’m|im)\s+(\d{1,3})\b(?![,.]\d)(?!\s*(?:%|cedis|ghs|k\b))", re.IGNORECASE),
            re.compile(r'^\s*(\d{1,3})\s*,(?!\d)'),
            re.compile(r'\b(\d{1,3})\s*(?:yo|y/o)\b', re.IGNORECASE),
        ]

        amount = r'(\d[\d,]*(?:\.\d+)?)\s*(k|m|million|thousand)?\b'
        currency = r'(?:gh₵|gh¢|ghs|ghc|₵|¢)'
        self.amount_patterns = [
            re.compile(currency + r'\s*' + amount, re.IGNORECASE),
            re.compile(amount + r'\s*(?:cedis|cedi|ghs|ghc)\b', re.IGNORECASE),
            re.compile(
                r'(?:worth|value(?:d)?(?:\s+is|\s+of|\s+at)?|costs?|sum assured(?:\s+of)?|cover(?:age)?\s+of)'
                r'\s*:?\s*(?:about|around|approximately|roughly)?\s*' + currency + r'?\s*' + amount,
                re.IGNORECASE
            ),
            re.compile(r'\b(\d+(?:\.\d+)?)\s*(k|m)\b', re.IGNORECASE),
        ]

        self.coverage_rejection_pattern = re.compile(
            r'(?:instead of|rather than|from|not)\s+(?:the\s+|a\s+)?'
            r'(third[\s-]?party|3rd party|comprehensive|comp)\b',
            re.IGNORECASE
        )

        number = r'(\d{1,2}|' + '|'.join(WORD_NUMBERS) + r')'
        self.family_of_pattern = re.compile(r'\bfamily of\s+' + number + r'\b', re.IGNORECASE)
        self.children_count_pattern = re.compile(number + r'\s+(?:children|kids|child)\b', re.IGNORECASE)

        self.employee_patterns = [
            re.compile(r'\b(\d{1,5})\s+(?:employees|staff|workers|people working)\b', re.IGNORECASE),
            re.compile(r'\b(?:employ|staff of|team of)\s+(\d{1,5})\b', re.IGNORECASE),
        ]

        self.plan_patterns = [
            re.compile(r'\b(basic|standard|premium)\s+(?:plan|tier|package|cover|coverage|option)\b', re.IGNORECASE),
            re.compile(r'\b(?:plan|tier|package)\s*(?:is|:)?\s*(basic|standard|premium)\b', re.IGNORECASE),
        ]

        self.clean_record_pattern = re.compile(
            r'\b(?:no\s+(?:\w+\s+)?(?:accidents?|claims?)|clean\s+(?:driving\s+)?record|'
            r'never had an accident|accident[\s-]free)\b',
            re.IGNORECASE
        )

        # Ghana phone numbers: +233 / 233 / 0 followed by nine digits
        self.phone_pattern = re.compile(r'(?:\+?233|0)[\s-]?\d{2}[\s-]?\d{3}[\s-]?\d{4}\b')
        self.email_pattern = re.compile(
            r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'
        )

    def extract(
        self,
        text: str,
        insurance_type: Optional[InsuranceType] = None
    ) -> Dict[str, Any]:
        """
        Extract explicitly stated parameters from a single message.

        Args:
            text: Message text
            insurance_type: Product context used to label bare amounts

        Returns:
            Dict of the fields found (missing fields are absent)
        """
        params: Dict[str, Any] = {}
        if not text:
            return params

        text_lower = text.lower()

        detected = self.classifier.classify(text)
        if detected:
            params["insurance_type"] = detected.value
        hint = insurance_type or detected

        vehicle_age, age_text = self._extract_vehicle_age(text)
        if vehicle_age is not None:
            params["vehicle_age"] = vehicle_age

        age = self._extract_age(age_text)
        if age is not None:
            params["age"] = age

        params.update(self._extract_amounts(text, hint))

        location = self._extract_location(text_lower)
        if location:
            params["location"] = location

        coverage_type = self._extract_coverage_type(text)
        if coverage_type:
            params["coverage_type"] = coverage_type

        family_size = self._extract_family_size(text_lower)
        if family_size is not None:
            params["family_size"] = family_size

        smoking_status = self._extract_smoking_status(text_lower)
        if smoking_status:
            params["smoking_status"] = smoking_status

        plan_type = self._extract_plan_type(text_lower, hint)
        if plan_type:
            params["plan_type"] = plan_type

        driving_history = self._extract_driving_history(text_lower)
        if driving_history:
            params["driving_history"] = driving_history

        features = self._match_groups(text_lower, self.SECURITY_FEATURES)
        if features:
            params["security_features"] = features

        conditions = self._extract_conditions(text_lower)
        if conditions is not None:
            params["pre_existing_conditions"] = conditions

        business_type = self._extract_business_type(text_lower, hint)
        if business_type:
            params["business_type"] = business_type

        employee_count = self._extract_employee_count(text)
        if employee_count is not None:
            params["employee_count"] = employee_count

        return params

    def extract_from_history(
        self,
        messages: Iterable[Any],
        insurance_type: Optional[InsuranceType] = None
    ) -> Dict[str, Any]:
        """
        Re-run extraction over the customer's messages, oldest first.

        Later messages overwrite earlier ones field by field. Assistant
        turns are skipped because they repeat quoted figures and example
        values that the customer never stated. Each message is extracted
        on its own rather than as one concatenated transcript, so a label
        at the end of one message cannot claim an amount in the next (see
        "History extraction" in DESIGN.md).
        """
        params: Dict[str, Any] = {}
        for message in messages:
            role, content = _role_and_content(message)
            if role != "user" or not content:
                continue
            params.update(self.extract(content, insurance_type))
        return params

    @staticmethod
    def merge(current: Dict[str, Any], historical: Dict[str, Any]) -> Dict[str, Any]:
        """Merge history with the current message; current values win."""
        return {**historical, **current}

    def apply_defaults(
        self,
        params: Dict[str, Any],
        insurance_type: Optional[InsuranceType] = None
    ) -> Dict[str, Any]:
        """Fill the non-critical fields that have safe defaults."""
        result = dict(params)
        result.setdefault("location", self.default_city)
        if insurance_type in (None, InsuranceType.AUTO):
            result.setdefault("coverage_type", COMPREHENSIVE)
        return result

    def extract_contact(self, text: str) -> Dict[str, str]:
        """Extract a phone number and e-mail address for lead capture."""
        contact: Dict[str, str] = {}
        if not text:
            return contact

        phone_match = self.phone_pattern.search(text)
        if phone_match:
            digits = re.sub(r'\D', '', phone_match.group(0))
            if digits.startswith("233"):
                digits = digits[3:]
            elif digits.startswith("0"):
                digits = digits[1:]
            if len(digits) == 9:
                contact["phone"] = f"+233{digits}"

        email_match = self.email_pattern.search(text)
        if email_match:
            contact["email"] = email_match.group(0).lower()

        return contact

    # ── Field extractors ──────────────────────────────────

    def _extract_vehicle_age(self, text: str) -> Tuple[Optional[int], str]:
        """Return the vehicle age and the text with vehicle-age phrases removed."""
        vehicle_age = None
        for pattern in self.vehicle_age_patterns:
            match = pattern.search(text)
            if match and vehicle_age is None:
                vehicle_age = int(match.group(1))
            text = pattern.sub(" ", text)
        return vehicle_age, text

    def _extract_age(self, text: str) -> Optional[int]:
        """Extract the customer's age; out-of-range numbers are discarded."""
        for pattern in self.age_patterns:
            for match in pattern.finditer(text):
                age = int(match.group(1))
                if MIN_AGE <= age <= MAX_AGE:
                    return age
        return None

    def _extract_amounts(
        self,
        text: str,
        hint: Optional[InsuranceType]
    ) -> Dict[str, int]:
        """Extract monetary amounts and label them by nearby words."""
        found: Dict[str, int] = {}
        seen_spans: List[Tuple[int, int]] = []

        for pattern in self.amount_patterns:
            for match in pattern.finditer(text):
                span = match.span(1)
                if any(s[0] <= span[0] < s[1] for s in seen_spans):
                    continue
                value = _parse_amount(match.group(1), match.group(2))
                if value is None or value <= MIN_MONETARY_VALUE:
                    continue
                seen_spans.append(span)

                window = text[max(0, match.start() - 40):span[0]].lower()
                field_name = self._label_amount(window, hint)
                found.setdefault(field_name, value)

        return found

    def _label_amount(self, window: str, hint: Optional[InsuranceType]) -> str:
        """Pick the field whose label word sits closest to the amount."""
        best_field, best_pos = None, -1
        for field_name, labels in self.AMOUNT_LABELS.items():
            for label in labels:
                for match in phrase_pattern(label).finditer(window):
                    if match.start() > best_pos:
                        best_field, best_pos = field_name, match.start()
        if best_field:
            return best_field
        return self.UNLABELLED_AMOUNT_FIELD.get(hint, "vehicle_value")

    def _extract_location(self, text_lower: str) -> Optional[str]:
        """Extract a known Ghanaian city."""
        for city in self.rules.cities:
            if contains_any(text_lower, [city]):
                return city
        return None

    def _extract_coverage_type(self, text: str) -> Optional[str]:
        """Extract comprehensive vs third-party cover."""
        third_party = contains_any(text, self.rules.third_party_phrases)
        comprehensive = contains_any(text, self.rules.comprehensive_phrases)

        if third_party and comprehensive:
            rejected = self.coverage_rejection_pattern.search(text)
            if rejected:
                rejected_text = rejected.group(1).lower()
                if rejected_text.startswith("comp"):
                    return THIRD_PARTY
                return COMPREHENSIVE
            tp_pos = min(
                m.start() for m in (phrase_pattern(p).search(text) for p in self.rules.third_party_phrases) if m
            )
            comp_pos = min(
                m.start() for m in (phrase_pattern(p).search(text) for p in self.rules.comprehensive_phrases) if m
            )
            return THIRD_PARTY if tp_pos < comp_pos else COMPREHENSIVE

        if third_party:
            return THIRD_PARTY
        if comprehensive:
            return COMPREHENSIVE
        return None

    def _extract_family_size(self, text_lower: str) -> Optional[int]:
        """Extract family size from phrases like 'family of 4' or '2 children'."""
        match = self.family_of_pattern.search(text_lower)
        if match:
            return _to_int(match.group(1))

        match = self.children_count_pattern.search(text_lower)
        if match:
            return _to_int(match.group(1)) + 2

        if contains_any(text_lower, ["children", "kids"]):
            return 4
        if contains_any(text_lower, ["married", "wife", "husband", "spouse"]):
            return 2
        if contains_any(text_lower, ["single", "just me", "only me", "myself only"]):
            return 1
        return None

    def _extract_smoking_status(self, text_lower: str) -> Optional[str]:
        """Extract smoking status; non-smoker phrases take precedence."""
        if contains_any(text_lower, self.NON_SMOKER_PHRASES):
            return "non_smoker"
        if contains_any(text_lower, self.SMOKER_PHRASES):
            return "smoker"
        return None

    def _extract_plan_type(self, text_lower: str, hint: Optional[InsuranceType]) -> Optional[str]:
        """Extract a health plan tier."""
        for pattern in self.plan_patterns:
            match = pattern.search(text_lower)
            if match:
                return match.group(1)
        if hint == InsuranceType.HEALTH:
            for tier in ("basic", "standard"):
                if contains_any(text_lower, [tier]):
                    return tier
        return None

    def _extract_driving_history(self, text_lower: str) -> Optional[str]:
        """Extract driving record category."""
        if self.clean_record_pattern.search(text_lower):
            return "clean"
        if contains_any(text_lower, [
            "major accident", "major accidents", "serious accident", "serious accidents",
            "several accidents", "multiple accidents", "drunk driving", "dui",
        ]):
            return "major_claims"
        if contains_any(text_lower, [
            "minor accident", "minor accidents", "one accident", "an accident",
            "a claim", "one claim", "minor claim", "small accident",
        ]):
            return "minor_claims"
        return None

    def _extract_conditions(self, text_lower: str) -> Optional[List[str]]:
        """Extract pre-existing conditions; an explicit 'none' yields []."""
        conditions = self._match_groups(text_lower, self.CONDITIONS)
        if conditions:
            return conditions
        if contains_any(text_lower, [
            "no pre-existing conditions", "no preexisting conditions",
            "no pre-existing condition", "no medical conditions", "no health conditions",
        ]):
            return []
        return None

    def _extract_business_type(self, text_lower: str, hint: Optional[InsuranceType]) -> Optional[str]:
        """Extract business category."""
        if hint != InsuranceType.BUSINESS:
            return None
        for business_type, phrases in self.BUSINESS_TYPES.items():
            if contains_any(text_lower, phrases):
                return business_type
        return None

    def _extract_employee_count(self, text: str) -> Optional[int]:
        """Extract number of employees."""
        for pattern in self.employee_patterns:
            match = pattern.search(text)
            if match:
                return int(match.group(1))
        return None

    @staticmethod
    def _match_groups(text_lower: str, groups: Dict[str, List[str]]) -> List[str]:
        """Return the canonical names whose phrases occur in text."""
        return [name for name, phrases in groups.items() if contains_any(text_lower, phrases)]


def _role_and_content(message: Any) -> Tuple[Optional[str], str]:
    """Read role/content from a ConversationMessage or a plain dict."""
    if isinstance(message, dict):
        return message.get("role"), message.get("content", "")
    return getattr(message, "role", None), getattr(message, "content", "")


def _parse_amount(number: str, suffix: Optional[str]) -> Optional[int]:
    """Parse '400,000' or '1.5m' into whole cedis."""
    try:
        value = float(number.replace(",", ""))
    except ValueError:
        return None
    suffix = (suffix or "").lower()
    if suffix in ("k", "thousand"):
        value *= 1_000
    elif suffix in ("m", "million"):
        value *= 1_000_000
    return int(round(value))


def _to_int(token: str) -> int:
    token = token.lower()
    if token in WORD_NUMBERS:
        return WORD_NUMBERS[token]
    return int(token)
