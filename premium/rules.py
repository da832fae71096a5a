"""
Keyword rules for premium-intent and follow-up detection.

The tables are versioned: changes should add a new version rather than
silently editing phrases that tests pin down.
"""

import re
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Iterable, Pattern, Tuple


@dataclass(frozen=True)
class KeywordRules:
    """Versioned keyword tables used by the extractor and orchestrator."""

    version: str

    # Messages asking for a price
    premium_keywords: Tuple[str, ...]

    # Substrings in an assistant message that mark it as a premium quote
    premium_markers: Tuple[str, ...]

    # Words that make a message a candidate reaction to a quote
    follow_up_keywords: Tuple[str, ...]

    third_party_phrases: Tuple[str, ...]
    comprehensive_phrases: Tuple[str, ...]

    # Words that ask for a new figure rather than an explanation
    recalculation_phrases: Tuple[str, ...]
    coverage_question_phrases: Tuple[str, ...]
    apply_phrases: Tuple[str, ...]
    affirmative_phrases: Tuple[str, ...]

    # Marker left in a quote when a third-party comparison was offered
    third_party_offer_marker: str

    # (insurance type, keywords) in match order
    insurance_types: Tuple[Tuple[str, Tuple[str, ...]], ...]

    cities: Tuple[str, ...]

    # (follow-up action, replies) for the numbered "what next?" menu
    disambiguation_options: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()


RULES_2024_06 = KeywordRules(
    version="2024.06",
    premium_keywords=(
        "premium", "cost", "price", "pricing", "calculate", "quote",
        "how much", "expensive", "cheap", "affordable", "payment",
    ),
    premium_markers=("gh₵", "annual premium", "monthly premium", "per year"),
    follow_up_keywords=(
        "third party", "third-party", "3rd party", "comprehensive", "comp",
        "apply", "proceed", "yes", "yeah", "yep", "ok", "okay", "sure",
        "instead", "recalculate", "calculate", "how much", "what about",
        "cheaper", "cover", "covers", "coverage", "sign up", "go ahead",
        "switch", "change",
    ),
    third_party_phrases=("third party", "third-party", "3rd party", "thirdparty"),
    comprehensive_phrases=("comprehensive", "comp", "full cover"),
    recalculation_phrases=(
        "how much", "instead", "calculate", "recalculate", "quote", "price",
        "cost", "switch", "change", "cheaper", "what about",
    ),
    coverage_question_phrases=(
        "what does", "what is", "what's", "difference", "explain", "mean",
        "include", "includes", "covered",
    ),
    apply_phrases=(
        "apply", "proceed", "sign up", "sign me up", "go ahead", "get started",
        "buy it", "take it", "i'll take", "purchase", "enroll", "register me",
    ),
    affirmative_phrases=(
        "yes", "yeah", "yep", "ok", "okay", "sure", "alright", "please",
        "fine", "sounds good",
    ),
    third_party_offer_marker="cheaper third-party quote",
    insurance_types=(
        ("auto", ("car", "cars", "vehicle", "auto", "motor", "automobile", "taxi", "truck")),
        ("health", ("health", "medical", "hospital", "clinic", "illness")),
        ("life", ("life", "death", "death benefit", "funeral", "beneficiary")),
        ("business", ("business", "commercial", "shop", "company", "enterprise", "sme")),
    ),
    cities=(
        "accra", "kumasi", "tema", "takoradi", "sekondi", "tamale",
        "cape coast", "koforidua", "sunyani", "obuasi", "kasoa",
        "madina", "ashaiman", "techiman", "winneba", "bolgatanga",
    ),
)

DEFAULT_RULES = replace(
    RULES_2024_06,
    version="2024.07",
    disambiguation_options=(
        ("third_party", ("1", "option 1", "third party", "third-party", "cheaper")),
        ("explain_coverage", ("2", "option 2", "understand", "includes", "what's covered")),
        ("apply", ("3", "option 3", "apply")),
    ),
)


@lru_cache(maxsize=512)
def phrase_pattern(phrase: str) -> Pattern:
    """Compile a phrase so it only matches on word boundaries."""
    return re.compile(rf"(?<!\w){re.escape(phrase)}(?!\w)", re.IGNORECASE)


def contains_any(text: str, phrases: Iterable[str]) -> bool:
    """Check whether any phrase occurs in text as a whole word."""
    return any(phrase_pattern(p).search(text) for p in phrases)


def first_position(text: str, phrases: Iterable[str]) -> int:
    """Position of the earliest phrase match, or -1."""
    positions = [
        m.start() for m in (phrase_pattern(p).search(text) for p in phrases) if m
    ]
    return min(positions) if positions else -1
