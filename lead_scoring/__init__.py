"""
Lead Scoring Module for the Insurance Sales Assistant.

This module provides lead qualification and capture:
- Customer analysis (intent, urgency, buying signals, readiness)
- Rule-based sub-scores for deployments without an LLM
- Weighted 0-10 capture score with conversation-depth thresholds
- In-memory lead store for captured leads
"""

from .intent_classifier import (
    CustomerAnalysis,
    Intent,
    IntentClassifier,
    LeadReadiness,
    Urgency,
)
from .signal_scorer import SignalResult, SignalScorer, SubScores
from .scoring_model import LeadAnalysisResult, LeadCaptureAssessment, LeadCaptureScorer
from .lead_store import CaptureLeadData, InMemoryLeadStore, Lead, LeadStatus, UrgencyLevel

__all__ = [
    "CustomerAnalysis",
    "Intent",
    "IntentClassifier",
    "LeadReadiness",
    "Urgency",
    "SignalResult",
    "SignalScorer",
    "SubScores",
    "LeadAnalysisResult",
    "LeadCaptureAssessment",
    "LeadCaptureScorer",
    "CaptureLeadData",
    "InMemoryLeadStore",
    "Lead",
    "LeadStatus",
    "UrgencyLevel",
]
