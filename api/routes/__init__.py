"""
API Routes for the Insurance Sales Assistant.
"""

from . import chat, leads

__all__ = ["chat", "leads"]
