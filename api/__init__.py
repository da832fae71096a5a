"""
API Module for the Insurance Sales Assistant.

FastAPI application with routes for:
- Chat interactions
- Lead management
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
