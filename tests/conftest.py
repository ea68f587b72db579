"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before settings are imported so the testing
profile (in-memory counters, no .env overrides) is used.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("CORS_ALLOWED_ORIGINS", "https://nerix.io,https://app.nerix.io")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from nerix_gateway.core.rate_limit import reset_rate_limit_evaluator


@pytest.fixture(autouse=True)
def fresh_rate_limit_evaluator():
    """Start every test with empty counters."""
    reset_rate_limit_evaluator()
    yield
    reset_rate_limit_evaluator()
