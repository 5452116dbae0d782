"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any import of ``throttle.core.config``
so the global settings object is built from them and no .env file is loaded.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")

# Keep the default policy out of the way of route tests; tests that exercise
# it lower the limit explicitly.
os.environ.setdefault("APP_RATE_LIMIT_REQUESTS", "1000")
os.environ.setdefault("APP_RATE_LIMIT_WINDOW_MS", "60000")
os.environ.setdefault("LOG_LEVEL", "WARNING")
