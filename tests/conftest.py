"""Pytest configuration and shared fixtures."""

import os

os.environ.setdefault("PROMDS_LOG_LEVEL", "DEBUG")
os.environ.setdefault("PROMDS_METRIC_NAME_CACHE_TTL_SECONDS", "60")
