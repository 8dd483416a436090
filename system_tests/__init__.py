"""
Live-stack verification.

These tests run against the real Docker Compose stack instead of fakes.
They are skipped unless SYSTEM_TEST_LIVE=1.
"""
