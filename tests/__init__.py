"""Test suite for AutoSpread.

This package contains hermetic tests following the pytest framework.
Tests are structured to mirror the src/ package hierarchy for discoverability.

Testing Philosophy:
    - Use pytest-mock for Playwright and httpx.MockTransport for the valuation API
    - Focus coverage on the correlation store and per-listing failure handling
    - Avoid external dependencies - all I/O should be mocked
"""
