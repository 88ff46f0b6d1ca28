"""
Applicability Engine Test Suite
===============================

Test organization:
- tests/conftest.py                  - Shared fixtures: sample register, profiles, engine, API client
- tests/services/applicability/      - Engine, store, cache and route tests (no external services)

Run tests:
    pytest                                   # All tests
    pytest tests/services/applicability      # Engine tests only
"""
