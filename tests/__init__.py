# SecureLink Test Suite
"""
Test suite including:
- Unit tests
- Protocol tests against an in-process fake backend
- Security tests (malformed and hostile inputs)

Run with: pytest
Coverage: coverage run -m pytest && coverage report
"""
