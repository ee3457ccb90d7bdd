"""Integration tests for the topic voting API.

These exercise a running API backed by a real Redis:

- End-to-end topic, vote and results flow
- Error status codes
- Concurrent vote submission on one topic

All tests are marked ``docker`` and skip when the API is unreachable.
"""
