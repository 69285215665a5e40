"""
Test Suite
==========

Test Categories:
- unit: Unit tests for individual components
- integration: API tests through the FastAPI test client
"""
