"""
Data Models
===========

Pydantic models for canvas templates, render results, persisted records
and API payloads.
"""
