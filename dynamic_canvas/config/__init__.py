"""
Configuration Management
=======================

Environment-based configuration using Pydantic Settings.

Components:
- settings: Main application settings and environment configuration
- database: PostgreSQL connection pool and schema management
- logging: Structured logging configuration
"""
