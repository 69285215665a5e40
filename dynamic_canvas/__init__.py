"""
Dynamic Canvas
==============

Renders declarative canvas templates, bound to runtime variables, into PNG
images.

This package provides:
- A Pillow-based renderer with cached web fonts and image compositing
- A PostgreSQL template store with categories and variables
- Scheduled activation of template groups
- FastAPI REST endpoints for HTTP access
"""

__version__ = "1.0.0"
