"""
Storage Module
==============

PostgreSQL template repository and the uploads directory store.
"""
