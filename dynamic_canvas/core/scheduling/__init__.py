"""
Scheduling Module
=================

Template groups and time-based group activation.
"""
