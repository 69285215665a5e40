"""
Template Module
===============

Template document parsing, validation and variable extraction.
"""
