"""
Core Business Logic
==================

Modules:
- template: Template document parsing and validation
- rendering: Variable binding, layout, compositing and PNG encoding
- storage: Template repository and uploads
- scheduling: Template groups and scheduled activation
"""
