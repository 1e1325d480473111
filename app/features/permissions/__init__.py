"""
Permission management feature module.

Implements the permission catalog and hierarchy, the resolution engine that
turns an admin's roles into an effective permission set, and the predicates
and gates that authorize API calls and UI rendering.
"""
