"""
Role management feature module.

Roles bundle permissions from the catalog and are assigned to admins.
"""
