"""
Admin (principal) feature module.

Admin accounts, their role assignments, and the endpoints that expose each
admin's resolved permissions.
"""
