"""
Load-generation harness for multi-tenant SCIM2 identity servers.

This package creates a role in every tenant and then a block of users across
all tenants from a fixed pool of worker threads, records failed user creations
in a CSV ledger, and can replay that ledger to retry exactly those users.
"""

from .main import main

__all__ = ["main"]
