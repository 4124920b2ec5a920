"""
Core Models Package.

Exports the database models persisted by the vault.
"""

from engage_core.models.secret import Secret

__all__ = ["Secret"]
