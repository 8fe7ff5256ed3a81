"""
Identity Module.

Responsibilities:
- Session-scoped local ID assignment
- Lookup by local ID, external ID, descriptor and region
"""

from .registry import IdentityRegistry
