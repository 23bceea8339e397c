"""
API Routes for iSynera.

- auth.py: Authentication endpoints
- admin.py: User administration and audit log access
"""

from .auth import bp as auth_bp
from .admin import bp as admin_bp

__all__ = ["auth_bp", "admin_bp"]
