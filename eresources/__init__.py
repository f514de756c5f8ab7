"""
E-Resources Backend Package
===========================

Flask-based backend for the school e-resources portal.

Structure:
- routes/: API route blueprints
- services/: Business logic services (profiles, catalog, assignments, admin)
- backend_client.py: Supabase facade (documents, files, accounts)
- config.py: Configuration management
"""

from .config import config, Config

__version__ = "1.0.0"

__all__ = ['config', 'Config']
