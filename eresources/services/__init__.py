"""
E-Resources Services
====================

Business logic services for the portal.

Services:
- profile_service: role and completeness of the authenticated user
- catalog_service: books and lesson plans
- assignment_service: assignments, submissions and grading
- admin_service: statistics and user management
- account_service: signup, login and logout
"""

# Services are imported directly when needed to avoid circular imports
# Example: from eresources.services.assignment_service import grade_submission

__all__ = [
    'profile_service',
    'catalog_service',
    'assignment_service',
    'admin_service',
    'account_service',
]
