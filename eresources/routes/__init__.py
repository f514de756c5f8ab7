"""
E-Resources API Routes
======================

All API route blueprints for the portal.

Usage:
    from eresources.routes import register_routes
    register_routes(app)
"""
from .account_routes import account_bp
from .student_routes import student_bp
from .book_routes import book_bp
from .teacher_routes import teacher_bp
from .admin_routes import admin_bp


def register_routes(app):
    """Register all route blueprints with the Flask app."""
    app.register_blueprint(account_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(book_bp)
    app.register_blueprint(teacher_bp)
    app.register_blueprint(admin_bp)


__all__ = [
    'register_routes',
    'account_bp',
    'student_bp',
    'book_bp',
    'teacher_bp',
    'admin_bp',
]
