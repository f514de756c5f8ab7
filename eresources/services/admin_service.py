"""
Administration: dashboard statistics, user management and the full book list.
All reads and writes here go through the privileged admin client, after the
caller's own profile has been checked for the admin role.
"""
import logging

from eresources.config import config
from eresources.errors import NotFound, ValidationError
from eresources.models import Book, UserProfile
from eresources.services.profile_service import display_names, require_role

logger = logging.getLogger(__name__)


def dashboard_stats(ctx, admin_backend):
    """Totals of books, students and teachers."""
    require_role(ctx, 'admin')
    return {
        "total_books": admin_backend.count_documents(config.books_table),
        "total_students": admin_backend.count_documents(config.profiles_table, filters={"role": "student"}),
        "total_teachers": admin_backend.count_documents(config.profiles_table, filters={"role": "teacher"}),
    }


def list_users(ctx, admin_backend):
    """All student and teacher profiles."""
    require_role(ctx, 'admin')
    rows = admin_backend.list_documents(
        config.profiles_table,
        in_filters={"role": ["student", "teacher"]},
        order_by='created_at',
        limit=config.list_limit,
    )
    return [UserProfile.model_validate(r) for r in rows]


def set_user_disabled(ctx, admin_backend, profile_id, disabled):
    """Enable or disable a student/teacher account."""
    require_role(ctx, 'admin')
    if not isinstance(disabled, bool):
        raise ValidationError("Status must be true or false.")
    row = admin_backend.get_document(config.profiles_table, profile_id)
    if row is None:
        raise NotFound("User not found.")
    target = UserProfile.model_validate(row)
    if target.role == 'admin':
        raise ValidationError("Admin accounts cannot be disabled here.")
    updated = admin_backend.update_document(config.profiles_table, target.id, {"is_disabled": disabled})
    logger.info("Admin %s set is_disabled=%s on user %s", ctx.user_id, disabled, target.user_id)
    return UserProfile.model_validate(updated)


def list_all_books(ctx, admin_backend):
    """Every book, with uploader names resolved in one bulk fetch."""
    require_role(ctx, 'admin')
    rows = admin_backend.list_documents(config.books_table, order_by='created_at', limit=config.list_limit)
    books = [Book.model_validate(r) for r in rows]
    names = display_names(admin_backend, [b.uploader_id for b in books], fallback="Unknown User")
    for book in books:
        book.uploader_name = names.get(book.uploader_id, "Unknown User")
    return books


def list_book_files(ctx, admin_backend):
    """File id and name of every book, for bulk download."""
    require_role(ctx, 'admin')
    rows = admin_backend.list_documents(config.books_table, limit=config.list_limit)
    return [{"file_id": r.get('file_id'), "file_name": r.get('file_name', '')} for r in rows]
