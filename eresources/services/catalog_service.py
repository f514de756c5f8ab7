"""
Content catalog: books and lesson plans.

Both are records tagged with subject, year group, term and sub-term plus an
opaque reference to a PDF in storage. Teachers own what they upload; students
browse books for their own year group.
"""
import logging
from datetime import datetime, timezone

from eresources.config import ALLOWED_DOCUMENT_TYPES, config
from eresources.errors import NotAuthorized, NotFound, PortalError, ValidationError
from eresources.models import Book, LessonPlan
from eresources.services.profile_service import require_role

logger = logging.getLogger(__name__)

BOOK_FIELDS = ('subject', 'topic', 'cohort', 'term', 'sub_term', 'cover_color')
LESSON_PLAN_FIELDS = ('subject', 'cohort', 'term', 'sub_term')
BOOK_SEARCH_COLUMNS = ['topic', 'subject']


def _now():
    return datetime.now(timezone.utc)


def _check_pdf(upload):
    if upload is None or upload.size == 0:
        raise ValidationError("PDF file is required.")
    if upload.content_type not in ALLOWED_DOCUMENT_TYPES:
        raise ValidationError("Only PDF files are allowed.")


def _clean(values, allowed):
    return {k: v.strip() for k, v in (values or {}).items()
            if k in allowed and isinstance(v, str) and v.strip()}


def _upload_then_create(backend, bucket, upload, table, fields):
    """Upload a file, then create its document; drop the file if the write fails."""
    ref = backend.upload_file(bucket, upload)
    try:
        return backend.create_document(table, {**fields, "file_id": ref, "file_name": upload.filename})
    except PortalError:
        try:
            backend.delete_file(bucket, ref)
        except PortalError as e:
            logger.warning("Failed to clean up file %s/%s after error: %s", bucket, ref, e)
        raise


# ============ Books (teacher) ============

def add_book(ctx, pdf, **values) -> Book:
    require_role(ctx, 'teacher')
    fields = _clean(values, BOOK_FIELDS)
    if any(f not in fields for f in BOOK_FIELDS):
        raise ValidationError("All fields including PDF are required.")
    _check_pdf(pdf)

    row = _upload_then_create(ctx.backend, config.books_bucket, pdf, config.books_table, {
        **fields,
        "uploader_id": ctx.user_id,
        "created_at": _now().isoformat(),
    })
    logger.info("Book %s added by %s", row.get('id'), ctx.user_id)
    return Book.model_validate(row)


def list_teacher_books(ctx):
    require_role(ctx, 'teacher')
    rows = ctx.backend.list_documents(
        config.books_table, filters={"uploader_id": ctx.user_id},
        order_by='created_at', limit=config.list_limit,
    )
    return [Book.model_validate(r) for r in rows]


def _owned_book(ctx, book_id) -> Book:
    row = ctx.backend.get_document(config.books_table, book_id)
    if row is None:
        raise NotFound("Book not found.")
    book = Book.model_validate(row)
    if book.uploader_id != ctx.user_id:
        raise NotAuthorized("You are not authorized to modify this book.")
    return book


def update_book(ctx, book_id, **values) -> Book:
    require_role(ctx, 'teacher')
    updates = _clean(values, BOOK_FIELDS)
    if not book_id or not updates:
        raise ValidationError("Invalid data for book update.")
    _owned_book(ctx, book_id)
    row = ctx.backend.update_document(config.books_table, book_id, updates)
    return Book.model_validate(row)


def delete_book(ctx, book_id):
    require_role(ctx, 'teacher')
    book = _owned_book(ctx, book_id)
    ctx.backend.delete_file(config.books_bucket, book.file_id)
    ctx.backend.delete_document(config.books_table, book.id)
    logger.info("Book %s deleted by %s", book.id, ctx.user_id)


# ============ Books (student) ============

def list_books_for_student(ctx, page=1, limit=10, term=None, sub_term=None, search=None):
    """
    Paginated books for the caller's year group, newest first.
    Returns {"books": [...], "total": n}; each book carries a signed file_url.
    """
    profile = require_role(ctx, 'student')
    if not profile.cohort:
        logger.warning("Student %s has no year group; returning no books", ctx.user_id)
        return {"books": [], "total": 0}

    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 10), 1), config.list_limit)
    filters = {"cohort": profile.cohort}
    if term:
        filters["term"] = term
    if sub_term:
        filters["sub_term"] = sub_term
    search_spec = (BOOK_SEARCH_COLUMNS, search) if search else None

    backend = ctx.backend
    total = backend.count_documents(config.books_table, filters=filters, search=search_spec)
    rows = backend.list_documents(
        config.books_table, filters=filters, search=search_spec,
        order_by='created_at', limit=limit, offset=(page - 1) * limit,
    )
    books = []
    for row in rows:
        book = Book.model_validate(row)
        book.file_url = backend.file_url(config.books_bucket, book.file_id)
        books.append(book)
    return {"books": books, "total": total}


def book_file_url(ctx, file_id, download=False):
    """Signed URL for a book file, for online viewing or offline download."""
    if not file_id:
        raise ValidationError("Missing fileId.")
    require_role(ctx, 'student', 'teacher', 'admin')
    return ctx.backend.file_url(config.books_bucket, file_id, download=download)


# ============ Lesson plans ============

def add_lesson_plan(ctx, pdf, **values) -> LessonPlan:
    require_role(ctx, 'teacher')
    _check_pdf(pdf)
    fields = _clean(values, LESSON_PLAN_FIELDS)
    row = _upload_then_create(ctx.backend, config.books_bucket, pdf, config.lesson_plans_table, {
        **fields,
        "teacher_id": ctx.user_id,
        "created_at": _now().isoformat(),
    })
    return LessonPlan.model_validate(row)


def list_lesson_plans(ctx):
    require_role(ctx, 'teacher')
    rows = ctx.backend.list_documents(
        config.lesson_plans_table, filters={"teacher_id": ctx.user_id},
        order_by='created_at', limit=config.list_limit,
    )
    return [LessonPlan.model_validate(r) for r in rows]


def _owned_lesson_plan(ctx, plan_id) -> LessonPlan:
    row = ctx.backend.get_document(config.lesson_plans_table, plan_id)
    if row is None:
        raise NotFound("Lesson plan not found.")
    plan = LessonPlan.model_validate(row)
    if plan.teacher_id != ctx.user_id:
        raise NotAuthorized("You are not authorized to modify this lesson plan.")
    return plan


def update_lesson_plan(ctx, plan_id, **values) -> LessonPlan:
    """Update lesson plan metadata (not the file itself)."""
    require_role(ctx, 'teacher')
    updates = _clean(values, LESSON_PLAN_FIELDS)
    if not plan_id or not updates:
        raise ValidationError("Invalid data for lesson plan update.")
    _owned_lesson_plan(ctx, plan_id)
    row = ctx.backend.update_document(config.lesson_plans_table, plan_id, updates)
    return LessonPlan.model_validate(row)


def delete_lesson_plan(ctx, plan_id):
    require_role(ctx, 'teacher')
    plan = _owned_lesson_plan(ctx, plan_id)
    ctx.backend.delete_file(config.books_bucket, plan.file_id)
    ctx.backend.delete_document(config.lesson_plans_table, plan.id)
