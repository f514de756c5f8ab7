"""
Assignment workflow: creation, student listings, submissions and grading.

State per (assignment, student) pair:

    NONE -> SUBMITTED -> GRADED
    SUBMITTED -> SUBMITTED   (re-submission while ungraded)

GRADED is terminal for the student; the owning teacher may still re-grade.

Uniqueness of a submission per (assignment, student) is held two ways:
attempts for one pair are serialized in-process by a keyed lock, and the
submissions table carries a unique index on (assignment_id, student_id).
A create that loses a race against another process hits that index and is
retried as an update of the winning row.

Files are uploaded before the document write. If the write fails, every file
uploaded by the same operation is deleted again.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

from eresources.config import config
from eresources.errors import (
    AlreadyGraded, DuplicateDocument, NotAuthorized, NotFound, PortalError,
    ValidationError,
)
from eresources.models import (
    Assignment, FileUpload, ImageEntry, Submission, SubmissionView, TextEntry,
    encode_entries,
)
from eresources.services.profile_service import display_names, require_role

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


class KeyedLock:
    """One mutex per key, dropped again when nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


_submission_locks = KeyedLock()


# ============ Uploads ============

def _cleanup_uploads(backend, bucket, refs):
    """Best-effort removal of files uploaded by a failed operation."""
    for ref in refs:
        try:
            backend.delete_file(bucket, ref)
        except PortalError as e:
            logger.warning("Failed to clean up file %s/%s after error: %s", bucket, ref, e)


def _upload_entries(backend, bucket, items):
    """
    Upload every pending FileUpload and return (entries, uploaded_refs).
    Text entries and existing image references pass through unchanged.
    """
    entries = []
    uploaded = []
    try:
        for item in items:
            if isinstance(item, FileUpload):
                ref = backend.upload_file(bucket, item)
                uploaded.append(ref)
                entries.append(ImageEntry(content=ref, file_name=item.filename))
            else:
                entries.append(item)
    except PortalError:
        _cleanup_uploads(backend, bucket, uploaded)
        raise
    return entries, uploaded


def _check_entry(item):
    if isinstance(item, FileUpload):
        if item.size == 0:
            raise ValidationError("Uploaded file is empty.")
    elif isinstance(item, ImageEntry):
        if not item.content:
            raise ValidationError("Image entry is missing its file.")
    elif not isinstance(item, TextEntry):
        raise ValidationError("Entries must be text or image.")


def _non_empty_questions(questions):
    kept = []
    for q in questions or []:
        if isinstance(q, TextEntry) and not q.content.strip():
            continue
        if isinstance(q, FileUpload) and q.size == 0:
            continue
        _check_entry(q)
        kept.append(q)
    return kept


# ============ Lookups ============

def _get_assignment(backend, assignment_id) -> Assignment:
    row = backend.get_document(config.assignments_table, assignment_id)
    if row is None:
        raise NotFound("Assignment not found.")
    return Assignment.model_validate(row)


def _get_submission(backend, submission_id) -> Submission:
    row = backend.get_document(config.submissions_table, submission_id)
    if row is None:
        raise NotFound("Submission not found.")
    return Submission.model_validate(row)


def _find_submission(backend, assignment_id, student_id):
    rows = backend.list_documents(
        config.submissions_table,
        filters={"assignment_id": assignment_id, "student_id": student_id},
        limit=1,
    )
    return Submission.model_validate(rows[0]) if rows else None


def _owned_assignment(ctx, assignment_id) -> Assignment:
    assignment = _get_assignment(ctx.backend, assignment_id)
    if assignment.teacher_id != ctx.user_id:
        raise NotAuthorized("You are not authorized to view or grade this assignment's submissions.")
    return assignment


def _with_names(backend, submissions):
    names = display_names(backend, [s.student_id for s in submissions])
    return [
        SubmissionView.model_validate({
            **s.model_dump(by_alias=True),
            "student_name": names.get(s.student_id, s.student_id),
        })
        for s in submissions
    ]


# ============ Teacher: create ============

def create_assignment(ctx, subject, cohort, term, sub_term, title, questions) -> Assignment:
    """
    Create an assignment owned by the calling teacher.

    Questions are TextEntry or FileUpload items (ImageEntry references are
    accepted as well). Empty text questions and empty uploads are dropped
    before validation.
    """
    require_role(ctx, 'teacher')
    subject, cohort, term, sub_term, title = (
        (v or '').strip() for v in (subject, cohort, term, sub_term, title))
    questions = _non_empty_questions(questions)
    if not all([subject, cohort, term, sub_term, title]) or not questions:
        raise ValidationError("Assignment requires title, target audience, and at least one question.")

    backend = ctx.backend
    bucket = config.uploads_bucket
    entries, uploaded = _upload_entries(backend, bucket, questions)

    assignment = Assignment(
        id='',
        teacher_id=ctx.user_id,
        cohort=cohort,
        subject=subject,
        term=term,
        sub_term=sub_term,
        title=title,
        questions=entries,
        created_at=_now(),
    )
    try:
        row = backend.create_document(config.assignments_table, assignment.to_row())
    except PortalError:
        _cleanup_uploads(backend, bucket, uploaded)
        raise

    created = Assignment.model_validate(row)
    logger.info("Assignment %s created by teacher %s for %s", created.id, ctx.user_id, cohort)
    return created


# ============ Student: list & submit ============

def list_assignments_for_student(ctx, student_id, cohort):
    """
    Assignments for a year group, newest first, each paired with the
    student's submission (or None). A caller that is not the student gets
    an empty list.
    """
    if ctx is None or not student_id or ctx.user_id != student_id:
        logger.warning("Refused assignment listing for student %s", student_id)
        return []
    cohort = (cohort or '').strip()
    if not cohort:
        return []

    backend = ctx.backend
    rows = backend.list_documents(
        config.assignments_table,
        filters={"cohort": cohort},
        order_by='created_at',
        limit=config.list_limit,
    )
    assignments = [Assignment.model_validate(r) for r in rows]
    if not assignments:
        return []

    submission_rows = backend.list_documents(
        config.submissions_table,
        filters={"student_id": student_id},
        in_filters={"assignment_id": [a.id for a in assignments]},
    )
    by_assignment = {}
    for row in submission_rows:
        submission = Submission.model_validate(row)
        by_assignment.setdefault(submission.assignment_id, submission)

    return [(a, by_assignment.get(a.id)) for a in assignments]


def _update_answers(backend, submission, entries) -> Submission:
    # only while ungraded: a grade written since the read wins
    row = backend.update_document(config.submissions_table, submission.id, {
        "answers": encode_entries(entries),
        "submitted_at": _now().isoformat(),
    }, filters={"grade": None})
    if row is None:
        logger.info("Submission %s was graded before the new answers landed", submission.id)
        raise AlreadyGraded()
    return Submission.model_validate(row)


def _create_submission(backend, assignment, student_id, entries) -> Submission:
    fields = {
        "assignment_id": assignment.id,
        "student_id": student_id,
        "cohort": assignment.cohort,
        "subject": assignment.subject,
        "teacher_id": assignment.teacher_id,
        "answers": encode_entries(entries),
        "submitted_at": _now().isoformat(),
        "grade": None,
        "graded_at": None,
        "graded_by": None,
    }
    try:
        row = backend.create_document(config.submissions_table, fields)
    except DuplicateDocument:
        winner = _find_submission(backend, assignment.id, student_id)
        if winner is None:
            raise
        logger.info("Concurrent first submission for %s/%s, updating row %s",
                    assignment.id, student_id, winner.id)
        if winner.is_graded:
            raise AlreadyGraded()
        return _update_answers(backend, winner, entries)
    return Submission.model_validate(row)


def submit_or_update_answer(ctx, assignment_id, answers) -> Submission:
    """
    Create the caller's submission for an assignment, or replace its answers
    while it is still ungraded.

    Answers are TextEntry, ImageEntry (an earlier upload kept as-is) or
    FileUpload (uploaded now). The owning teacher, year group and subject are
    always copied from the assignment record.
    """
    profile = require_role(ctx, 'student')
    answers = list(answers or [])
    if not assignment_id or not answers:
        raise ValidationError("Assignment ID and at least one answer are required.")
    for answer in answers:
        _check_entry(answer)

    backend = ctx.backend
    assignment = _get_assignment(backend, assignment_id)
    if not assignment.teacher_id:
        raise NotFound("Unable to determine teacher for this assignment.")
    if profile.cohort != assignment.cohort:
        raise NotAuthorized("This assignment is not set for your year group.")

    bucket = config.uploads_bucket
    with _submission_locks.hold((assignment.id, ctx.user_id)):
        existing = _find_submission(backend, assignment.id, ctx.user_id)
        if existing is not None and existing.is_graded:
            raise AlreadyGraded()

        entries, uploaded = _upload_entries(backend, bucket, answers)
        try:
            if existing is not None:
                submission = _update_answers(backend, existing, entries)
            else:
                submission = _create_submission(backend, assignment, ctx.user_id, entries)
        except PortalError:
            _cleanup_uploads(backend, bucket, uploaded)
            raise

    logger.info("Submission %s saved for assignment %s by student %s",
                submission.id, assignment.id, ctx.user_id)
    return submission


# ============ Teacher: grade & review ============

def parse_grade(value):
    """Coerce a grade to int and check the configured range."""
    if isinstance(value, bool):
        raise ValidationError("Invalid grade or submission ID.")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError("Invalid grade or submission ID.")
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError("Invalid grade or submission ID.")
    elif not isinstance(value, int):
        raise ValidationError("Invalid grade or submission ID.")
    if value < config.grade_min or value > config.grade_max:
        raise ValidationError(
            f"Grade must be between {config.grade_min} and {config.grade_max}.")
    return value


def grade_submission(ctx, submission_id, grade) -> Submission:
    """
    Grade a submission to one of the caller's own assignments.
    Re-grading an already graded submission is allowed for the owner.
    """
    require_role(ctx, 'teacher')
    grade = parse_grade(grade)
    if not submission_id:
        raise ValidationError("Invalid grade or submission ID.")

    backend = ctx.backend
    submission = _get_submission(backend, submission_id)
    _owned_assignment(ctx, submission.assignment_id)

    row = backend.update_document(config.submissions_table, submission.id, {
        "grade": grade,
        "graded_at": _now().isoformat(),
        "graded_by": ctx.user_id,
    })
    if submission.is_graded:
        logger.info("Submission %s re-graded %s -> %s by %s",
                    submission.id, submission.grade, grade, ctx.user_id)
    else:
        logger.info("Submission %s graded %s by %s", submission.id, grade, ctx.user_id)
    return Submission.model_validate(row)


def list_submissions_for_teacher(ctx, title=None, term=None, sub_term=None):
    """
    The caller's assignments (optionally filtered by title/term/sub-term),
    each with its submissions enriched with student names.
    """
    require_role(ctx, 'teacher')
    backend = ctx.backend

    filters = {"teacher_id": ctx.user_id}
    for column, value in (("title", title), ("term", term), ("sub_term", sub_term)):
        if value:
            filters[column] = value

    rows = backend.list_documents(
        config.assignments_table, filters=filters,
        order_by='created_at', limit=config.list_limit,
    )
    assignments = [Assignment.model_validate(r) for r in rows]
    if not assignments:
        return []

    submission_rows = backend.list_documents(
        config.submissions_table,
        in_filters={"assignment_id": [a.id for a in assignments]},
        order_by='submitted_at',
    )
    views = _with_names(backend, [Submission.model_validate(r) for r in submission_rows])

    grouped = {a.id: [] for a in assignments}
    for view in views:
        grouped.setdefault(view.assignment_id, []).append(view)
    return [(a, grouped[a.id]) for a in assignments]


def list_submissions_for_assignment(ctx, assignment_id):
    """Submissions to one of the caller's assignments, newest first."""
    require_role(ctx, 'teacher')
    assignment = _owned_assignment(ctx, assignment_id)
    rows = ctx.backend.list_documents(
        config.submissions_table,
        filters={"assignment_id": assignment.id},
        order_by='submitted_at',
        limit=config.list_limit,
    )
    return _with_names(ctx.backend, [Submission.model_validate(r) for r in rows])


def get_submission_detail(ctx, submission_id):
    """A submission with its assignment, for the grading view."""
    require_role(ctx, 'teacher')
    submission = _get_submission(ctx.backend, submission_id)
    assignment = _owned_assignment(ctx, submission.assignment_id)
    return assignment, _with_names(ctx.backend, [submission])[0]
