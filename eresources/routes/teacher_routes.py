"""
Teacher Routes for the e-resources portal.
Books, lesson plans, assignment creation, submission review and grading.
"""
from flask import Blueprint, jsonify, request

from eresources.auth import get_context
from eresources.routes.forms import dump, file_upload, parse_questions, request_data, success
from eresources.services import assignment_service, catalog_service

teacher_bp = Blueprint('teacher', __name__)

TEACHER_DASHBOARD = '/teachers/dashboard'


def _tag_fields(data):
    """Catalog tags as sent by the dashboard forms."""
    return {
        "subject": data.get('subjectName'),
        "cohort": data.get('yearGroup'),
        "term": data.get('term'),
        "sub_term": data.get('subTerm'),
    }


# ============ Books ============

@teacher_bp.route('/api/teachers/books', methods=['POST'])
def add_book():
    ctx = get_context()
    book = catalog_service.add_book(
        ctx, file_upload(request.files.get('pdfFile')),
        topic=request.form.get('topic'),
        cover_color=request.form.get('coverColor'),
        **_tag_fields(request.form),
    )
    return success("Book added successfully!", redirect=TEACHER_DASHBOARD, book=dump(book))


@teacher_bp.route('/api/teachers/books', methods=['GET'])
def list_books():
    books = catalog_service.list_teacher_books(get_context())
    return jsonify({"books": [dump(b) for b in books]})


@teacher_bp.route('/api/teachers/books/<book_id>', methods=['PATCH'])
def update_book(book_id):
    data = request_data()
    book = catalog_service.update_book(
        get_context(), book_id,
        topic=data.get('topic'),
        cover_color=data.get('coverColor'),
        **_tag_fields(data),
    )
    return success("Book updated successfully!", redirect=TEACHER_DASHBOARD, book=dump(book))


@teacher_bp.route('/api/teachers/books/<book_id>', methods=['DELETE'])
def delete_book(book_id):
    catalog_service.delete_book(get_context(), book_id)
    return success("Book deleted successfully!", redirect=TEACHER_DASHBOARD)


# ============ Lesson plans ============

@teacher_bp.route('/api/teachers/lesson-plans', methods=['POST'])
def add_lesson_plan():
    plan = catalog_service.add_lesson_plan(
        get_context(), file_upload(request.files.get('lessonPlan')),
        **_tag_fields(request.form),
    )
    return success("Lesson plan added successfully!", redirect=TEACHER_DASHBOARD, lesson_plan=dump(plan))


@teacher_bp.route('/api/teachers/lesson-plans', methods=['GET'])
def list_lesson_plans():
    plans = catalog_service.list_lesson_plans(get_context())
    return jsonify({"lesson_plans": [dump(p) for p in plans]})


@teacher_bp.route('/api/teachers/lesson-plans/<plan_id>', methods=['PATCH'])
def update_lesson_plan(plan_id):
    plan = catalog_service.update_lesson_plan(get_context(), plan_id, **_tag_fields(request_data()))
    return success("Lesson plan updated successfully!", redirect=TEACHER_DASHBOARD, lesson_plan=dump(plan))


@teacher_bp.route('/api/teachers/lesson-plans/<plan_id>', methods=['DELETE'])
def delete_lesson_plan(plan_id):
    catalog_service.delete_lesson_plan(get_context(), plan_id)
    return success("Lesson plan deleted successfully!", redirect=TEACHER_DASHBOARD)


# ============ Assignments ============

@teacher_bp.route('/api/teachers/assignments', methods=['POST'])
def create_assignment():
    """Create an assignment from text and image questions."""
    ctx = get_context()
    tags = _tag_fields(request.form)
    assignment = assignment_service.create_assignment(
        ctx,
        subject=tags["subject"],
        cohort=tags["cohort"],
        term=tags["term"],
        sub_term=tags["sub_term"],
        title=request.form.get('title'),
        questions=parse_questions(request.form, request.files),
    )
    return success("Assignment created successfully!", redirect=TEACHER_DASHBOARD,
                   assignment=dump(assignment))


@teacher_bp.route('/api/teachers/submissions', methods=['GET'])
def list_submissions():
    """The teacher's assignments with submissions, optionally by title/term/sub-term."""
    items = assignment_service.list_submissions_for_teacher(
        get_context(),
        title=request.args.get('title') or None,
        term=request.args.get('term') or None,
        sub_term=request.args.get('subTerm') or None,
    )
    assignments = [
        {**dump(assignment), "submissions": [dump(s) for s in submissions]}
        for assignment, submissions in items
    ]
    body = {"assignments": assignments}
    if not any(a["submissions"] for a in assignments):
        body["message"] = "No students have submitted yet"
    return jsonify(body)


@teacher_bp.route('/api/teachers/assignments/<assignment_id>/submissions', methods=['GET'])
def list_assignment_submissions(assignment_id):
    submissions = assignment_service.list_submissions_for_assignment(get_context(), assignment_id)
    return jsonify({"submissions": [dump(s) for s in submissions]})


@teacher_bp.route('/api/teachers/submissions/<submission_id>', methods=['GET'])
def get_submission(submission_id):
    assignment, submission = assignment_service.get_submission_detail(get_context(), submission_id)
    return jsonify({"assignment": dump(assignment), "submission": dump(submission)})


@teacher_bp.route('/api/teachers/submissions/<submission_id>/grade', methods=['POST'])
def grade_submission(submission_id):
    data = request_data()
    submission = assignment_service.grade_submission(get_context(), submission_id, data.get('grade'))
    return success("Submission graded successfully!", redirect=TEACHER_DASHBOARD,
                   submission=dump(submission))
