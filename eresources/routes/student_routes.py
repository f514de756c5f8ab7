"""
Student Routes for the e-resources portal.
Profile completion, the assignment dashboard and assignment submission.
"""
from flask import Blueprint, jsonify, request

from eresources.auth import get_context
from eresources.routes.forms import dump, parse_answers, success
from eresources.services import assignment_service, profile_service

student_bp = Blueprint('student', __name__)

STUDENT_DASHBOARD = '/students/dashboard'


@student_bp.route('/api/students/profile', methods=['POST'])
def complete_profile():
    ctx = get_context()
    cohort = request.form.get('yearGroup') or request.form.get('cohort')
    subjects = request.form.getlist('subjects')
    profile = profile_service.complete_profile(ctx, cohort, subjects)
    return success("Profile updated successfully!",
                   redirect=profile_service.landing_path(profile),
                   profile=dump(profile))


@student_bp.route('/api/students/assignments', methods=['GET'])
def list_assignments():
    """Assignments for the student's year group with their own submission status."""
    ctx = get_context()
    profile = profile_service.resolve_profile(ctx)
    student_id = request.args.get('studentId') or ctx.user_id

    items = assignment_service.list_assignments_for_student(ctx, student_id, profile.cohort)
    return jsonify({
        "assignments": [
            {**dump(assignment), "submission": dump(submission) if submission else None}
            for assignment, submission in items
        ]
    })


@student_bp.route('/api/students/assignments/<assignment_id>/submit', methods=['POST'])
def submit_assignment(assignment_id):
    """
    Submit (or update an ungraded) answer set. Any teacherId in the form is
    ignored; the owner is read from the assignment.
    """
    ctx = get_context()
    answers = parse_answers(request.form, request.files)
    submission = assignment_service.submit_or_update_answer(ctx, assignment_id, answers)
    return success("Submission saved successfully.", redirect=STUDENT_DASHBOARD, submission=dump(submission))
