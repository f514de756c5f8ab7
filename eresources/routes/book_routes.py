"""
Book browsing routes for students (web and mobile).
"""
from flask import Blueprint, jsonify, redirect, request

from eresources.auth import get_context
from eresources.errors import ValidationError
from eresources.routes.forms import dump
from eresources.services import catalog_service

book_bp = Blueprint('book', __name__)


@book_bp.route('/api/books', methods=['GET'])
def list_books():
    """Paginated, filtered books for the student's year group."""
    ctx = get_context()
    result = catalog_service.list_books_for_student(
        ctx,
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', 10, type=int),
        term=request.args.get('term') or None,
        sub_term=request.args.get('subTerm') or None,
        search=request.args.get('title') or None,
    )
    return jsonify({
        "books": [dump(b) for b in result["books"]],
        "total": result["total"],
    })


@book_bp.route('/api/download-book', methods=['GET'])
def download_book():
    """Signed download URL; mobile clients cache the file for offline reading."""
    file_id = request.args.get('fileId')
    if not file_id:
        raise ValidationError("Missing fileId or Authorization token.")
    url = catalog_service.book_file_url(get_context(), file_id, download=True)
    return jsonify({"fileUrl": url})


@book_bp.route('/api/books/files/<path:file_id>', methods=['GET'])
def view_book_file(file_id):
    """Redirect to a short-lived signed URL for online viewing."""
    return redirect(catalog_service.book_file_url(get_context(), file_id))
