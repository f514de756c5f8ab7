"""
Admin Routes for the e-resources portal.
Dashboard statistics, user enable/disable and the full book list.
"""
from flask import Blueprint, current_app, jsonify

from eresources.auth import get_context
from eresources.routes.forms import dump, request_data, success
from eresources.services import admin_service

admin_bp = Blueprint('admin', __name__)


def _admin_backend():
    return current_app.config['BACKEND'].admin_client()


@admin_bp.route('/api/admin/stats', methods=['GET'])
def stats():
    return jsonify(admin_service.dashboard_stats(get_context(), _admin_backend()))


@admin_bp.route('/api/admin/users', methods=['GET'])
def list_users():
    users = admin_service.list_users(get_context(), _admin_backend())
    return jsonify({"users": [dump(u) for u in users]})


@admin_bp.route('/api/admin/users/<profile_id>/status', methods=['POST'])
def update_user_status(profile_id):
    data = request_data()
    disabled = data.get('isDisabled')
    if isinstance(disabled, str):
        disabled = {'true': True, 'false': False}.get(disabled.lower(), disabled)
    user = admin_service.set_user_disabled(get_context(), _admin_backend(), profile_id, disabled)
    return success("User status updated.", user=dump(user))


@admin_bp.route('/api/admin/books', methods=['GET'])
def list_books():
    books = admin_service.list_all_books(get_context(), _admin_backend())
    return jsonify({"books": [dump(b) for b in books]})


@admin_bp.route('/api/admin/book-files', methods=['GET'])
def list_book_files():
    return jsonify({"files": admin_service.list_book_files(get_context(), _admin_backend())})
