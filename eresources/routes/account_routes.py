"""
Account Routes for the e-resources portal.
Handles signup, login (session cookie), logout and the current user's profile.
"""
import logging

from flask import Blueprint, current_app, jsonify, request

from eresources.auth import extract_token, get_context
from eresources.config import config
from eresources.routes.forms import dump, request_data, success
from eresources.services import account_service
from eresources.services.profile_service import fetch_profile, landing_path, resolve_profile

account_bp = Blueprint('account', __name__)
logger = logging.getLogger(__name__)


def _set_session_cookie(response, session):
    response.set_cookie(
        config.session_cookie_name,
        session.access_token,
        httponly=True,
        samesite='Strict',
        secure=not current_app.debug and not current_app.testing,
        expires=session.expires_at,
        path='/',
    )
    return response


@account_bp.route('/api/status', methods=['GET'])
def status():
    return jsonify({"status": "ok"})


@account_bp.route('/api/signup', methods=['POST'])
def signup():
    """Create a student account and start a session."""
    data = request_data()
    backends = current_app.config['BACKEND']
    session, redirect = account_service.signup(
        backends, data.get('fullName'), data.get('email'), data.get('password'))
    response = success("Account created.", redirect=redirect, access_token=session.access_token)
    return _set_session_cookie(response, session)


@account_bp.route('/api/login', methods=['POST'])
def login():
    """Sign in; the landing page depends on the user's role and profile."""
    data = request_data()
    backends = current_app.config['BACKEND']
    session = account_service.login(backends, data.get('email'), data.get('password'))

    profile = fetch_profile(backends.session_client(session.access_token), session.user_id)
    redirect = landing_path(profile) if profile else '/login'
    response = success("Logged in.", redirect=redirect, access_token=session.access_token)
    return _set_session_cookie(response, session)


@account_bp.route('/api/logout', methods=['POST'])
def logout():
    token, _ = extract_token()
    account_service.logout(current_app.config['BACKEND'], token)
    response = success("Logged out.", redirect='/login')
    response.delete_cookie(config.session_cookie_name, path='/')
    return response


@account_bp.route('/api/me', methods=['GET'])
def me():
    """The caller's profile and where they should land."""
    profile = resolve_profile(get_context())
    return jsonify({
        "profile": dump(profile),
        "complete": profile.is_complete,
        "redirect": landing_path(profile),
    })
