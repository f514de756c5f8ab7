"""
Account operations: signup, login and logout against Supabase auth.
"""
import logging
import re
from datetime import datetime, timezone

from eresources.config import config
from eresources.errors import PortalError, ValidationError
from eresources.services.profile_service import COMPLETE_PROFILE_PATH

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'\S+@\S+\.\S+')
MIN_PASSWORD_LENGTH = 8


def _valid_email(email):
    return isinstance(email, str) and bool(EMAIL_PATTERN.search(email))


def signup(backends, full_name, email, password):
    """
    Create the auth user and its student profile, then sign in.
    Returns (session, landing path).
    """
    full_name = (full_name or '').strip()
    email = (email or '').strip()
    if not full_name:
        raise ValidationError("Full name is required.", redirect='/signup')
    if not _valid_email(email):
        raise ValidationError("A valid email is required.", redirect='/signup')
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.", redirect='/signup')

    admin = backends.admin_client()
    user_id = admin.create_user(email, password, full_name)
    admin.create_document(config.profiles_table, {
        "user_id": user_id,
        "full_name": full_name,
        "email": email,
        "role": "student",
        "created_at": datetime.now(timezone.utc).isoformat(),
    })
    logger.info("New student account created: %s", user_id)

    session = backends.auth_client().sign_in(email, password)
    return session, COMPLETE_PROFILE_PATH


def login(backends, email, password):
    """Sign in with email and password and return the session."""
    email = (email or '').strip()
    if not _valid_email(email):
        raise ValidationError("A valid email is required.", redirect='/login')
    if not password:
        raise ValidationError("Password is required.", redirect='/login')
    return backends.auth_client().sign_in(email, password)


def logout(backends, access_token):
    """Revoke the session. Failures are logged; the cookie is cleared regardless."""
    if not access_token:
        return
    try:
        backends.admin_client().sign_out(access_token)
    except PortalError as e:
        logger.warning("Error deleting Supabase session: %s", e)
