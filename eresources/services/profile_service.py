"""
Profile resolution for authenticated principals.

Maps an auth user to its row in the profiles table, decides role and
completeness, and resolves display names in bulk for listings.
"""
import logging
from datetime import datetime, timezone

from eresources.config import config
from eresources.errors import NotAuthorized, NotFound
from eresources.models import UserProfile

logger = logging.getLogger(__name__)

LANDING_PATHS = {
    'student': '/students/dashboard',
    'teacher': '/teachers/dashboard',
    'admin': '/admin',
}

COMPLETE_PROFILE_PATH = '/students/complete-profile'


def _now():
    return datetime.now(timezone.utc)


def fetch_profile(backend, user_id):
    """Fetch the profile row for an auth user id, or None."""
    rows = backend.list_documents(config.profiles_table, filters={"user_id": user_id}, limit=1)
    return UserProfile.model_validate(rows[0]) if rows else None


def resolve_profile(ctx) -> UserProfile:
    """Resolve (and cache on the context) the caller's profile."""
    if ctx.profile is None:
        profile = fetch_profile(ctx.backend, ctx.user_id)
        if profile is None:
            raise NotFound("User profile not found. Please contact support.", redirect='/login')
        ctx.profile = profile
    return ctx.profile


def require_role(ctx, *roles) -> UserProfile:
    """Resolve the caller's profile and check it carries one of the roles."""
    profile = resolve_profile(ctx)
    if profile.is_disabled:
        raise NotAuthorized("This account has been disabled.")
    if profile.role not in roles:
        logger.warning("User %s with role %s attempted a %s action",
                       ctx.user_id, profile.role, "/".join(roles))
        raise NotAuthorized()
    return profile


def landing_path(profile: UserProfile) -> str:
    """Where a user goes after login."""
    if not profile.is_complete:
        return COMPLETE_PROFILE_PATH
    return LANDING_PATHS.get(profile.role, '/login')


def complete_profile(ctx, cohort, subjects) -> UserProfile:
    """Set a student's year group and subject enrolment."""
    profile = require_role(ctx, 'student')
    cohort = (cohort or '').strip()
    updates = {
        "cohort": cohort or None,
        "subjects": [s.strip() for s in (subjects or []) if s and s.strip()],
        "updated_at": _now().isoformat(),
    }
    row = ctx.backend.update_document(config.profiles_table, profile.id, updates)
    ctx.profile = UserProfile.model_validate(row)
    logger.info("Profile updated for user %s", ctx.user_id)
    return ctx.profile


def display_names(backend, user_ids, fallback=None):
    """
    Map user ids to display names with a single profiles query.
    Ids without a profile map to `fallback`, or to themselves.
    """
    ids = sorted({u for u in user_ids if u})
    if not ids:
        return {}
    rows = backend.list_documents(config.profiles_table, in_filters={"user_id": ids})
    names = {}
    for row in rows:
        profile = UserProfile.model_validate(row)
        names[profile.user_id] = profile.display_name
    return {u: names.get(u, fallback or u) for u in ids}
