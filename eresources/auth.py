"""
Supabase JWT authentication for the e-resources portal.
Validates the access token on all /api/ routes except public endpoints and
attaches a request-scoped RequestContext to flask.g.

Web clients carry the token in the `session` cookie; mobile clients send it
as a Bearer token.
"""
import logging

import jwt
from flask import current_app, g, jsonify, request

from .config import config
from .errors import NotAuthenticated

logger = logging.getLogger(__name__)

# Routes that don't require authentication
PUBLIC_EXACT = [
    '/api/login',
    '/api/signup',
    '/api/status',
]

PUBLIC_PREFIXES = []


class RequestContext:
    """
    The authenticated principal for one request.

    Holds the caller's id and token plus a user-bound backend client created
    on first use. The profile is resolved lazily by the profile service.
    """

    def __init__(self, user_id, email='', access_token=None, backend=None, backend_factory=None):
        self.user_id = user_id
        self.email = email
        self.access_token = access_token
        self._backend = backend
        self._backend_factory = backend_factory
        self.profile = None

    @property
    def backend(self):
        if self._backend is None:
            self._backend = self._backend_factory(self.access_token)
        return self._backend


def get_jwt_secret():
    """Get the Supabase JWT secret from app config or environment."""
    secret = current_app.config.get('SUPABASE_JWT_SECRET') or config.supabase_jwt_secret
    if not secret:
        raise RuntimeError('SUPABASE_JWT_SECRET not configured')
    return secret


def validate_token(token, secret=None):
    """
    Validate a Supabase JWT and return the decoded payload.
    Returns None if invalid.
    """
    try:
        return jwt.decode(
            token,
            secret or get_jwt_secret(),
            algorithms=['HS256'],
            audience='authenticated',
        )
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def is_public_route(path):
    """Check if a route is public (no auth required)."""
    if path in PUBLIC_EXACT:
        return True
    for prefix in PUBLIC_PREFIXES:
        if path.startswith(prefix):
            return True
    return False


def extract_token():
    """Return (token, mode): Bearer header wins over the session cookie."""
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header[7:], 'token'
    cookie = request.cookies.get(config.session_cookie_name)
    if cookie:
        return cookie, 'session'
    return None, None


def get_context():
    """The current request's RequestContext, or NotAuthenticated."""
    ctx = getattr(g, 'ctx', None)
    if ctx is None:
        raise NotAuthenticated()
    return ctx


def init_auth(app):
    """
    Register the before_request auth hook on the Flask app.
    Call this BEFORE registering blueprints.
    """
    @app.before_request
    def check_auth():
        # Skip non-API routes
        if not request.path.startswith('/api/'):
            return None

        if is_public_route(request.path):
            return None

        token, mode = extract_token()
        if not token:
            return jsonify(NotAuthenticated().to_dict()), 401

        payload = validate_token(token)
        if payload is None or not payload.get('sub'):
            return jsonify(NotAuthenticated("Invalid or expired session. Please log in again.").to_dict()), 401

        backends = app.config['BACKEND']
        factory = backends.token_client if mode == 'token' else backends.session_client
        g.ctx = RequestContext(
            user_id=payload['sub'],
            email=payload.get('email', ''),
            access_token=token,
            backend_factory=factory,
        )
        g.user_id = payload['sub']
