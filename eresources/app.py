#!/usr/bin/env python3
"""
E-Resources Portal - School Books, Lesson Plans and Assignments
===============================================================
Run: python3 -m eresources.app
Then the API is served on http://localhost:3000
"""
import logging
import os

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from eresources.auth import init_auth
from eresources.backend_client import get_backend
from eresources.config import CORS_ORIGINS, DEBUG, HOST, LOG_LEVEL, PORT, config
from eresources.errors import PortalError
from eresources.routes import register_routes

logger = logging.getLogger(__name__)

# Load environment variables
_app_dir = os.path.dirname(os.path.abspath(__file__))
_root_dir = os.path.dirname(_app_dir)
load_dotenv(os.path.join(_root_dir, '.env'))


def create_app(overrides=None, backend=None):
    """
    Build the Flask app.

    `backend` supplies the admin/session/token/auth clients; it defaults to
    the Supabase backend configured from the environment.
    """
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    app = Flask(__name__)
    origins = [o.strip() for o in CORS_ORIGINS.split(',')] if CORS_ORIGINS != '*' else '*'
    CORS(app, origins=origins, supports_credentials=origins != '*')

    app.config['SUPABASE_JWT_SECRET'] = config.supabase_jwt_secret
    app.config['BACKEND'] = backend or get_backend()
    if overrides:
        app.config.update(overrides)

    # ══════════════════════════════════════════════════════════════
    # AUTHENTICATION
    # ══════════════════════════════════════════════════════════════
    init_auth(app)
    register_routes(app)

    @app.errorhandler(PortalError)
    def handle_portal_error(e):
        if e.status_code >= 500:
            logger.error("Request failed: %s", e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logger.exception("Unhandled error: %s", e)
        return jsonify({"error": "An unexpected error occurred."}), 500

    return app


# ══════════════════════════════════════════════════════════════
# MAIN
# ══════════════════════════════════════════════════════════════

if __name__ == '__main__':
    print()
    print("+" + "=" * 50 + "+")
    print("|  E-Resources Portal API                          |")
    print("+" + "=" * 50 + "+")
    print(f"|  Listening on http://{HOST}:{PORT}".ljust(51) + "|")
    print("|  Press Ctrl+C to stop                            |")
    print("+" + "=" * 50 + "+")
    print()

    create_app().run(host=HOST, port=PORT, debug=DEBUG)
