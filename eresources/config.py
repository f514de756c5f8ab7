"""
Configuration management for the e-resources backend.
"""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", "")

# Tables
PROFILES_TABLE = os.getenv("PROFILES_TABLE", "profiles")
BOOKS_TABLE = os.getenv("BOOKS_TABLE", "books")
LESSON_PLANS_TABLE = os.getenv("LESSON_PLANS_TABLE", "lesson_plans")
ASSIGNMENTS_TABLE = os.getenv("ASSIGNMENTS_TABLE", "assignments")
SUBMISSIONS_TABLE = os.getenv("SUBMISSIONS_TABLE", "submissions")

# Storage buckets
BOOKS_BUCKET = os.getenv("BOOKS_BUCKET", "books")
UPLOADS_BUCKET = os.getenv("UPLOADS_BUCKET", "uploads")

# Grading configuration
GRADE_MIN = 1
GRADE_MAX = 10

# Listing
LIST_LIMIT = 100
SIGNED_URL_TTL_SECONDS = 3600

# Server configuration
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
DEBUG = os.getenv("DEBUG", "false").lower() in ("1", "true", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SESSION_COOKIE_NAME = "session"
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

ALLOWED_DOCUMENT_TYPES = ['application/pdf']


class Config:
    """Application configuration class."""

    def __init__(self):
        self.supabase_url = SUPABASE_URL
        self.supabase_service_key = SUPABASE_SERVICE_KEY
        self.supabase_anon_key = SUPABASE_ANON_KEY
        self.supabase_jwt_secret = SUPABASE_JWT_SECRET
        self.profiles_table = PROFILES_TABLE
        self.books_table = BOOKS_TABLE
        self.lesson_plans_table = LESSON_PLANS_TABLE
        self.assignments_table = ASSIGNMENTS_TABLE
        self.submissions_table = SUBMISSIONS_TABLE
        self.books_bucket = BOOKS_BUCKET
        self.uploads_bucket = UPLOADS_BUCKET
        self.grade_min = GRADE_MIN
        self.grade_max = GRADE_MAX
        self.list_limit = LIST_LIMIT
        self.signed_url_ttl = SIGNED_URL_TTL_SECONDS
        self.session_cookie_name = SESSION_COOKIE_NAME

    def to_dict(self):
        return {
            "supabase_url": self.supabase_url,
            "profiles_table": self.profiles_table,
            "books_table": self.books_table,
            "lesson_plans_table": self.lesson_plans_table,
            "assignments_table": self.assignments_table,
            "submissions_table": self.submissions_table,
            "books_bucket": self.books_bucket,
            "uploads_bucket": self.uploads_bucket,
            "grade_min": self.grade_min,
            "grade_max": self.grade_max,
            "list_limit": self.list_limit,
        }

    def update(self, data: dict):
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)


# Global config instance
config = Config()
