"""
Shared test fixtures for the e-resources portal.
An in-memory backend stands in for Supabase behind the same facade interface.
Zero network calls; all data lives in dicts for the duration of one test.
"""
import copy
import threading
import time
import uuid

import jwt
import pytest

from eresources.auth import RequestContext
from eresources.backend_client import AuthSession
from eresources.config import config
from eresources.errors import DuplicateDocument, NotAuthenticated, UpstreamFailure
from eresources.models import FileUpload

JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"

# (table, columns) pairs that carry a unique index
UNIQUE_KEYS = {
    "submissions": ("assignment_id", "student_id"),
    "profiles": ("user_id",),
}


def make_token(user_id, email="", secret=JWT_SECRET, expires_in=3600, audience="authenticated"):
    """Mint a Supabase-style access token."""
    now = int(time.time())
    return jwt.encode(
        {"sub": user_id, "email": email, "aud": audience, "iat": now, "exp": now + expires_in},
        secret,
        algorithm="HS256",
    )


class InMemoryBackend:
    """
    Document, file and account store with the BackendClient interface.

    `calls` records (operation, table-or-bucket) for every call so tests can
    assert on query counts. `fail(op, target)` makes the next matching call
    raise; `before_create(table, fn)` runs fn just before an insert, which lets
    a test slip in a competing write.
    """

    def __init__(self):
        self.tables = {}
        self.files = {}
        self.accounts = {}
        self.signed_out = []
        self.calls = []
        self._failures = {}
        self._before_create = {}
        self._lock = threading.RLock()

    # ---------- test controls ----------

    def fail(self, op, target, error=None, times=1):
        self._failures[(op, target)] = [error or UpstreamFailure(), times]

    def before_create(self, table, fn):
        self._before_create[table] = fn

    def count_calls(self, op, target):
        return sum(1 for c in self.calls if c == (op, target))

    def rows(self, table):
        with self._lock:
            return copy.deepcopy(list(self.tables.get(table, {}).values()))

    def _record(self, op, target):
        self.calls.append((op, target))
        failure = self._failures.get((op, target))
        if failure:
            error, remaining = failure
            if remaining <= 1:
                del self._failures[(op, target)]
            else:
                failure[1] = remaining - 1
            raise error

    # ---------- documents ----------

    def insert(self, table, fields):
        """Write a row directly, bypassing failure injection and hooks."""
        with self._lock:
            row = copy.deepcopy(fields)
            row.setdefault("id", uuid.uuid4().hex)
            self._check_unique(table, row)
            self.tables.setdefault(table, {})[row["id"]] = row
            return copy.deepcopy(row)

    def _check_unique(self, table, row):
        columns = UNIQUE_KEYS.get(table)
        if not columns:
            return
        key = tuple(row.get(c) for c in columns)
        for other in self.tables.get(table, {}).values():
            if other["id"] != row["id"] and tuple(other.get(c) for c in columns) == key:
                raise DuplicateDocument()

    @staticmethod
    def _matches(row, filters, in_filters, search):
        for column, value in (filters or {}).items():
            if row.get(column) != value:
                return False
        for column, values in (in_filters or {}).items():
            if row.get(column) not in list(values):
                return False
        if search:
            columns, term = search
            term = (term or "").strip().lower()
            if term and not any(term in str(row.get(c) or "").lower() for c in columns):
                return False
        return True

    def get_document(self, table, doc_id):
        self._record("get", table)
        with self._lock:
            row = self.tables.get(table, {}).get(doc_id)
            return copy.deepcopy(row) if row else None

    def list_documents(self, table, filters=None, in_filters=None, search=None,
                       order_by=None, descending=True, limit=None, offset=None):
        self._record("list", table)
        with self._lock:
            rows = [r for r in self.tables.get(table, {}).values()
                    if self._matches(r, filters, in_filters, search)]
            if order_by:
                rows.sort(key=lambda r: str(r.get(order_by) or ""), reverse=descending)
            start = offset or 0
            end = start + limit if limit is not None else None
            return copy.deepcopy(rows[start:end])

    def count_documents(self, table, filters=None, in_filters=None, search=None):
        self._record("count", table)
        with self._lock:
            return sum(1 for r in self.tables.get(table, {}).values()
                       if self._matches(r, filters, in_filters, search))

    def create_document(self, table, fields):
        hook = self._before_create.pop(table, None)
        if hook:
            hook()
        self._record("create", table)
        return self.insert(table, fields)

    def update_document(self, table, doc_id, fields, filters=None):
        self._record("update", table)
        with self._lock:
            row = self.tables.get(table, {}).get(doc_id)
            if row is None or (filters and not self._matches(row, filters, None, None)):
                if filters:
                    return None
                raise UpstreamFailure("The record could not be updated.")
            row.update(copy.deepcopy(fields))
            return copy.deepcopy(row)

    def delete_document(self, table, doc_id):
        self._record("delete", table)
        with self._lock:
            self.tables.get(table, {}).pop(doc_id, None)

    # ---------- files ----------

    def upload_file(self, bucket, upload):
        self._record("upload", bucket)
        ref = f"{uuid.uuid4().hex}/{upload.filename}"
        with self._lock:
            self.files[(bucket, ref)] = upload.data
        return ref

    def delete_file(self, bucket, ref):
        self._record("delete_file", bucket)
        with self._lock:
            self.files.pop((bucket, ref), None)

    def file_url(self, bucket, ref, download=False):
        self._record("sign", bucket)
        url = f"https://storage.test/{bucket}/{ref}?token=signed"
        return url + "&download=" if download else url

    def bucket_files(self, bucket):
        return [ref for (b, ref) in self.files if b == bucket]

    # ---------- accounts ----------

    def create_user(self, email, password, full_name):
        self._record("create_user", "auth")
        if email in self.accounts:
            raise UpstreamFailure("A user with this email address has already been registered")
        user_id = uuid.uuid4().hex
        self.accounts[email] = (password, user_id)
        return user_id

    def sign_in(self, email, password):
        self._record("sign_in", "auth")
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise NotAuthenticated("Invalid email or password.")
        user_id = account[1]
        expires_at = int(time.time()) + 3600
        return AuthSession(access_token=make_token(user_id, email), user_id=user_id, expires_at=expires_at)

    def sign_out(self, access_token):
        self._record("sign_out", "auth")
        self.signed_out.append(access_token)


class FakeBackends:
    """Client factory with the SupabaseBackend interface over one shared store."""

    def __init__(self, store):
        self.store = store
        self.modes = []

    def admin_client(self):
        self.modes.append("admin")
        return self.store

    def _user_client(self, token, mode):
        if not token:
            raise NotAuthenticated("Session not found. Please log in again.")
        self.modes.append(mode)
        return self.store

    def session_client(self, session_token):
        return self._user_client(session_token, "session")

    def token_client(self, jwt_token):
        return self._user_client(jwt_token, "token")

    def auth_client(self):
        self.modes.append("auth")
        return self.store


# ============ Fixtures ============

@pytest.fixture
def store():
    return InMemoryBackend()


@pytest.fixture
def backends(store):
    return FakeBackends(store)


def add_profile(store, user_id=None, role="student", cohort=None, subjects=None,
                full_name="", email="", is_disabled=False):
    """Seed a profile row and return it."""
    user_id = user_id or uuid.uuid4().hex
    return store.insert(config.profiles_table, {
        "user_id": user_id,
        "full_name": full_name or f"{role.title()} {user_id[:4]}",
        "email": email or f"{user_id[:8]}@school.test",
        "role": role,
        "cohort": cohort,
        "subjects": subjects if subjects is not None else (["Maths"] if role == "student" else []),
        "is_disabled": is_disabled,
    })


def make_ctx(store, user_id):
    return RequestContext(user_id=user_id, access_token="token-" + user_id, backend=store)


@pytest.fixture
def teacher(store):
    profile = add_profile(store, "teacher-1", role="teacher", full_name="Ms Mensah")
    return make_ctx(store, profile["user_id"])


@pytest.fixture
def other_teacher(store):
    profile = add_profile(store, "teacher-2", role="teacher", full_name="Mr Owusu")
    return make_ctx(store, profile["user_id"])


@pytest.fixture
def student(store):
    profile = add_profile(store, "student-1", role="student", cohort="JHS 1",
                          full_name="Ama Boateng")
    return make_ctx(store, profile["user_id"])


@pytest.fixture
def other_student(store):
    profile = add_profile(store, "student-2", role="student", cohort="JHS 1",
                          full_name="Kofi Asante")
    return make_ctx(store, profile["user_id"])


@pytest.fixture
def admin(store):
    profile = add_profile(store, "admin-1", role="admin", full_name="Head Teacher")
    return make_ctx(store, profile["user_id"])


def image(name="photo.png", data=b"\x89PNG-bytes", content_type="image/png"):
    return FileUpload(filename=name, data=data, content_type=content_type)


def pdf(name="algebra.pdf", data=b"%PDF-1.4 body"):
    return FileUpload(filename=name, data=data, content_type="application/pdf")


@pytest.fixture
def app(backends):
    from eresources.app import create_app
    return create_app(
        overrides={"TESTING": True, "SUPABASE_JWT_SECRET": JWT_SECRET},
        backend=backends,
    )


@pytest.fixture
def client(app):
    return app.test_client()


def auth_header(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}
