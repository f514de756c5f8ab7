"""
Supabase facade for the e-resources portal.

Supplies the three client modes the portal needs:
- admin client: service key, no user session (signup, admin pages)
- session client: acts as the end user holding a web session cookie
- token client: acts as the end user holding a mobile JWT

Every SDK error is converted into the portal's error taxonomy here, so the
services above never see PostgREST, storage or auth exceptions directly.
"""
import logging
import re
import uuid
from typing import Dict, Iterable, List, Optional, Tuple

from postgrest.exceptions import APIError
from pydantic import BaseModel
from supabase import Client, ClientOptions, create_client
from werkzeug.utils import secure_filename

from .config import config
from .errors import (
    DuplicateDocument, NotAuthenticated, PortalError, UpstreamFailure,
)

logger = logging.getLogger(__name__)

# Postgres SQLSTATE codes
UNIQUE_VIOLATION = '23505'
INVALID_TEXT_REPRESENTATION = '22P02'

_SEARCH_UNSAFE = re.compile(r'[,()*%]')


class AuthSession(BaseModel):
    access_token: str
    user_id: str
    expires_at: Optional[int] = None


def _api_error_code(error):
    code = getattr(error, 'code', None)
    if code is None and error.args and isinstance(error.args[0], dict):
        code = error.args[0].get('code')
    return code


class BackendClient:
    """Document, file and account operations over one Supabase client."""

    def __init__(self, client: Client, label='session'):
        self._client = client
        self.label = label

    # ---------- internals ----------

    def _run(self, action, fn):
        try:
            return fn()
        except APIError as e:
            if _api_error_code(e) == UNIQUE_VIOLATION:
                raise DuplicateDocument() from e
            logger.error("Supabase %s failed (%s client): %s", action, self.label, e)
            raise UpstreamFailure() from e
        except PortalError:
            raise
        except Exception as e:
            logger.error("Supabase %s failed (%s client): %s", action, self.label, e)
            raise UpstreamFailure() from e

    @staticmethod
    def _apply_filters(query, filters=None, in_filters=None, search=None):
        for column, value in (filters or {}).items():
            if value is None:
                query = query.is_(column, 'null')
            else:
                query = query.eq(column, value)
        for column, values in (in_filters or {}).items():
            query = query.in_(column, list(values))
        if search:
            columns, term = search
            term = _SEARCH_UNSAFE.sub(' ', term or '').strip()
            if term:
                query = query.or_(",".join(f"{c}.ilike.*{term}*" for c in columns))
        return query

    # ---------- documents ----------

    def get_document(self, table: str, doc_id: str) -> Optional[dict]:
        """Fetch one row by id. Returns None when it does not exist."""
        if not doc_id:
            return None

        def fetch():
            try:
                return self._client.table(table).select('*').eq('id', doc_id).limit(1).execute()
            except APIError as e:
                # malformed uuid: nothing can match
                if _api_error_code(e) == INVALID_TEXT_REPRESENTATION:
                    return None
                raise

        result = self._run(f"get {table}", fetch)
        if result is None or not result.data:
            return None
        return result.data[0]

    def list_documents(self, table: str, filters: Optional[Dict] = None,
                       in_filters: Optional[Dict[str, Iterable]] = None,
                       search: Optional[Tuple[List[str], str]] = None,
                       order_by: Optional[str] = None, descending: bool = True,
                       limit: Optional[int] = None, offset: Optional[int] = None) -> List[dict]:
        """List rows matching equality, IN and search filters."""
        def fetch():
            query = self._client.table(table).select('*')
            query = self._apply_filters(query, filters, in_filters, search)
            if order_by:
                query = query.order(order_by, desc=descending)
            if limit is not None:
                if offset:
                    query = query.range(offset, offset + limit - 1)
                else:
                    query = query.limit(limit)
            return query.execute()

        result = self._run(f"list {table}", fetch)
        return result.data or []

    def count_documents(self, table: str, filters: Optional[Dict] = None,
                        in_filters: Optional[Dict[str, Iterable]] = None,
                        search: Optional[Tuple[List[str], str]] = None) -> int:
        def fetch():
            query = self._client.table(table).select('id', count='exact')
            query = self._apply_filters(query, filters, in_filters, search)
            return query.limit(1).execute()

        result = self._run(f"count {table}", fetch)
        return result.count or 0

    def create_document(self, table: str, fields: dict) -> dict:
        """Insert a row. Raises DuplicateDocument on a unique-constraint conflict."""
        result = self._run(f"create {table}",
                           lambda: self._client.table(table).insert(fields).execute())
        if not result.data:
            logger.error("Supabase create %s returned no row", table)
            raise UpstreamFailure()
        return result.data[0]

    def update_document(self, table: str, doc_id: str, fields: dict,
                        filters: Optional[Dict] = None) -> Optional[dict]:
        """
        Update one row by id. With `filters` the update is conditional and
        returns None when the row no longer matches them.
        """
        def write():
            query = self._client.table(table).update(fields).eq('id', doc_id)
            return self._apply_filters(query, filters).execute()

        result = self._run(f"update {table}", write)
        if not result.data:
            if filters:
                return None
            logger.error("Supabase update %s/%s matched no row", table, doc_id)
            raise UpstreamFailure("The record could not be updated.")
        return result.data[0]

    def delete_document(self, table: str, doc_id: str):
        self._run(f"delete {table}",
                  lambda: self._client.table(table).delete().eq('id', doc_id).execute())

    # ---------- files ----------

    def upload_file(self, bucket: str, upload) -> str:
        """Upload a FileUpload and return its opaque storage reference."""
        ref = f"{uuid.uuid4().hex}/{secure_filename(upload.filename) or 'file'}"
        self._run(f"upload to {bucket}", lambda: self._client.storage.from_(bucket).upload(
            ref, upload.data, {"content-type": upload.content_type}))
        return ref

    def delete_file(self, bucket: str, ref: str):
        self._run(f"delete from {bucket}",
                  lambda: self._client.storage.from_(bucket).remove([ref]))

    def file_url(self, bucket: str, ref: str, download: bool = False) -> str:
        """Signed URL to view (or download) a stored file."""
        options = {"download": True} if download else None

        def sign():
            store = self._client.storage.from_(bucket)
            if options:
                return store.create_signed_url(ref, config.signed_url_ttl, options)
            return store.create_signed_url(ref, config.signed_url_ttl)

        result = self._run(f"sign {bucket}", sign)
        url = (result.get('signedURL') or result.get('signedUrl')) if isinstance(result, dict) else None
        if not url:
            raise UpstreamFailure("Could not generate download URL.")
        return url

    # ---------- accounts ----------

    def create_user(self, email: str, password: str, full_name: str) -> str:
        result = self._run("create user", lambda: self._client.auth.admin.create_user({
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": {"full_name": full_name},
        }))
        return result.user.id

    def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            result = self._client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            if getattr(e, 'status', None) in (400, 401):
                raise NotAuthenticated("Invalid email or password.") from e
            logger.error("Supabase sign in failed: %s", e)
            raise UpstreamFailure() from e
        session = result.session
        if session is None:
            raise NotAuthenticated("Invalid email or password.")
        return AuthSession(access_token=session.access_token,
                           user_id=result.user.id,
                           expires_at=session.expires_at)

    def sign_out(self, access_token: str):
        self._run("sign out", lambda: self._client.auth.admin.sign_out(access_token))


class SupabaseBackend:
    """Builds BackendClients for each client mode. The admin client is shared."""

    def __init__(self, url=None, service_key=None, anon_key=None):
        self.url = url or config.supabase_url
        self.service_key = service_key or config.supabase_service_key
        self.anon_key = anon_key or config.supabase_anon_key
        self._admin = None

    def _require(self, key):
        if not self.url or not key:
            raise UpstreamFailure(
                "Supabase credentials not configured. Check SUPABASE_URL and keys in .env")

    def admin_client(self) -> BackendClient:
        """Privileged client. Never used to act on behalf of an end user."""
        if self._admin is None:
            self._require(self.service_key)
            self._admin = BackendClient(create_client(self.url, self.service_key), label='admin')
        return self._admin

    def _user_client(self, access_token, label):
        if not access_token:
            raise NotAuthenticated("Session not found. Please log in again.")
        self._require(self.anon_key)
        options = ClientOptions(headers={"Authorization": f"Bearer {access_token}"})
        client = create_client(self.url, self.anon_key, options=options)
        client.postgrest.auth(access_token)
        return BackendClient(client, label=label)

    def session_client(self, session_token: str) -> BackendClient:
        return self._user_client(session_token, 'session')

    def token_client(self, jwt_token: str) -> BackendClient:
        return self._user_client(jwt_token, 'token')

    def auth_client(self) -> BackendClient:
        """Fresh anonymous client for password sign-in."""
        self._require(self.anon_key)
        return BackendClient(create_client(self.url, self.anon_key), label='auth')


_default_backend = None


def get_backend() -> SupabaseBackend:
    global _default_backend
    if _default_backend is None:
        _default_backend = SupabaseBackend()
    return _default_backend


def create_admin_client() -> BackendClient:
    return get_backend().admin_client()


def create_session_client(session_token: str) -> BackendClient:
    return get_backend().session_client(session_token)


def create_token_client(jwt_token: str) -> BackendClient:
    return get_backend().token_client(jwt_token)
