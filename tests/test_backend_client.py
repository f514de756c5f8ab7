"""
Test: Supabase facade: query building and error mapping over a mocked SDK client.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from eresources.backend_client import BackendClient, SupabaseBackend
from eresources.errors import DuplicateDocument, NotAuthenticated, UpstreamFailure
from eresources.models import FileUpload


def _api_error(code, message="boom"):
    return APIError({"code": code, "message": message, "details": None, "hint": None})


@pytest.fixture
def sdk():
    client = MagicMock()
    query = client.table.return_value.select.return_value
    # every builder call returns the same query object
    for name in ("eq", "is_", "in_", "or_", "order", "limit", "range"):
        getattr(query, name).return_value = query
    return client


def _query(sdk):
    return sdk.table.return_value.select.return_value


class TestDocuments:
    def test_get_document(self, sdk):
        _query(sdk).execute.return_value = SimpleNamespace(data=[{"id": "1"}])
        assert BackendClient(sdk).get_document("books", "1") == {"id": "1"}
        _query(sdk).eq.assert_called_with("id", "1")

    def test_get_missing(self, sdk):
        _query(sdk).execute.return_value = SimpleNamespace(data=[])
        assert BackendClient(sdk).get_document("books", "1") is None

    def test_get_malformed_id(self, sdk):
        _query(sdk).execute.side_effect = _api_error("22P02")
        assert BackendClient(sdk).get_document("books", "not-a-uuid") is None

    def test_list_builds_filters(self, sdk):
        query = _query(sdk)
        query.execute.return_value = SimpleNamespace(data=[{"id": "a"}])
        rows = BackendClient(sdk).list_documents(
            "assignments",
            filters={"cohort": "JHS 1", "grade": None},
            in_filters={"id": ["a", "b"]},
            search=(["topic", "subject"], "plan,ts"),
            order_by="created_at",
            limit=10,
            offset=20,
        )
        assert rows == [{"id": "a"}]
        query.eq.assert_any_call("cohort", "JHS 1")
        query.is_.assert_called_once_with("grade", "null")
        query.in_.assert_called_once_with("id", ["a", "b"])
        query.or_.assert_called_once_with("topic.ilike.*plan ts*,subject.ilike.*plan ts*")
        query.order.assert_called_once_with("created_at", desc=True)
        query.range.assert_called_once_with(20, 29)

    def test_count(self, sdk):
        _query(sdk).execute.return_value = SimpleNamespace(data=[], count=7)
        assert BackendClient(sdk).count_documents("books", filters={"cohort": "JHS 1"}) == 7
        sdk.table.return_value.select.assert_called_with("id", count="exact")

    def test_create(self, sdk):
        sdk.table.return_value.insert.return_value.execute.return_value = SimpleNamespace(data=[{"id": "n"}])
        assert BackendClient(sdk).create_document("books", {"topic": "x"}) == {"id": "n"}

    def test_unique_violation(self, sdk):
        sdk.table.return_value.insert.return_value.execute.side_effect = _api_error("23505")
        with pytest.raises(DuplicateDocument):
            BackendClient(sdk).create_document("submissions", {})

    def test_other_api_error(self, sdk, caplog):
        sdk.table.return_value.insert.return_value.execute.side_effect = _api_error("42501")
        with pytest.raises(UpstreamFailure) as exc:
            BackendClient(sdk).create_document("submissions", {})
        assert not isinstance(exc.value, DuplicateDocument)
        assert "create submissions failed" in caplog.text

    def test_network_error(self, sdk):
        sdk.table.return_value.select.return_value.execute.side_effect = ConnectionError("down")
        with pytest.raises(UpstreamFailure):
            BackendClient(sdk).list_documents("books")

    def test_update_no_row(self, sdk):
        sdk.table.return_value.update.return_value.eq.return_value.execute.return_value = SimpleNamespace(data=[])
        with pytest.raises(UpstreamFailure):
            BackendClient(sdk).update_document("books", "1", {"topic": "y"})

    def test_conditional_update(self, sdk):
        query = sdk.table.return_value.update.return_value.eq.return_value
        query.is_.return_value = query
        query.execute.return_value = SimpleNamespace(data=[{"id": "1", "answers": []}])
        row = BackendClient(sdk).update_document("submissions", "1", {"answers": []},
                                                 filters={"grade": None})
        assert row == {"id": "1", "answers": []}
        query.is_.assert_called_once_with("grade", "null")

    def test_conditional_update_no_match(self, sdk):
        query = sdk.table.return_value.update.return_value.eq.return_value
        query.is_.return_value = query
        query.execute.return_value = SimpleNamespace(data=[])
        assert BackendClient(sdk).update_document("submissions", "1", {"answers": []},
                                                  filters={"grade": None}) is None


class TestFiles:
    def test_upload_returns_reference(self, sdk):
        ref = BackendClient(sdk).upload_file("uploads", FileUpload(filename="../My Work.png", data=b"x",
                                                                    content_type="image/png"))
        assert ref.endswith("/My_Work.png")
        sdk.storage.from_.assert_called_with("uploads")
        path, data, options = sdk.storage.from_.return_value.upload.call_args[0]
        assert path == ref
        assert data == b"x"
        assert options == {"content-type": "image/png"}

    def test_signed_url(self, sdk):
        sdk.storage.from_.return_value.create_signed_url.return_value = {"signedURL": "https://s/1"}
        assert BackendClient(sdk).file_url("books", "r/a.pdf") == "https://s/1"

    def test_signed_download_url(self, sdk):
        store = sdk.storage.from_.return_value
        store.create_signed_url.return_value = {"signedUrl": "https://s/2"}
        assert BackendClient(sdk).file_url("books", "r/a.pdf", download=True) == "https://s/2"
        assert store.create_signed_url.call_args[0][2] == {"download": True}

    def test_signed_url_missing(self, sdk):
        sdk.storage.from_.return_value.create_signed_url.return_value = {}
        with pytest.raises(UpstreamFailure):
            BackendClient(sdk).file_url("books", "r/a.pdf")


class TestAccounts:
    def test_sign_in(self, sdk):
        sdk.auth.sign_in_with_password.return_value = SimpleNamespace(
            session=SimpleNamespace(access_token="jwt", expires_at=123),
            user=SimpleNamespace(id="u1"),
        )
        session = BackendClient(sdk).sign_in("a@b.co", "pw")
        assert (session.access_token, session.user_id, session.expires_at) == ("jwt", "u1", 123)

    def test_sign_in_rejected(self, sdk):
        error = Exception("Invalid login credentials")
        error.status = 400
        sdk.auth.sign_in_with_password.side_effect = error
        with pytest.raises(NotAuthenticated):
            BackendClient(sdk).sign_in("a@b.co", "pw")

    def test_create_user(self, sdk):
        sdk.auth.admin.create_user.return_value = SimpleNamespace(user=SimpleNamespace(id="u9"))
        assert BackendClient(sdk).create_user("a@b.co", "pw", "Ama") == "u9"


class TestSupabaseBackend:
    def test_user_client_needs_token(self):
        backend = SupabaseBackend(url="https://x.supabase.co", service_key="s", anon_key="a")
        with pytest.raises(NotAuthenticated):
            backend.session_client("")

    def test_missing_credentials(self):
        backend = SupabaseBackend(url="", service_key="", anon_key="")
        backend.url = ""
        backend.service_key = ""
        with pytest.raises(UpstreamFailure):
            backend.admin_client()
