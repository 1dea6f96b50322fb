import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from bson import ObjectId
from gridfs.errors import NoFile

from talent_match.services.auth import IdentityProvider, bearer_token
from talent_match.services.db import ProfileStore
from talent_match.services.storage import DocumentStorage, build_storage_path, safe_filename
from talent_match.utils.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DatabaseError,
    ExternalServiceError,
    NotFoundError,
    StorageError,
)


def identity_for(handler, api_key="anon-key"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return IdentityProvider(auth_url="https://auth.test/auth/v1/user", api_key=api_key, http_client=http)


class TestIdentityProvider:
    """Bearer token -> user id"""

    def test_bearer_token_parsing(self):
        assert bearer_token("Bearer abc") == "abc"
        assert bearer_token("bearer  abc ") == "abc"
        assert bearer_token("Basic abc") is None
        assert bearer_token("Bearer ") is None
        assert bearer_token(None) is None

    def test_resolves_user_id(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["apikey"] = request.headers["apikey"]
            return httpx.Response(200, json={"id": "user-42", "email": "hr@example.com"})

        assert asyncio.run(identity_for(handler).resolve("tok")) == "user-42"
        assert seen == {"auth": "Bearer tok", "apikey": "anon-key"}

    def test_missing_token_never_calls_provider(self):
        calls = []
        identity = identity_for(lambda r: calls.append(r) or httpx.Response(200, json={"id": "x"}))
        with pytest.raises(AuthenticationError):
            asyncio.run(identity.resolve(None))
        assert calls == []

    def test_rejected_token(self):
        identity = identity_for(lambda r: httpx.Response(401, json={"msg": "invalid JWT"}))
        with pytest.raises(AuthenticationError, match="Unable to authenticate user"):
            asyncio.run(identity.resolve("expired"))

    def test_response_without_id(self):
        identity = identity_for(lambda r: httpx.Response(200, json={}))
        with pytest.raises(AuthenticationError):
            asyncio.run(identity.resolve("tok"))

    def test_provider_outage(self):
        identity = identity_for(lambda r: httpx.Response(503))
        with pytest.raises(ExternalServiceError) as exc_info:
            asyncio.run(identity.resolve("tok"))
        assert exc_info.value.status_code == 503

    def test_unconfigured(self):
        identity = IdentityProvider(auth_url="", api_key="")
        identity.auth_url = ""
        with pytest.raises(ConfigurationError):
            asyncio.run(identity.resolve("tok"))


class TestDocumentStorage:
    """GridFS-backed resume storage"""

    def test_safe_filename(self):
        assert safe_filename("My CV (final).pdf") == "My_CV_final_.pdf"
        assert safe_filename("../../etc/passwd") == "etc_passwd"
        assert safe_filename("   ") == "resume"

    def test_storage_paths_are_unique(self):
        first, second = build_storage_path("cv.pdf"), build_storage_path("cv.pdf")
        assert first.startswith("resumes/") and first.endswith("_cv.pdf")
        assert first != second

    def test_upload_returns_public_url(self):
        file_id = ObjectId()
        bucket = MagicMock()
        bucket.upload_from_stream = AsyncMock(return_value=file_id)
        storage = DocumentStorage(bucket=bucket, public_base_url="https://api.example.com/")

        stored = asyncio.run(storage.upload("cv.pdf", b"%PDF", "application/pdf", "user-1"))

        assert stored.file_id == str(file_id)
        assert stored.url == f"https://api.example.com/api/resumes/files/{file_id}"
        assert stored.size == 4
        _, kwargs = bucket.upload_from_stream.call_args
        assert kwargs["metadata"]["user_id"] == "user-1"

    def test_upload_failure(self):
        bucket = MagicMock()
        bucket.upload_from_stream = AsyncMock(side_effect=RuntimeError("bucket unavailable"))
        storage = DocumentStorage(bucket=bucket, public_base_url="http://x")

        with pytest.raises(StorageError, match="Storage upload failed: bucket unavailable"):
            asyncio.run(storage.upload("cv.pdf", b"%PDF", "application/pdf", "user-1"))

    def test_download(self):
        grid_out = MagicMock()
        grid_out.read = AsyncMock(return_value=b"%PDF")
        grid_out.metadata = {"content_type": "application/pdf"}
        grid_out.filename = "resumes/1_ab_cv.pdf"
        bucket = MagicMock()
        bucket.open_download_stream = AsyncMock(return_value=grid_out)
        storage = DocumentStorage(bucket=bucket, public_base_url="http://x")

        assert asyncio.run(storage.download(str(ObjectId()))) == (b"%PDF", "application/pdf", "resumes/1_ab_cv.pdf")

    def test_download_unknown_or_malformed_id(self):
        bucket = MagicMock()
        bucket.open_download_stream = AsyncMock(side_effect=NoFile("no file"))
        storage = DocumentStorage(bucket=bucket, public_base_url="http://x")

        with pytest.raises(NotFoundError):
            asyncio.run(storage.download(str(ObjectId())))
        with pytest.raises(NotFoundError):
            asyncio.run(storage.download("not-an-object-id"))


class TestProfileStore:
    """Mongo access used by the orchestrators"""

    def test_recent_profiles_are_user_scoped(self):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[{"_id": "oid", "id": "cand-1", "user_id": "u", "full_name": "Ada"}])
        profiles = MagicMock()
        profiles.find.return_value = cursor

        records = asyncio.run(ProfileStore(profiles=profiles).list_recent_profiles("u", 500))

        profiles.find.assert_called_once_with({"user_id": "u"})
        cursor.sort.assert_called_once_with("created_at", -1)
        cursor.limit.assert_called_once_with(500)
        assert records[0].id == "cand-1"
        assert records[0].full_name == "Ada"

    def test_insert_matches_stamps_created_at_without_touching_rows(self):
        matches = MagicMock()
        matches.insert_many = AsyncMock()
        rows = [{"search_id": "s", "candidate_id": "a"}, {"search_id": "s", "candidate_id": "b"}]

        asyncio.run(ProfileStore(matches=matches).insert_matches(rows))

        docs = matches.insert_many.call_args[0][0]
        assert [d["candidate_id"] for d in docs] == ["a", "b"]
        assert all("created_at" in d for d in docs)
        assert "created_at" not in rows[0]

    def test_no_matches_is_a_no_op(self):
        matches = MagicMock()
        matches.insert_many = AsyncMock()
        asyncio.run(ProfileStore(matches=matches).insert_matches([]))
        matches.insert_many.assert_not_awaited()

    def test_insert_search_failure(self):
        searches = MagicMock()
        searches.insert_one = AsyncMock(side_effect=RuntimeError("not primary"))

        with pytest.raises(DatabaseError, match="Failed to save search"):
            asyncio.run(ProfileStore(searches=searches).insert_search("u", "jd", 3))

    def test_insert_profile_returns_new_id(self):
        profiles = MagicMock()
        profiles.insert_one = AsyncMock()

        profile_id = asyncio.run(ProfileStore(profiles=profiles).insert_profile("u", {"full_name": "Ada"}))

        doc = profiles.insert_one.call_args[0][0]
        assert doc["id"] == profile_id
        assert doc["user_id"] == "u"
        assert doc["full_name"] == "Ada"
