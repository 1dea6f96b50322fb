import os

# Keep test runs quiet and off the log directory
os.environ.setdefault("ENVIRONMENT", "testing")

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from talent_match.helpers.sse import SSELineParser
from talent_match.models.models import RankedCandidate, SourceRecord, StoredDocument
from talent_match.services.progress import ProgressEmitter
from talent_match.utils.exceptions import AuthenticationError, ConfigurationError, DatabaseError, StorageError


class FakeAI:
    """
    Stand-in for AIExtractionClient.

    `rank` is called with (job_description, snippets) and returns a list of
    RankedCandidate or raises. `extract_results` / `text_results` are
    consumed one per call; Exception instances in them are raised.
    """

    def __init__(self, rank: Optional[Callable] = None, extract_results=None, text_results=None,
                 configured: bool = True):
        self.rank = rank or score_by_index
        self.extract_results = list(extract_results or [])
        self.text_results = list(text_results or [])
        self.configured = configured
        self.rank_calls: List[List[int]] = []
        self.extract_calls = 0

    def ensure_configured(self):
        if not self.configured:
            raise ConfigurationError("GEMINI_API_KEY not configured", config_key="GEMINI_API_KEY")

    async def rank_candidates(self, job_description, snippets):
        self.rank_calls.append([index for index, _ in snippets])
        await asyncio.sleep(0)
        return self.rank(job_description, snippets)

    async def extract_profile(self, content, mime_type):
        self.extract_calls += 1
        return self._next(self.extract_results)

    async def extract_text(self, content, mime_type):
        self.extract_calls += 1
        return self._next(self.text_results)

    @staticmethod
    def _next(results):
        result = results.pop(0) if len(results) > 1 else results[0]
        if isinstance(result, Exception):
            raise result
        return result


def score_by_index(job_description, snippets):
    """Deterministic ranking: score = 10 * index (capped at 100), name from the snippet."""
    return [
        RankedCandidate(
            candidate_index=index,
            full_name=f"Person {index}",
            match_score=min(100, 10 * index),
            reasoning="Relevant experience",
            strengths=["python"],
            concerns=[],
        )
        for index, _ in snippets
    ]


class InMemoryProfileStore:
    """Implements the ProfileStore interface over plain lists."""

    def __init__(self, profiles: Optional[List[Dict[str, Any]]] = None):
        self.profiles = list(profiles or [])
        self.searches: List[Dict[str, Any]] = []
        self.matches: List[Dict[str, Any]] = []
        self.updates: List[tuple] = []
        self.fail_updates_for = set()
        self.fail_insert_search = False
        self._next_id = 0

    async def list_recent_profiles(self, user_id, limit):
        mine = [p for p in self.profiles if p.get("user_id") == user_id]
        mine.sort(key=lambda p: p["created_at"], reverse=True)
        return [SourceRecord(**p) for p in mine[:limit]]

    async def update_profile(self, profile_id, fields):
        if profile_id in self.fail_updates_for:
            raise DatabaseError("update failed", operation="update_profile")
        self.updates.append((profile_id, dict(fields)))
        for p in self.profiles:
            if p["id"] == profile_id:
                p.update(fields)

    async def find_profile_by_email(self, user_id, email):
        for p in self.profiles:
            if p.get("user_id") == user_id and p.get("email") == email:
                return dict(p)
        return None

    async def insert_profile(self, user_id, fields):
        self._next_id += 1
        profile_id = f"profile-{self._next_id}"
        self.profiles.append({**fields, "id": profile_id, "user_id": user_id,
                              "created_at": datetime.now(timezone.utc)})
        return profile_id

    async def insert_search(self, user_id, job_description, total_candidates):
        if self.fail_insert_search:
            raise DatabaseError("Failed to save search", operation="insert_search")
        search_id = f"search-{len(self.searches) + 1}"
        self.searches.append({"id": search_id, "user_id": user_id, "job_description": job_description,
                              "total_candidates": total_candidates})
        return search_id

    async def insert_matches(self, rows):
        self.matches.extend(rows)


class FakeStorage:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: List[tuple] = []

    async def upload(self, filename, content, content_type, user_id):
        if self.fail:
            raise StorageError("Storage upload failed: bucket unavailable")
        self.uploads.append((filename, content, content_type, user_id))
        file_id = f"file-{len(self.uploads)}"
        return StoredDocument(
            file_id=file_id,
            path=f"resumes/1700000000000_abcd1234_{filename}",
            url=f"http://testserver/api/resumes/files/{file_id}",
            content_type=content_type,
            size=len(content),
        )


class FakeIdentity:
    def __init__(self, user_id: str = "user-1"):
        self.user_id = user_id
        self.calls = 0

    async def resolve(self, token):
        self.calls += 1
        if not token:
            raise AuthenticationError("Unable to authenticate user")
        return self.user_id


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def make_profiles(count: int, user_id: str = "user-1") -> List[Dict[str, Any]]:
    """`count` profiles whose created_at order makes profile-0 the most recent."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        {
            "id": f"cand-{i}",
            "user_id": user_id,
            "full_name": f"Stored {i}",
            "email": f"stored{i}@example.com",
            "resume_text": f"Resume text for candidate {i}",
            "created_at": base - timedelta(minutes=i),
        }
        for i in range(count)
    ]


async def drain(emitter: ProgressEmitter) -> List[Dict[str, Any]]:
    """Parse every frame the emitter produced (call after the producer finished)."""
    parser = SSELineParser()
    events = []
    async for frame in emitter.stream():
        events.extend(parser.feed(frame))
    return events


def parse_sse_body(text: str) -> List[Dict[str, Any]]:
    parser = SSELineParser()
    return parser.feed(text) + parser.close()


@pytest.fixture
def fake_identity():
    return FakeIdentity()


@pytest.fixture
def sleeper():
    return RecordingSleep()
