import uuid
from typing import List

from fastapi import APIRouter, Depends
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from talent_match.models.schemas import (
    BookmarkCreate,
    BookmarkDetail,
    BookmarkModel,
    CandidateMatchRecord,
    CandidateModel,
    utcnow,
)
from talent_match.services.auth import get_current_user
from talent_match.services.db import bookmarks_coll, matches_coll, profiles_coll
from talent_match.utils.exceptions import NotFoundError
from talent_match.utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get("", response_model=List[BookmarkDetail])
async def list_bookmarks(user_id: str = Depends(get_current_user)):
    """Bookmarked candidates with their profile and most recent match"""
    cursor = bookmarks_coll.find({"user_id": user_id}).sort("created_at", DESCENDING)
    bookmarks = await cursor.to_list(length=None)

    details = []
    for doc in bookmarks:
        bookmark = BookmarkModel(**doc)
        profile = await profiles_coll.find_one({"id": bookmark.candidate_id, "user_id": user_id})
        latest = await matches_coll.find_one(
            {"candidate_id": bookmark.candidate_id}, sort=[("created_at", DESCENDING)]
        )
        details.append(BookmarkDetail(
            bookmark=bookmark,
            candidate=CandidateModel(**profile) if profile else None,
            latest_match=CandidateMatchRecord(**latest) if latest else None,
        ))
    return details


@router.post("", response_model=BookmarkModel)
async def add_bookmark(body: BookmarkCreate, user_id: str = Depends(get_current_user)):
    """Bookmark a candidate; bookmarking twice returns the existing bookmark"""
    query = {"user_id": user_id, "candidate_id": body.candidate_id}
    existing = await bookmarks_coll.find_one(query)
    if existing:
        return BookmarkModel(**existing)

    if not await profiles_coll.find_one({"id": body.candidate_id, "user_id": user_id}):
        raise NotFoundError("Candidate not found", resource="candidate", resource_id=body.candidate_id)

    doc = {**query, "id": str(uuid.uuid4()), "created_at": utcnow()}
    try:
        await bookmarks_coll.insert_one(dict(doc))
    except DuplicateKeyError:
        # Lost a race with a concurrent request for the same pair
        existing = await bookmarks_coll.find_one(query)
        if existing:
            return BookmarkModel(**existing)
        raise
    logger.info(f"Bookmarked candidate {body.candidate_id}")
    return BookmarkModel(**doc)


@router.delete("/{candidate_id}")
async def remove_bookmark(candidate_id: str, user_id: str = Depends(get_current_user)):
    """Remove the caller's bookmark for a candidate"""
    result = await bookmarks_coll.delete_one({"user_id": user_id, "candidate_id": candidate_id})
    if result.deleted_count == 0:
        raise NotFoundError("Bookmark not found", resource="bookmark", resource_id=candidate_id)
    return {"deleted": True, "candidate_id": candidate_id}
