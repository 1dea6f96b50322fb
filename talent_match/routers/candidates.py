from fastapi import APIRouter, Depends, Query, Request
from pymongo import DESCENDING

from talent_match.models.schemas import CandidateModel, CandidatePage
from talent_match.services.auth import get_current_user
from talent_match.services.db import bookmarks_coll, profiles_coll
from talent_match.utils.exceptions import DatabaseError, ExceptionContext, NotFoundError
from talent_match.utils.logging_config import PerformanceMonitor, get_logger

router = APIRouter()
logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


@router.get("", response_model=CandidatePage)
async def list_candidates(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    user_id: str = Depends(get_current_user),
):
    """List the caller's candidate profiles, most recent first"""
    request_id = getattr(request.state, 'request_id', 'unknown')

    with PerformanceMonitor("list_candidates", logger):
        with ExceptionContext(
            "list_candidates", logger,
            wrap_as=DatabaseError, message="Failed to retrieve candidates from database",
            request_id=request_id, collection="profiles",
        ):
            query = {"user_id": user_id}
            total = await profiles_coll.count_documents(query)
            cursor = (
                profiles_coll.find(query)
                .sort("created_at", DESCENDING)
                .skip((page - 1) * page_size)
                .limit(page_size)
            )
            docs = await cursor.to_list(length=page_size)

    logger.info(f"Fetched {len(docs)} of {total} candidates", extra={"request_id": request_id})
    return CandidatePage(
        items=[CandidateModel(**doc) for doc in docs],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.get("/{candidate_id}", response_model=CandidateModel)
async def get_candidate(candidate_id: str, user_id: str = Depends(get_current_user)):
    """Fetch one of the caller's candidates"""
    doc = await profiles_coll.find_one({"id": candidate_id, "user_id": user_id})
    if not doc:
        raise NotFoundError("Candidate not found", resource="candidate", resource_id=candidate_id)
    return CandidateModel(**doc)


@router.delete("/{candidate_id}")
async def delete_candidate(candidate_id: str, user_id: str = Depends(get_current_user)):
    """Delete a candidate profile and any bookmarks pointing at it"""
    result = await profiles_coll.delete_one({"id": candidate_id, "user_id": user_id})
    if result.deleted_count == 0:
        raise NotFoundError("Candidate not found", resource="candidate", resource_id=candidate_id)
    await bookmarks_coll.delete_many({"candidate_id": candidate_id, "user_id": user_id})
    logger.info(f"Deleted candidate {candidate_id}")
    return {"deleted": True, "id": candidate_id}
