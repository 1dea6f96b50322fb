from typing import List

import pandas as pd
from fastapi import APIRouter, Depends, Query, Response
from pymongo import DESCENDING

from talent_match.models.schemas import CandidateMatchRecord, JobSearchModel, SearchDetail
from talent_match.services.auth import get_current_user
from talent_match.services.db import matches_coll, searches_coll
from talent_match.utils.exceptions import NotFoundError
from talent_match.utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)

REPORT_COLUMNS = [
    "rank", "candidate_name", "candidate_email", "candidate_phone", "candidate_location",
    "job_role", "experience_years", "match_score", "reasoning", "key_strengths",
    "potential_concerns", "is_fallback",
]


async def _load_search(search_id: str, user_id: str) -> JobSearchModel:
    doc = await searches_coll.find_one({"id": search_id, "user_id": user_id})
    if not doc:
        raise NotFoundError("Search not found", resource="search", resource_id=search_id)
    return JobSearchModel(**doc)


async def _load_matches(search_id: str) -> List[CandidateMatchRecord]:
    cursor = matches_coll.find({"search_id": search_id}).sort("match_score", DESCENDING)
    docs = await cursor.to_list(length=None)
    return [CandidateMatchRecord(**doc) for doc in docs]


def build_report(matches: List[CandidateMatchRecord]) -> pd.DataFrame:
    """One row per match, best score first; list columns are joined with '; '."""
    data = [{
        "candidate_name": m.candidate_name,
        "candidate_email": m.candidate_email,
        "candidate_phone": m.candidate_phone,
        "candidate_location": m.candidate_location,
        "job_role": m.job_role,
        "experience_years": m.experience_years,
        "match_score": round(m.match_score, 2),
        "reasoning": m.reasoning,
        "key_strengths": "; ".join(m.key_strengths),
        "potential_concerns": "; ".join(m.potential_concerns),
        "is_fallback": m.is_fallback,
    } for m in matches]

    df = pd.DataFrame(data, columns=REPORT_COLUMNS[1:])
    if len(df):
        df = df.sort_values("match_score", ascending=False, kind="stable").reset_index(drop=True)
    df.insert(0, "rank", range(1, len(df) + 1))
    return df


@router.get("", response_model=List[JobSearchModel])
async def list_searches(
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user),
):
    """The caller's search history, most recent first"""
    cursor = searches_coll.find({"user_id": user_id}).sort("created_at", DESCENDING).limit(limit)
    docs = await cursor.to_list(length=limit)
    return [JobSearchModel(**doc) for doc in docs]


@router.get("/{search_id}", response_model=SearchDetail)
async def get_search(search_id: str, user_id: str = Depends(get_current_user)):
    """A past search with its matches, best score first"""
    search = await _load_search(search_id, user_id)
    return SearchDetail(search=search, matches=await _load_matches(search_id))


@router.get("/{search_id}/report.csv")
async def export_search(search_id: str, user_id: str = Depends(get_current_user)):
    """CSV export of a past search"""
    await _load_search(search_id, user_id)
    df = build_report(await _load_matches(search_id))
    logger.info(f"Exporting {len(df)} matches for search {search_id}")
    return Response(
        content=df.to_csv(index=False),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="search_{search_id}.csv"'},
    )


@router.delete("/{search_id}")
async def delete_search(search_id: str, user_id: str = Depends(get_current_user)):
    """Delete a search and its stored matches"""
    result = await searches_coll.delete_one({"id": search_id, "user_id": user_id})
    if result.deleted_count == 0:
        raise NotFoundError("Search not found", resource="search", resource_id=search_id)
    removed = await matches_coll.delete_many({"search_id": search_id})
    logger.info(f"Deleted search {search_id} and {removed.deleted_count} matches")
    return {"deleted": True, "id": search_id, "matches_deleted": removed.deleted_count}
