from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -------- Requests --------
class MatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Left optional so an empty/missing description is reported on the stream, not as a 422
    job_description: Optional[str] = Field(default=None, alias="jobDescription")


class BookmarkCreate(BaseModel):
    candidate_id: str


# -------- Candidates --------
class CandidateModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    location: Optional[str] = None
    job_title: Optional[str] = None
    years_of_experience: Optional[float] = None
    sector: Optional[str] = None
    skills: Optional[List[str]] = None
    experience: Optional[str] = None
    education: Optional[str] = None
    resume_file_url: Optional[str] = None
    created_at: Optional[datetime] = None


class CandidatePage(BaseModel):
    items: List[CandidateModel]
    page: int
    page_size: int
    total: int


# -------- Searches --------
class JobSearchModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    job_description: str
    total_candidates: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class CandidateMatchRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    search_id: str
    candidate_id: str
    candidate_name: str
    candidate_email: Optional[str] = None
    candidate_phone: Optional[str] = None
    candidate_location: Optional[str] = None
    job_role: Optional[str] = None
    experience_years: Optional[float] = None
    match_score: float
    reasoning: str
    key_strengths: List[str] = []
    potential_concerns: List[str] = []
    is_fallback: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class SearchDetail(BaseModel):
    search: JobSearchModel
    matches: List[CandidateMatchRecord]


# -------- Bookmarks --------
class BookmarkModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    candidate_id: str
    created_at: datetime = Field(default_factory=utcnow)


class BookmarkDetail(BaseModel):
    """A bookmark with the candidate it points at and that candidate's latest match, if any."""
    bookmark: BookmarkModel
    candidate: Optional[CandidateModel] = None
    latest_match: Optional[CandidateMatchRecord] = None
