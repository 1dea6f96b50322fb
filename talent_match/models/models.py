from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

REASONING_MAX_CHARS = 200
MAX_POINTS = 3


class SourceRecord(BaseModel):
    """A stored candidate profile, as read from the profiles collection."""
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: Optional[str] = None
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
    resume_text: Optional[str] = None
    resume_file_url: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class WorkItem:
    """A SourceRecord tagged with its position in the fetched list; index is the reconciliation key."""
    index: int
    record: SourceRecord


class RankedCandidate(BaseModel):
    """One entry of the rank-mode AI response, validated at the trust boundary."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    candidate_index: int = Field(alias="candidateIndex")
    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    job_title: Optional[str] = Field(default=None, alias="jobTitle")
    years_of_experience: Optional[float] = Field(default=None, alias="yearsOfExperience")
    match_score: float = Field(alias="matchScore")
    reasoning: str = ""
    strengths: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)

    @field_validator("match_score")
    @classmethod
    def _clamp_score(cls, v: float) -> float:
        return max(0.0, min(100.0, float(v)))

    @field_validator("full_name", "email", "phone", "location", "job_title", mode="before")
    @classmethod
    def _scalar_text(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, (dict, list)):
            return None
        return str(v).strip() or None

    @field_validator("years_of_experience", mode="before")
    @classmethod
    def _loose_years(cls, v: Any) -> Optional[float]:
        if v is None or isinstance(v, bool):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @field_validator("reasoning", mode="before")
    @classmethod
    def _bound_reasoning(cls, v: Any) -> str:
        if v is None:
            return ""
        if not isinstance(v, str):
            raise ValueError("reasoning must be a string")
        return v.strip()[:REASONING_MAX_CHARS]

    @field_validator("strengths", "concerns", mode="before")
    @classmethod
    def _bound_points(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if not isinstance(v, list):
            raise ValueError("expected a list of strings")
        return [str(p).strip() for p in v if str(p).strip()][:MAX_POINTS]


class RankResponse(BaseModel):
    """Top-level rank-mode response: {"candidates": [...]}"""
    candidates: List[RankedCandidate]


class RankedResult(RankedCandidate):
    is_fallback: bool = False


class CandidateMatch(BaseModel):
    """A ranked result joined back to its SourceRecord; the shape streamed to clients."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    resume_file_url: Optional[str] = None
    full_name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    location: Optional[str] = None
    job_title: Optional[str] = None
    years_of_experience: Optional[float] = None
    match_score: float = Field(alias="matchScore")
    reasoning: str
    strengths: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)
    is_fallback: bool = Field(default=False, alias="isFallback")


class RawExtraction(BaseModel):
    """Structured-extraction response; values are untrusted and normalized later."""
    model_config = ConfigDict(extra="allow")

    full_name: Any = None
    email: Any = None
    phone_number: Any = None
    location: Any = None
    job_title: Any = None
    years_of_experience: Any = None
    sector: Any = None
    skills: Any = None
    experience: Any = None
    education: Any = None
    resume_text: Any = None


class ExtractedProfile(BaseModel):
    """Sanitized fields destined for a SourceRecord."""
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    location: Optional[str] = None
    job_title: Optional[str] = None
    years_of_experience: Optional[int] = None
    sector: Optional[str] = None
    skills: Optional[List[str]] = None
    experience: Optional[str] = None
    education: Optional[str] = None
    resume_text: Optional[str] = None
    resume_file_url: Optional[str] = None


class StoredDocument(BaseModel):
    file_id: str
    path: str
    url: str
    content_type: str
    size: int
