from typing import Optional

from fastapi import APIRouter, Body, Depends

from talent_match.models.schemas import MatchRequest
from talent_match.services.ai_client import AIExtractionClient, get_ai_client
from talent_match.services.auth import IdentityProvider, get_bearer_token, get_identity_provider
from talent_match.services.db import ProfileStore, get_profile_store
from talent_match.services.matching import MatchOrchestrator
from talent_match.services.progress import ProgressEmitter, stream_response
from talent_match.utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/match-candidates")
async def match_candidates(
    payload: Optional[MatchRequest] = Body(default=None),
    token: Optional[str] = Depends(get_bearer_token),
    ai_client: AIExtractionClient = Depends(get_ai_client),
    store: ProfileStore = Depends(get_profile_store),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Rank the caller's candidates against a job description, streaming progress as SSE"""
    job_description = payload.job_description if payload else None
    logger.info(f"Match request received ({len(job_description or '')} chars of job description)")

    emitter = ProgressEmitter(channel="match")
    orchestrator = MatchOrchestrator(emitter, ai_client, store, identity)
    return stream_response(emitter, orchestrator.run(job_description, token))
