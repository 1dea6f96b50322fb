from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from talent_match.services.ai_client import AIExtractionClient, get_ai_client
from talent_match.services.auth import IdentityProvider, get_bearer_token, get_identity_provider
from talent_match.services.db import ProfileStore, get_profile_store
from talent_match.services.extraction import ExtractionOrchestrator
from talent_match.services.progress import ProgressEmitter, stream_response
from talent_match.services.storage import DocumentStorage, get_document_storage
from talent_match.utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/parse-resume")
async def parse_resume(
    file: Optional[UploadFile] = File(default=None),
    fileName: Optional[str] = Form(default=None),
    token: Optional[str] = Depends(get_bearer_token),
    ai_client: AIExtractionClient = Depends(get_ai_client),
    store: ProfileStore = Depends(get_profile_store),
    storage: DocumentStorage = Depends(get_document_storage),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Store an uploaded resume, extract its fields and save the profile, streaming progress as SSE"""
    content = await file.read() if file is not None else b""
    file_name = fileName or (file.filename if file is not None else None)
    content_type = file.content_type if file is not None else None
    logger.info(f"Resume upload received: {file_name} ({len(content)} bytes)")

    emitter = ProgressEmitter(channel="parse-resume")
    orchestrator = ExtractionOrchestrator(emitter, ai_client, store, storage, identity)
    return stream_response(emitter, orchestrator.run(file_name, content, content_type, token))


@router.get("/resumes/files/{file_id}")
async def download_resume(file_id: str, storage: DocumentStorage = Depends(get_document_storage)):
    """Serve a stored resume back; this is the URL saved on the profile"""
    content, content_type, path = await storage.download(file_id)
    filename = path.rsplit("/", 1)[-1]
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
