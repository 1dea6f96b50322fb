"""
Resume intake: store the uploaded document, extract candidate fields with the
AI service, sanitize them and upsert the profile, streaming progress as it goes.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, TypedDict

from langgraph.graph import END, StateGraph

from talent_match.helpers.normalize import normalize_profile
from talent_match.helpers.parsing import detect_document_type, extract_local_text, local_field_pass
from talent_match.models.events import ExtractionComplete
from talent_match.models.models import ExtractedProfile, StoredDocument
from talent_match.services.ai_client import AIExtractionClient
from talent_match.services.auth import IdentityProvider
from talent_match.services.db import ProfileStore
from talent_match.services.progress import ProgressEmitter
from talent_match.services.retry import RetryPolicy
from talent_match.services.storage import DocumentStorage
from talent_match.utils import config
from talent_match.utils.exceptions import ProcessingError, TalentMatchError, ValidationError
from talent_match.utils.logging_config import PerformanceMonitor, get_logger

logger = get_logger(__name__)

TOTAL_STEPS = 4
EXTRACTION_MODES = ("structured", "ocr")


class ExtractionState(TypedDict, total=False):
    file_name: str
    content: bytes
    content_type: Optional[str]
    token: Optional[str]
    extension: str
    mime_type: str
    user_id: str
    document: StoredDocument
    raw: Dict[str, Any]
    fallback_text: Optional[str]
    profile: ExtractedProfile
    profile_id: str
    updated: bool
    stage: str


class ExtractionOrchestrator:
    """
    One instance per uploaded document.

    langgraph pipeline: init -> upload -> extract -> normalize -> persist.
    In "structured" mode the AI returns the profile fields directly and an
    exhausted retry budget fails the request. In "ocr" mode the AI only
    returns text; when that fails too the locally readable text (if any)
    is used, and the fields come from a regex pass over the text.
    """

    def __init__(
        self,
        emitter: ProgressEmitter,
        ai_client: AIExtractionClient,
        store: ProfileStore,
        storage: DocumentStorage,
        identity: IdentityProvider,
        mode: Optional[str] = None,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        max_delay_ms: Optional[int] = None,
        max_upload_mb: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.emitter = emitter
        self.ai = ai_client
        self.store = store
        self.storage = storage
        self.identity = identity
        self.mode = (mode or config.EXTRACTION_MODE).lower()
        if self.mode not in EXTRACTION_MODES:
            raise ValueError(f"Unknown extraction mode: {self.mode}")
        self.max_attempts = max_attempts or config.EXTRACT_MAX_ATTEMPTS
        self.base_delay_ms = base_delay_ms if base_delay_ms is not None else config.RETRY_BASE_DELAY_MS
        self.max_delay_ms = max_delay_ms if max_delay_ms is not None else config.RETRY_MAX_DELAY_MS
        self.max_upload_bytes = int((max_upload_mb or config.MAX_UPLOAD_MB) * 1024 * 1024)
        self._sleep = sleep
        self.graph = self._build_graph()

    def _build_graph(self):
        g = StateGraph(ExtractionState)
        g.add_node("init", self.node_init)
        g.add_node("upload", self.node_upload)
        g.add_node("extract", self.node_extract)
        g.add_node("normalize", self.node_normalize)
        g.add_node("persist", self.node_persist)
        g.set_entry_point("init")
        g.add_edge("init", "upload")
        g.add_edge("upload", "extract")
        g.add_edge("extract", "normalize")
        g.add_edge("normalize", "persist")
        g.add_edge("persist", END)
        return g.compile()

    async def run(
        self, file_name: Optional[str], content: Optional[bytes], content_type: Optional[str], token: Optional[str]
    ) -> Dict[str, Any]:
        """Drive the pipeline; never raises, the outcome is on the emitter."""
        state: Dict[str, Any] = {
            "file_name": file_name or "",
            "content": content or b"",
            "content_type": content_type,
            "token": token,
            "stage": "start",
        }
        try:
            with PerformanceMonitor("parse_resume", logger, threshold_ms=30000):
                state = await self.graph.ainvoke(state)
        except TalentMatchError as e:
            logger.error(f"Resume processing failed: {e.to_dict()}")
            self.emitter.fail(e.message)
        except Exception as e:
            logger.exception("Unexpected error in resume processing")
            self.emitter.fail(f"Unexpected error: {e}")
        else:
            if not self.emitter.closed:
                self.emitter.fail("Resume processing ended without a result")
        return state

    # --- Nodes ---
    async def node_init(self, state: ExtractionState) -> Dict[str, Any]:
        content = state.get("content") or b""
        if not content:
            raise ValidationError("No file provided", field="file")
        if len(content) > self.max_upload_bytes:
            raise ValidationError(
                f"File too large: {len(content) / (1024 * 1024):.1f}MB exceeds the "
                f"{self.max_upload_bytes // (1024 * 1024)}MB limit",
                field="file", value=state.get("file_name"),
            )
        extension, mime_type = detect_document_type(state.get("file_name"), state.get("content_type"))
        self.ai.ensure_configured()
        self.emitter.log("info", f"Processing file: {state.get('file_name')}")
        user_id = await self.identity.resolve(state.get("token"))
        return {"extension": extension, "mime_type": mime_type, "user_id": user_id, "stage": "init"}

    async def node_upload(self, state: ExtractionState) -> Dict[str, Any]:
        self.emitter.progress(1, TOTAL_STEPS, "Uploading file...")
        document = await self.storage.upload(
            state["file_name"], state["content"], state["mime_type"], state["user_id"]
        )
        self.emitter.log("success", "File uploaded successfully")
        return {"document": document, "stage": "uploaded"}

    async def node_extract(self, state: ExtractionState) -> Dict[str, Any]:
        self.emitter.progress(2, TOTAL_STEPS, "Extracting text...")
        self.emitter.log("info", "Parsing resume with AI...")
        policy = RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            emitter=self.emitter,
            label="AI extraction",
            sleep=self._sleep,
        )
        content, mime_type = state["content"], state["mime_type"]

        if self.mode == "structured":
            outcome = await policy.run(lambda: self.ai.extract_profile(content, mime_type))
            if outcome.exhausted:
                raise ProcessingError(
                    f"AI parsing failed after {outcome.attempts} attempts: {outcome.last_error}",
                    document_type=state["extension"], cause=outcome.last_error,
                )
            raw = outcome.value
            fallback_text = None if raw.get("resume_text") else self._local_text(state)
            self.emitter.progress(3, TOTAL_STEPS, "Analyzing content...")
            self.emitter.log("success", "AI analysis complete")
            return {"raw": raw, "fallback_text": fallback_text, "stage": "extracted"}

        outcome = await policy.run(lambda: self.ai.extract_text(content, mime_type))
        text = outcome.value
        if outcome.exhausted:
            text = self._local_text(state)
            if text:
                self.emitter.log("info", "AI text extraction unavailable, using locally read text")
            else:
                self.emitter.log("error", "No text could be extracted, saving an empty profile")
        self.emitter.progress(3, TOTAL_STEPS, "Analyzing content...")
        return {"raw": local_field_pass(text), "fallback_text": text, "stage": "extracted"}

    def _local_text(self, state: ExtractionState) -> Optional[str]:
        try:
            return extract_local_text(state["content"], state["extension"])
        except Exception as e:
            logger.warning(f"Local text extraction failed for {state['file_name']}: {e}")
            return None

    async def node_normalize(self, state: ExtractionState) -> Dict[str, Any]:
        profile = normalize_profile(state.get("raw"), state.get("fallback_text"), state["document"].url)
        return {"profile": profile, "stage": "normalized"}

    async def node_persist(self, state: ExtractionState) -> Dict[str, Any]:
        self.emitter.progress(4, TOTAL_STEPS, "Saving to database...")
        profile = state["profile"]
        user_id = state["user_id"]
        fields = profile.model_dump(exclude_none=True)

        existing = None
        if profile.email:
            existing = await self.store.find_profile_by_email(user_id, profile.email)
        if existing:
            profile_id = existing["id"]
            await self.store.update_profile(profile_id, fields)
            self.emitter.log("success", f"Updated existing profile for {profile.email}")
            message = "Resume uploaded and existing profile updated"
        else:
            profile_id = await self.store.insert_profile(user_id, fields)
            self.emitter.log("success", "Resume processed successfully!")
            message = "Resume uploaded and parsed successfully"

        self.emitter.complete(ExtractionComplete(profile_id=profile_id, message=message))
        return {"profile_id": profile_id, "updated": bool(existing), "stage": "complete"}
