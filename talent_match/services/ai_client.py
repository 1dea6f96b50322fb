"""
Gemini generateContent client for the two AI tasks: ranking candidates against a
job description and extracting resume fields/text from an uploaded document.
"""
import base64
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError as SchemaError

from talent_match.helpers.prompts import EXTRACT_PROMPT, OCR_PROMPT, RANK_PROMPT
from talent_match.models.models import RankedCandidate, RankResponse, RawExtraction
from talent_match.utils import config
from talent_match.utils.exceptions import (
    AIResponseError,
    ConfigurationError,
    ExternalServiceError,
    RateLimitError,
)
from talent_match.utils.logging_config import get_logger
from talent_match.utils.utils import safe_json, strip_code_fences

logger = get_logger(__name__)

SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]

RANK_GENERATION_CONFIG = {"temperature": 0.3, "topK": 40, "topP": 0.95, "maxOutputTokens": 16000}
EXTRACT_GENERATION_CONFIG = {"temperature": 0.2, "topK": 40, "topP": 0.95, "maxOutputTokens": 8192}

_UNPARSEABLE = object()


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def make_snippet(text: Optional[str], limit: int) -> str:
    text = (text or "").strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text


class AIExtractionClient:
    """
    Thin async wrapper over one generateContent call per task.

    Every method either returns trusted, schema-checked data or raises:
    RateLimitError (429, with the Retry-After hint), ExternalServiceError
    (other HTTP/transport failures; retryable for 5xx and transport), or
    AIResponseError (truncated output, missing text, bad JSON, wrong shape).
    """

    service_name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        snippet_chars: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else config.GEMINI_API_KEY
        self.model = model or config.GEMINI_MODEL
        self.base_url = (base_url or config.GEMINI_BASE_URL).rstrip("/")
        self.timeout = timeout or config.AI_TIMEOUT_SECONDS
        self.snippet_chars = snippet_chars or config.SNIPPET_CHARS
        self._http = http_client
        self._owns_http = http_client is None

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY not configured", config_key="GEMINI_API_KEY")

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    # --- Tasks ---
    async def rank_candidates(
        self, job_description: str, snippets: Sequence[Tuple[int, Optional[str]]]
    ) -> List[RankedCandidate]:
        """Score each (index, resume text) pair against the job description."""
        candidates = [
            {"index": index, "resume": make_snippet(text, self.snippet_chars)}
            for index, text in snippets
        ]
        prompt = RANK_PROMPT.format(
            job_description=job_description,
            candidates=json.dumps(candidates, ensure_ascii=False),
        )
        text = await self._generate(
            [{"text": prompt}], RANK_GENERATION_CONFIG, task="rank", safety=True
        )
        parsed = self._parse_json(text, task="rank")
        try:
            return RankResponse.model_validate(parsed).candidates
        except SchemaError as e:
            raise AIResponseError(
                f"Response does not match the ranking schema: {e.error_count()} problem(s)",
                task="rank", model_name=self.model, cause=e
            ) from e

    async def extract_profile(self, content: bytes, mime_type: str) -> Dict[str, Any]:
        """Structured extraction: returns the raw (unsanitized) field dict."""
        text = await self._generate(
            [self._inline_part(content, mime_type), {"text": EXTRACT_PROMPT}],
            EXTRACT_GENERATION_CONFIG, task="extract",
        )
        parsed = self._parse_json(text, task="extract")
        try:
            raw = RawExtraction.model_validate(parsed)
        except SchemaError as e:
            raise AIResponseError(
                "Extraction response is not a JSON object", task="extract",
                model_name=self.model, cause=e
            ) from e
        return raw.model_dump(include=set(RawExtraction.model_fields))

    async def extract_text(self, content: bytes, mime_type: str) -> str:
        """OCR extraction: returns the document's plain text."""
        text = await self._generate(
            [self._inline_part(content, mime_type), {"text": OCR_PROMPT}],
            EXTRACT_GENERATION_CONFIG, task="ocr",
        )
        return strip_code_fences(text)

    # --- Transport ---
    @staticmethod
    def _inline_part(content: bytes, mime_type: str) -> Dict[str, Any]:
        return {
            "inline_data": {
                "mime_type": mime_type or "application/pdf",
                "data": base64.b64encode(content).decode("ascii"),
            }
        }

    def _parse_json(self, text: str, task: str) -> Any:
        # Tolerates prose around a single JSON object
        parsed = safe_json(text, fallback=_UNPARSEABLE)
        if parsed is _UNPARSEABLE:
            logger.debug(f"Unparseable {task} response: {text[:500]!r}")
            raise AIResponseError("Failed to parse AI response as JSON", task=task, model_name=self.model)
        return parsed

    async def _generate(
        self,
        parts: List[Dict[str, Any]],
        generation_config: Dict[str, Any],
        task: str,
        safety: bool = False,
    ) -> str:
        self.ensure_configured()
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body: Dict[str, Any] = {
            "contents": [{"parts": parts}],
            "generationConfig": generation_config,
        }
        if safety:
            body["safetySettings"] = SAFETY_SETTINGS

        try:
            response = await self.http.post(
                url,
                json=body,
                headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                f"AI request transport failure: {e.__class__.__name__}",
                service_name=self.service_name, retryable=True, cause=e
            ) from e

        if response.status_code == 429:
            raise RateLimitError(
                "Rate limited - will retry",
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
                service_name=self.service_name,
            )
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"API error: {response.status_code} - {response.text[:300]}",
                service_name=self.service_name,
                status_code=response.status_code,
                retryable=response.status_code >= 500,
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AIResponseError("AI response body is not JSON", task=task, cause=e) from e

        candidates = data.get("candidates") if isinstance(data, dict) else None
        first = candidates[0] if isinstance(candidates, list) and candidates else {}
        if not isinstance(first, dict):
            first = {}
        if first.get("finishReason") == "MAX_TOKENS":
            raise AIResponseError(
                "Response exceeded token limit - try reducing batch size or resume length",
                task=task, model_name=self.model,
            )
        content = first.get("content")
        parts_out = content.get("parts") if isinstance(content, dict) else None
        text = "".join(
            p.get("text", "") for p in (parts_out or []) if isinstance(p, dict) and isinstance(p.get("text"), str)
        )
        if not text.strip():
            block_reason = (data.get("promptFeedback") or {}).get("blockReason") if isinstance(data, dict) else None
            reason = f" (blocked: {block_reason})" if block_reason else ""
            raise AIResponseError(
                f"Invalid response structure from Gemini{reason}", task=task, model_name=self.model
            )
        return text.strip()


_shared_client: Optional[AIExtractionClient] = None


def get_ai_client() -> AIExtractionClient:
    """Process-wide client so the HTTP connection pool is reused across requests."""
    global _shared_client
    if _shared_client is None:
        _shared_client = AIExtractionClient()
    return _shared_client


async def close_ai_client() -> None:
    global _shared_client
    if _shared_client is not None:
        await _shared_client.aclose()
        _shared_client = None
