"""
Candidate search: rank the requesting user's stored profiles against a job
description in bounded parallel groups and stream progress to the caller.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypedDict

from langgraph.graph import END, StateGraph

from talent_match.helpers.normalize import is_meaningful, normalize_email, sanitize_string
from talent_match.models.events import MatchComplete
from talent_match.models.models import CandidateMatch, RankedCandidate, RankedResult, SourceRecord, WorkItem
from talent_match.services.ai_client import AIExtractionClient
from talent_match.services.auth import IdentityProvider
from talent_match.services.batching import make_work_items, plan_batches
from talent_match.services.db import ProfileStore
from talent_match.services.progress import ProgressEmitter
from talent_match.services.retry import RetryPolicy
from talent_match.utils import config
from talent_match.utils.exceptions import TalentMatchError, ValidationError
from talent_match.utils.logging_config import PerformanceMonitor, get_logger
from talent_match.utils.utils import settle_all

logger = get_logger(__name__)

FALLBACK_REASONING = "Analysis failed - manual review needed"
FALLBACK_CONCERNS = ["Automated analysis unavailable"]

# RankedCandidate field -> SourceRecord field for display-field enrichment
ENRICHABLE_FIELDS = {
    "full_name": "full_name",
    "email": "email",
    "phone": "phone_number",
    "location": "location",
    "job_title": "job_title",
    "years_of_experience": "years_of_experience",
}


class MatchState(TypedDict, total=False):
    job_description: str
    token: Optional[str]
    user_id: str
    records: List[SourceRecord]
    batches: List[List[List[WorkItem]]]
    results: List[RankedResult]
    matches: List[CandidateMatch]
    search_id: str
    stage: str


def fallback_result(item: WorkItem) -> RankedResult:
    """Score-0 stand-in for a WorkItem whose group could not be analyzed."""
    return RankedResult(
        candidate_index=item.index,
        full_name=item.record.full_name if is_meaningful(item.record.full_name) else f"Candidate {item.index + 1}",
        match_score=0,
        reasoning=FALLBACK_REASONING,
        strengths=[],
        concerns=list(FALLBACK_CONCERNS),
        is_fallback=True,
    )


def reconcile_group(
    group: Sequence[WorkItem], ranked: Sequence[RankedCandidate], label: str = "group"
) -> List[RankedResult]:
    """
    Return exactly one RankedResult per WorkItem of the group, in group order.

    Entries whose index is not in the group, or repeats an index already
    seen, are logged and dropped. Group members the AI left out get a
    fallback.
    """
    expected = {item.index for item in group}
    by_index: Dict[int, RankedCandidate] = {}
    for candidate in ranked:
        if candidate.candidate_index not in expected:
            logger.error(f"{label}: AI returned unknown candidate index {candidate.candidate_index}, dropped")
            continue
        if candidate.candidate_index in by_index:
            logger.error(f"{label}: AI returned duplicate candidate index {candidate.candidate_index}, dropped")
            continue
        by_index[candidate.candidate_index] = candidate

    results = []
    for item in group:
        candidate = by_index.get(item.index)
        if candidate is None:
            logger.warning(f"{label}: no AI result for candidate index {item.index}, using fallback")
            results.append(fallback_result(item))
        else:
            results.append(RankedResult(**candidate.model_dump(), is_fallback=False))
    return results


def _prefer(ai_value: Any, stored_value: Any) -> Any:
    return ai_value if is_meaningful(ai_value) else stored_value


def build_match(result: RankedResult, record: SourceRecord) -> CandidateMatch:
    return CandidateMatch(
        id=record.id,
        resume_file_url=record.resume_file_url,
        full_name=_prefer(result.full_name, record.full_name) or f"Candidate {result.candidate_index + 1}",
        email=_prefer(result.email, record.email),
        phone_number=_prefer(result.phone, record.phone_number),
        location=_prefer(result.location, record.location),
        job_title=_prefer(result.job_title, record.job_title),
        years_of_experience=_prefer(result.years_of_experience, record.years_of_experience),
        match_score=0 if result.is_fallback else result.match_score,
        reasoning=result.reasoning,
        strengths=result.strengths,
        concerns=result.concerns,
        is_fallback=result.is_fallback,
    )


def enrichment_fields(result: RankedResult) -> Dict[str, Any]:
    """Display fields worth writing back to the stored profile; empty for fallbacks."""
    if result.is_fallback or not is_meaningful(result.full_name):
        return {}
    fields = {}
    for source, target in ENRICHABLE_FIELDS.items():
        value = getattr(result, source)
        if source == "email":
            # Stored lowercased so upload upserts find the same profile
            value = normalize_email(value)
        elif isinstance(value, str):
            value = sanitize_string(value)
        if is_meaningful(value):
            fields[target] = value
    return fields


def match_record(search_id: str, match: CandidateMatch) -> Dict[str, Any]:
    years = match.years_of_experience
    return {
        "search_id": search_id,
        "candidate_id": match.id,
        "candidate_name": match.full_name,
        "candidate_email": match.email,
        "candidate_phone": match.phone_number,
        "candidate_location": match.location,
        "job_role": match.job_title,
        "experience_years": round(years, 2) if years is not None else None,
        "match_score": match.match_score,
        "reasoning": match.reasoning,
        "key_strengths": match.strengths,
        "potential_concerns": match.concerns,
        "is_fallback": match.is_fallback,
    }


class MatchOrchestrator:
    """
    One instance per search request.

    The run is a langgraph pipeline: init -> fetch -> plan -> execute ->
    merge -> persist -> complete, with fetch short-circuiting to the end
    when the user has no stored profiles. Every outcome, including
    failures, ends in exactly one terminal event on the emitter.
    """

    def __init__(
        self,
        emitter: ProgressEmitter,
        ai_client: AIExtractionClient,
        store: ProfileStore,
        identity: IdentityProvider,
        group_size: Optional[int] = None,
        parallelism: Optional[int] = None,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        max_delay_ms: Optional[int] = None,
        source_limit: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.emitter = emitter
        self.ai = ai_client
        self.store = store
        self.identity = identity
        self.group_size = group_size or config.MATCH_GROUP_SIZE
        self.parallelism = parallelism or config.MATCH_PARALLEL_GROUPS
        self.max_attempts = max_attempts or config.MATCH_MAX_ATTEMPTS
        self.base_delay_ms = base_delay_ms if base_delay_ms is not None else config.RETRY_BASE_DELAY_MS
        self.max_delay_ms = max_delay_ms if max_delay_ms is not None else config.RETRY_MAX_DELAY_MS
        self.source_limit = source_limit or config.MATCH_SOURCE_LIMIT
        self._sleep = sleep
        self.graph = self._build_graph()

    def _build_graph(self):
        g = StateGraph(MatchState)
        g.add_node("init", self.node_init)
        g.add_node("fetch", self.node_fetch)
        g.add_node("plan", self.node_plan)
        g.add_node("execute", self.node_execute)
        g.add_node("merge", self.node_merge)
        g.add_node("persist", self.node_persist)
        g.add_node("complete", self.node_complete)
        g.set_entry_point("init")
        g.add_edge("init", "fetch")
        g.add_conditional_edges("fetch", self._after_fetch, {"plan": "plan", END: END})
        g.add_edge("plan", "execute")
        g.add_edge("execute", "merge")
        g.add_edge("merge", "persist")
        g.add_edge("persist", "complete")
        g.add_edge("complete", END)
        return g.compile()

    async def run(self, job_description: Optional[str], token: Optional[str]) -> Dict[str, Any]:
        """Drive the pipeline; never raises, the outcome is on the emitter."""
        state: Dict[str, Any] = {"job_description": job_description or "", "token": token, "stage": "start"}
        try:
            with PerformanceMonitor("match_candidates", logger, threshold_ms=60000):
                state = await self.graph.ainvoke(state)
        except TalentMatchError as e:
            logger.error(f"Candidate matching failed: {e.to_dict()}")
            self.emitter.fail(e.message)
        except Exception as e:
            logger.exception("Unexpected error in candidate matching")
            self.emitter.fail(f"Unexpected error: {e}")
        else:
            if not self.emitter.closed:
                self.emitter.fail("Matching ended without a result")
        return state

    # --- Nodes ---
    async def node_init(self, state: MatchState) -> Dict[str, Any]:
        job_description = (state.get("job_description") or "").strip()
        if not job_description:
            raise ValidationError("Job description is required", field="jobDescription")
        self.ai.ensure_configured()
        return {"job_description": job_description, "stage": "init"}

    async def node_fetch(self, state: MatchState) -> Dict[str, Any]:
        user_id = await self.identity.resolve(state.get("token"))
        self.emitter.log("info", "Fetching candidate profiles...")
        records = await self.store.list_recent_profiles(user_id, self.source_limit)
        if not records:
            self.emitter.complete(MatchComplete(matches=[], total=0, message="No candidates found"))
        else:
            self.emitter.log("info", f"Found {len(records)} candidates to analyze")
            self.emitter.progress(0, len(records))
        return {"user_id": user_id, "records": records, "stage": "fetched"}

    @staticmethod
    def _after_fetch(state: MatchState) -> str:
        return "plan" if state.get("records") else END

    async def node_plan(self, state: MatchState) -> Dict[str, Any]:
        batches = plan_batches(make_work_items(state["records"]), self.group_size, self.parallelism)
        group_count = sum(len(batch) for batch in batches)
        self.emitter.log(
            "info",
            f"Processing {len(state['records'])} candidates in {group_count} batches "
            f"({self.parallelism} in parallel)",
        )
        return {"batches": batches, "stage": "planned"}

    async def node_execute(self, state: MatchState) -> Dict[str, Any]:
        total = len(state["records"])
        batches = state["batches"]
        group_count = sum(len(batch) for batch in batches)

        results: List[RankedResult] = []
        processed = 0
        number = 0
        for batch in batches:
            runners = []
            for group in batch:
                number += 1
                runners.append(self._run_group(group, number, group_count, state["job_description"]))
            for group_results in await asyncio.gather(*runners):
                results.extend(group_results)
            processed += sum(len(group) for group in batch)
            self.emitter.progress(processed, total)

        self.emitter.log("info", f"All batches processed. Total candidates: {len(results)}")
        return {"results": results, "stage": "executed"}

    async def _run_group(
        self, group: List[WorkItem], number: int, group_count: int, job_description: str
    ) -> List[RankedResult]:
        label = f"Batch {number}/{group_count}"
        self.emitter.log("info", f"Processing batch {number}/{group_count} ({len(group)} candidates)...")
        snippets = [(item.index, item.record.resume_text) for item in group]
        policy = RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            emitter=self.emitter,
            label=label,
            sleep=self._sleep,
        )
        outcome = await policy.run(lambda: self.ai.rank_candidates(job_description, snippets))
        if outcome.exhausted:
            self.emitter.log(
                "error", f"{label} failed after {outcome.attempts} attempts, marking {len(group)} for manual review"
            )
            return [fallback_result(item) for item in group]

        results = reconcile_group(group, outcome.value, label)
        fallbacks = sum(1 for r in results if r.is_fallback)
        self.emitter.log(
            "success", f"Successfully processed batch {number} ({len(group) - fallbacks} of {len(group)} candidates)"
        )
        return results

    async def node_merge(self, state: MatchState) -> Dict[str, Any]:
        records = state["records"]
        ranked = sorted(state["results"], key=lambda r: -r.match_score)
        matches = []
        for result in ranked:
            if not 0 <= result.candidate_index < len(records):
                logger.error(f"Profile not found for index {result.candidate_index}, dropped")
                continue
            matches.append(build_match(result, records[result.candidate_index]))
        return {"matches": matches, "stage": "merged"}

    async def node_persist(self, state: MatchState) -> Dict[str, Any]:
        records = state["records"]
        updates = []
        for result in state["results"]:
            fields = enrichment_fields(result)
            if fields and 0 <= result.candidate_index < len(records):
                updates.append(self.store.update_profile(records[result.candidate_index].id, fields))
        if updates:
            self.emitter.log("info", "Updating candidate profiles...")
            _, failures = await settle_all(updates)
            for failure in failures:
                logger.warning(f"Profile enrichment failed: {failure}")

        search_id = await self.store.insert_search(state["user_id"], state["job_description"], len(records))
        await self.store.insert_matches([match_record(search_id, m) for m in state["matches"]])
        return {"search_id": search_id, "stage": "persisted"}

    async def node_complete(self, state: MatchState) -> Dict[str, Any]:
        matches = state["matches"]
        fallbacks = sum(1 for m in matches if m.is_fallback)
        message = f"Successfully matched {len(matches) - fallbacks} candidates, {fallbacks} fallback"
        self.emitter.log("success", message)
        self.emitter.complete(MatchComplete(
            matches=[m.model_dump(mode="json", by_alias=True) for m in matches],
            total=len(state["records"]),
            message=message,
            search_id=state.get("search_id"),
        ))
        return {"stage": "complete"}
