"""
Pipeline executor

Runs a fixed, ordered list of stages for one task inside the calling
request. Stages share a ``PipelineState`` and return partial updates. The
first failing stage stops the run; persist always runs last and writes the
single terminal transition on the task.
"""
from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from approvals.services import ApprovalService
from caching.services import MISS, CacheService
from documents.services import DocumentNotFound, DocumentService, SessionService
from ledger.models import Task
from ledger.services import TaskService, TaskStateConflict

from . import prompts
from .llm import ModelClient, ModelServiceError, MalformedOutput, merge_usage
from .prompts import Prompt
from .results import (
    AnalysisResult,
    ImprovementList,
    JobMatchResult,
    LetterText,
    QuestionSet,
    StageResult,
)

logger = logging.getLogger(__name__)

PIPELINE_KINDS = (
    Task.Kind.ANALYSIS,
    Task.Kind.JOB_MATCH,
    Task.Kind.QUESTION_GENERATION,
    Task.Kind.LETTER_GENERATION,
)
KINDS_REQUIRING_JOB_TEXT = (
    Task.Kind.JOB_MATCH,
    Task.Kind.QUESTION_GENERATION,
    Task.Kind.LETTER_GENERATION,
)

SECTION_PATTERNS = {
    "email": re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+"),
    "phone": re.compile(r"\+?\d[\d\s().-]{7,}\d"),
    "experience": re.compile(r"\b(experience|employment|work history)\b", re.IGNORECASE),
    "education": re.compile(r"\b(education|degree|university|college)\b", re.IGNORECASE),
    "skills": re.compile(r"\b(skills|technologies|competencies)\b", re.IGNORECASE),
}


class PipelineValidationError(ValueError):
    """
    Inputs were rejected before any stage ran.
    """


class StageFailure(Exception):
    """
    A stage could not produce its output; the task will be marked failed.
    """


@dataclass
class PipelineState:
    """
    Working state of a single pipeline run.
    """

    owner: Any
    session_id: int
    task_id: int
    task_kind: str
    source_text: str = ""
    source_text_2: str = ""
    document_id: Optional[int] = None
    options: Dict[str, Any] = field(default_factory=dict)
    parsed: Dict[str, Any] = field(default_factory=dict)
    analysis: Optional[StageResult] = None
    suggestions: List[Dict[str, Any]] = field(default_factory=list)
    output: Optional[StageResult] = None
    token_usage: Dict[str, int] = field(default_factory=dict)
    degraded: List[str] = field(default_factory=list)
    error: Optional[str] = None
    debug_entries: List[str] = field(default_factory=list)

    @property
    def owner_id(self) -> Any:
        return getattr(self.owner, "pk", self.owner)

    def log_debug(self, message: str) -> None:
        self.debug_entries.append(f"[{timezone.now().isoformat()}] {message}")
        logger.info("Task %s (%s): %s", self.task_id, self.task_kind, message)

    def apply(self, update: Dict[str, Any]) -> None:
        for key, value in update.items():
            if not hasattr(self, key):
                raise AttributeError(f"PipelineState has no field {key!r}")
            setattr(self, key, value)


@dataclass
class PipelineOutcome:
    task_id: int
    status: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    approval_ids: List[int] = field(default_factory=list)


Stage = Callable[[PipelineState], Optional[Dict[str, Any]]]


class PipelineExecutor:
    """
    Executes the stage list for a task kind and records the outcome.
    """

    DEFAULT_OPTIONS: Dict[str, Any] = {
        "difficulty": "intermediate",
        "question_count": 10,
        "company_name": "",
        "position_title": "",
        "hiring_manager_name": "",
        "tone": "professional",
        "temperature": None,
        "use_cache": True,
    }
    DIFFICULTIES = ("beginner", "intermediate", "advanced")
    MAX_QUESTIONS = 25

    def __init__(
        self,
        client: Optional[ModelClient] = None,
        *,
        cache: Optional[CacheService] = None,
        tasks: Optional[TaskService] = None,
        approvals: Optional[ApprovalService] = None,
        cache_ttl_seconds: Optional[int] = None,
    ):
        self.client = client or ModelClient()
        self.cache = cache or CacheService()
        self.tasks = tasks or TaskService()
        self.approvals = approvals or ApprovalService()
        self.cache_ttl_seconds = (
            cache_ttl_seconds
            if cache_ttl_seconds is not None
            else getattr(settings, "PIPELINE_CACHE_TTL_SECONDS", 3600)
        )

    @classmethod
    def normalize_options(cls, options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Merge user-specified options with defaults and sanitize values.
        """
        merged = {**cls.DEFAULT_OPTIONS, **(options or {})}

        difficulty = str(merged.get("difficulty") or "").strip().lower()
        merged["difficulty"] = difficulty if difficulty in cls.DIFFICULTIES else cls.DEFAULT_OPTIONS["difficulty"]

        try:
            question_count = int(merged.get("question_count"))
        except (TypeError, ValueError):
            question_count = cls.DEFAULT_OPTIONS["question_count"]
        merged["question_count"] = max(1, min(cls.MAX_QUESTIONS, question_count))

        for key in ("company_name", "position_title", "hiring_manager_name"):
            merged[key] = str(merged.get(key) or "").strip()[:200]

        merged["tone"] = str(merged.get("tone") or "").strip() or cls.DEFAULT_OPTIONS["tone"]

        temperature = merged.get("temperature")
        if temperature is not None:
            try:
                merged["temperature"] = max(0.0, min(2.0, float(temperature)))
            except (TypeError, ValueError):
                merged["temperature"] = None

        use_cache = merged.get("use_cache")
        if isinstance(use_cache, str):
            use_cache = use_cache.strip().lower() not in {"0", "false", "no", "off"}
        merged["use_cache"] = bool(use_cache)

        return {key: merged[key] for key in cls.DEFAULT_OPTIONS}

    def stages_for(self, kind: str) -> List[Tuple[str, Stage]]:
        """
        Ordered stages for a task kind, persist excluded (it always runs).
        """
        stage_lists: Dict[str, List[Tuple[str, Stage]]] = {
            Task.Kind.ANALYSIS: [
                ("parse", self._parse),
                ("analyze_structure", self._analyze_structure),
                ("identify_improvements", self._identify_improvements),
            ],
            Task.Kind.JOB_MATCH: [
                ("parse", self._parse),
                ("compare_with_job", self._compare_with_job),
                ("identify_improvements", self._identify_improvements),
            ],
            Task.Kind.QUESTION_GENERATION: [
                ("parse", self._parse),
                ("generate_questions", self._generate_questions),
            ],
            Task.Kind.LETTER_GENERATION: [
                ("parse", self._parse),
                ("generate_letter", self._generate_letter),
            ],
        }
        try:
            return stage_lists[kind]
        except KeyError as exc:
            raise PipelineValidationError(f"Task kind {kind!r} has no pipeline.") from exc

    def run(
        self,
        task: Task,
        source_text: str = "",
        source_text_2: Optional[str] = None,
        document_id: Optional[int] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> PipelineOutcome:
        """
        Run every stage for ``task`` and persist the outcome.

        Stage errors never escape: they end the run and mark the task failed.
        """
        stages = self.stages_for(task.kind)
        state = PipelineState(
            owner=task.user,
            session_id=task.session_id,
            task_id=task.pk,
            task_kind=task.kind,
            source_text=source_text or "",
            source_text_2=source_text_2 or "",
            document_id=document_id,
            options=self.normalize_options(options),
        )
        state.log_debug(f"Starting pipeline with options: {json.dumps(state.options)}")

        for name, stage in stages:
            state.log_debug(f"Stage {name} started.")
            try:
                update = stage(state) or {}
            except (StageFailure, ModelServiceError) as exc:
                state.error = str(exc) or f"Stage {name} failed"
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unexpected error in stage %s of task %s", name, task.pk)
                state.error = f"Unexpected error in {name}: {exc}"
            else:
                state.apply(update)
                continue

            state.log_debug(f"Stage {name} failed: {state.error}")
            break

        return self._persist(state, task)

    # Stages

    def _parse(self, state: PipelineState) -> Dict[str, Any]:
        text = state.source_text
        page_count = 0
        if state.document_id is not None:
            try:
                parsed_text = DocumentService.get_parsed_text(state.document_id, state.owner)
            except DocumentNotFound as exc:
                raise StageFailure("Document not found") from exc
            text = parsed_text.text
            page_count = parsed_text.page_count
            state.log_debug(f"Loaded document {state.document_id}.")

        full_text = re.sub(r"[ \t]+", " ", text or "")
        full_text = re.sub(r"\n{3,}", "\n\n", full_text).strip()
        if not full_text:
            raise StageFailure("No document text to process")

        job_text = (state.source_text_2 or "").strip()
        if state.task_kind in KINDS_REQUIRING_JOB_TEXT and not job_text:
            raise StageFailure("Job description text is required")

        sections = [name for name, pattern in SECTION_PATTERNS.items() if pattern.search(full_text)]
        return {
            "source_text": full_text,
            "source_text_2": job_text,
            "parsed": {
                "full_text": full_text,
                "word_count": len(full_text.split()),
                "page_count": page_count,
                "sections_detected": sections,
            },
        }

    def _analyze_structure(self, state: PipelineState) -> Dict[str, Any]:
        prompt = prompts.analyze_structure(state.parsed)
        return {"analysis": self._generate(state, "analyze_structure", prompt, AnalysisResult)}

    def _compare_with_job(self, state: PipelineState) -> Dict[str, Any]:
        prompt = prompts.compare_with_job(state.source_text, state.source_text_2)
        return {"analysis": self._generate(state, "compare_with_job", prompt, JobMatchResult)}

    def _identify_improvements(self, state: PipelineState) -> Dict[str, Any]:
        analysis = state.analysis.to_dict() if state.analysis else {}
        prompt = prompts.identify_improvements(
            state.parsed,
            analysis,
            job_text=state.source_text_2 or None,
        )
        improvements = self._generate(state, "identify_improvements", prompt, ImprovementList)
        return {"suggestions": [suggestion.to_dict() for suggestion in improvements.suggestions]}

    def _generate_questions(self, state: PipelineState) -> Dict[str, Any]:
        prompt = prompts.generate_questions(
            state.source_text,
            state.source_text_2,
            difficulty=state.options["difficulty"],
            question_count=state.options["question_count"],
        )
        return {"output": self._generate(state, "generate_questions", prompt, QuestionSet)}

    def _generate_letter(self, state: PipelineState) -> Dict[str, Any]:
        prompt = prompts.generate_letter(
            state.source_text,
            state.source_text_2,
            company_name=state.options["company_name"],
            position_title=state.options["position_title"],
            hiring_manager_name=state.options["hiring_manager_name"],
            tone=state.options["tone"],
        )
        return {"output": self._generate(state, "generate_letter", prompt, LetterText)}

    # Model calls

    def _cache_key(self, state: PipelineState, stage_name: str, prompt: Prompt) -> str:
        digest = hashlib.sha256(prompt.text.encode("utf-8")).hexdigest()
        return f"{state.task_kind}:{stage_name}:{digest}"

    def _generate(
        self,
        state: PipelineState,
        stage_name: str,
        prompt: Prompt,
        result_cls: Type[StageResult],
    ) -> StageResult:
        """
        Produce a validated result for one stage, falling back on bad output.

        Cached raw responses are re-validated on read; only responses that
        validated are ever written to the cache.
        """
        use_cache = state.options.get("use_cache", True)
        cache_key = self._cache_key(state, stage_name, prompt)

        if use_cache:
            cached = self.cache.get(cache_key, state.owner_id)
            if cached is not MISS and isinstance(cached, dict) and cached.get("raw"):
                try:
                    result = result_cls.from_text(cached["raw"])
                except MalformedOutput:
                    self.cache.delete(cache_key, state.owner_id)
                else:
                    state.log_debug(f"{stage_name}: served from cache.")
                    return result

        raw = self.client.complete(
            prompt.user,
            system=prompt.system,
            temperature=state.options.get("temperature"),
        )
        merge_usage(state.token_usage, getattr(self.client, "last_usage", {}) or {})

        try:
            result = result_cls.from_text(raw)
        except MalformedOutput as exc:
            logger.warning(
                "Task %s stage %s returned malformed output (%s); using fallback",
                state.task_id, stage_name, exc,
            )
            state.log_debug(f"{stage_name}: malformed output, using fallback ({exc}).")
            state.degraded.append(stage_name)
            return result_cls.fallback(**state.options)

        if use_cache:
            self.cache.set(cache_key, {"raw": raw}, state.owner_id, ttl_seconds=self.cache_ttl_seconds)
        return result

    # Persist

    def _build_result(self, state: PipelineState) -> Dict[str, Any]:
        parsed_summary = {key: value for key, value in state.parsed.items() if key != "full_text"}
        main = state.output or state.analysis
        return {
            "kind": state.task_kind,
            "result": main.to_dict() if main else None,
            "analysis": state.analysis.to_dict() if state.analysis and state.output else None,
            "suggestions": state.suggestions,
            "degraded": bool(state.degraded),
            "degraded_stages": list(state.degraded),
            "parsed": parsed_summary,
            "token_usage": state.token_usage,
        }

    def _persist(self, state: PipelineState, task: Task) -> PipelineOutcome:
        metadata = {
            **(task.metadata or {}),
            "source_text": state.parsed.get("full_text") or state.source_text,
            "token_usage": state.token_usage,
        }

        if state.error:
            state.log_debug("Persisting failure.")
            metadata["debug_log"] = "\n".join(state.debug_entries)
            try:
                self.tasks.fail(task.pk, state.error, metadata=metadata)
            except TaskStateConflict:
                logger.warning("Task %s was already terminal; failure not recorded", task.pk)
            return PipelineOutcome(task_id=task.pk, status=Task.Status.FAILED, error=state.error)

        result = self._build_result(state)
        state.log_debug(f"Persisting result with {len(state.suggestions)} suggestions.")
        metadata["debug_log"] = "\n".join(state.debug_entries)
        try:
            self.tasks.complete(task.pk, result, metadata=metadata)
        except TaskStateConflict:
            logger.warning("Task %s was already terminal; result discarded", task.pk)
            return PipelineOutcome(task_id=task.pk, status=Task.Status.FAILED, error="Task already finished")

        approval_ids: List[int] = []
        if state.suggestions:
            approval_ids = self.approvals.create_batch(
                state.session_id,
                state.owner,
                state.suggestions,
                document=state.document_id,
                task=task.pk,
            )
            if approval_ids:
                try:
                    SessionService.set_stage(task.session, "awaiting_approval")
                except DatabaseError:
                    logger.exception("Could not update stage of session %s", state.session_id)

        self._record_usage(state, result)
        return PipelineOutcome(
            task_id=task.pk,
            status=Task.Status.COMPLETED,
            result=result,
            approval_ids=approval_ids,
        )

    def _record_usage(self, state: PipelineState, result: Dict[str, Any]) -> None:
        tokens = int(state.token_usage.get("total_tokens", 0) or 0)
        words = len(json.dumps(result.get("result") or {}).split())
        if not tokens and not words:
            return
        try:
            state.owner.record_usage(tokens=tokens, words=words)
        except DatabaseError:
            logger.exception("Failed to record usage for user %s", state.owner_id)


def start_pipeline(
    kind: str,
    owner,
    session_id,
    source_text: str,
    source_text_2: Optional[str] = None,
    *,
    document_id: Optional[int] = None,
    options: Optional[Dict[str, Any]] = None,
    executor: Optional[PipelineExecutor] = None,
) -> Task:
    """
    Validate inputs, create the task and run its pipeline synchronously.

    Raises:
        PipelineValidationError: Unknown kind or missing inputs; no task is created.
        SessionNotFound: The session is missing or belongs to someone else.
        DocumentNotFound: ``document_id`` is missing or belongs to someone else.

    Returns:
        The task, refreshed after its terminal transition.
    """
    if kind not in PIPELINE_KINDS:
        raise PipelineValidationError(
            f"task_kind must be one of: {', '.join(str(k) for k in PIPELINE_KINDS)}"
        )

    session = SessionService.get_for_owner(session_id, owner)

    if document_id is not None:
        DocumentService.get_document(document_id, owner)
    elif not (source_text or "").strip():
        raise PipelineValidationError("source_text is required when no document_id is given.")

    if kind in KINDS_REQUIRING_JOB_TEXT and not (source_text_2 or "").strip():
        raise PipelineValidationError(f"source_text_2 (job description) is required for {kind}.")

    executor = executor or PipelineExecutor()
    normalized = executor.normalize_options(options)

    task = executor.tasks.create(
        kind,
        owner,
        session,
        metadata={"document_id": document_id, "options": normalized},
    )
    executor.run(
        task,
        source_text=source_text,
        source_text_2=source_text_2,
        document_id=document_id,
        options=normalized,
    )
    task.refresh_from_db()
    return task
