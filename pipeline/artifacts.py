"""
Artifact generation

Rewrites the source document with the approved changes of a session in a
single model call. Only rows in APPROVED state are read; pending and
rejected proposals never reach the prompt.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from django.db import DatabaseError
from django.utils import timezone

from approvals.models import Approval
from approvals.services import ApprovalService
from documents.models import Document
from documents.services import DocumentNotFound, DocumentService, SessionService
from ledger.models import Task
from ledger.services import TaskService, TaskStateConflict

from . import prompts
from .llm import ModelClient, ModelServiceError, strip_code_fences

logger = logging.getLogger(__name__)


class NoApprovedChanges(Exception):
    """
    The session has no approved changes to apply.
    """


class ArtifactGenerationError(Exception):
    """
    The rewrite could not be produced (upstream failure, empty output, or no source).
    """


@dataclass
class Artifact:
    artifact_id: int
    content: str
    task_id: Optional[int] = None


def describe_change(approval: Approval) -> dict:
    proposed = approval.proposed_content or {}
    return {
        "change_type": approval.change_type,
        "section": proposed.get("section"),
        "title": proposed.get("title"),
        "description": proposed.get("description"),
        "original_content": (approval.original_content or {}).get("text"),
        "suggested_content": proposed.get("suggested_content"),
        "feedback": approval.user_feedback,
    }


class ArtifactGenerator:
    """
    Produces the updated document for a session from its approved changes.
    """

    GENERATION_TEMPERATURE = 0.3

    def __init__(
        self,
        client: Optional[ModelClient] = None,
        *,
        tasks: Optional[TaskService] = None,
        approvals: Optional[ApprovalService] = None,
    ):
        self.client = client or ModelClient()
        self.tasks = tasks or TaskService()
        self.approvals = approvals or ApprovalService()

    def generate(self, session_id, owner) -> Artifact:
        """
        Generate and store the updated document.

        Raises:
            SessionNotFound: Missing session, or owned by someone else.
            NoApprovedChanges: Nothing has been approved in this session.
            ArtifactGenerationError: No source text, model failure, or empty output.
        """
        session = SessionService.get_for_owner(session_id, owner)
        approved = self.approvals.list_by_session_and_status(
            session.pk, owner, Approval.Status.APPROVED
        )
        if not approved:
            raise NoApprovedChanges(f"Session {session.pk} has no approved changes.")

        source_text, source_document = self._resolve_source(approved, owner)
        if not source_text.strip():
            raise ArtifactGenerationError("Original document text is unavailable.")

        task = self.tasks.create(
            Task.Kind.ARTIFACT_GENERATION,
            owner,
            session,
            metadata={
                "approval_ids": [approval.pk for approval in approved],
                "source_document_id": source_document.pk if source_document else None,
            },
        )
        try:
            return self._generate_for_task(task, session, owner, approved, source_text, source_document)
        except ArtifactGenerationError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Artifact generation for session %s crashed", session.pk)
            self._fail_quietly(task, f"Unexpected error: {exc}")
            raise ArtifactGenerationError(f"Unexpected error: {exc}") from exc

    def _fail_quietly(self, task: Task, message: str) -> None:
        try:
            self.tasks.fail(task.pk, message)
        except TaskStateConflict:
            logger.warning("Artifact task %s was already terminal", task.pk)

    def _generate_for_task(
        self,
        task: Task,
        session,
        owner,
        approved: List[Approval],
        source_text: str,
        source_document: Optional[Document],
    ) -> Artifact:
        prompt = prompts.updated_document(
            source_text,
            prompts.summarize_changes(describe_change(approval) for approval in approved),
        )
        try:
            raw = self.client.complete(
                prompt.user,
                system=prompt.system,
                temperature=self.GENERATION_TEMPERATURE,
            )
        except ModelServiceError as exc:
            self._fail_quietly(task, str(exc))
            raise ArtifactGenerationError(str(exc)) from exc

        content = strip_code_fences(raw)
        if not content:
            self._fail_quietly(task, "Model returned an empty document")
            raise ArtifactGenerationError("Model returned an empty document.")

        document = DocumentService.save_generated(
            owner,
            session=session,
            content=content,
            based_on=source_document.pk if source_document else None,
        )
        usage = getattr(self.client, "last_usage", {}) or {}
        self.tasks.complete(
            task.pk,
            {
                "kind": Task.Kind.ARTIFACT_GENERATION,
                "artifact_id": document.pk,
                "approved_count": len(approved),
                "content_length": len(content),
            },
            metadata={**task.metadata, "token_usage": usage},
        )

        try:
            session.current_stage = "completed"
            session.completed_at = timezone.now()
            session.save(update_fields=["current_stage", "completed_at", "updated_at"])
            owner.record_usage(
                tokens=int(usage.get("total_tokens", 0) or 0),
                words=len(content.split()),
            )
        except DatabaseError:
            logger.exception("Could not finalise session %s after artifact %s", session.pk, document.pk)
        logger.info(
            "Generated artifact %s for session %s from %s approved changes",
            document.pk, session.pk, len(approved),
        )
        return Artifact(artifact_id=document.pk, content=content, task_id=task.pk)

    def _resolve_source(
        self,
        approved: List[Approval],
        owner,
    ) -> Tuple[str, Optional[Document]]:
        """
        Source text of the proposals: their document if they have one, else the
        text snapshot kept on the task that proposed them.
        """
        for approval in approved:
            if approval.document_id is None:
                continue
            try:
                document = DocumentService.get_document(approval.document_id, owner)
            except DocumentNotFound:
                logger.warning("Approval %s references a missing document", approval.pk)
                continue
            if document.parsed_text.strip():
                return document.parsed_text, document

        for approval in approved:
            task = approval.task
            if task is not None and (task.metadata or {}).get("source_text"):
                return task.metadata["source_text"], None
        return "", None
