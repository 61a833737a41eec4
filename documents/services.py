"""
Documents service layer

Read access to sessions and parsed documents, always scoped to an owner.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .models import Document, WorkflowSession

logger = logging.getLogger(__name__)


class SessionNotFound(Exception):
    """Session is missing or belongs to another user."""


class DocumentNotFound(Exception):
    """Document is missing or belongs to another user."""


@dataclass
class ParsedText:
    """Extracted text of a document as handed to the pipeline."""

    text: str
    page_count: int = 0
    metadata: Dict[str, object] = field(default_factory=dict)


class SessionService:
    """Create and look up workflow sessions."""

    @staticmethod
    def create(owner, current_stage: str = '', state: Optional[dict] = None) -> WorkflowSession:
        return WorkflowSession.objects.create(
            user=owner,
            current_stage=current_stage,
            state=state or {},
        )

    @staticmethod
    def get_for_owner(session_id, owner) -> WorkflowSession:
        """
        Fetch a session owned by ``owner``.

        Raises:
            SessionNotFound: If no such session exists for this owner.
        """
        try:
            return WorkflowSession.objects.get(id=session_id, user=owner)
        except (WorkflowSession.DoesNotExist, ValueError, TypeError) as exc:
            raise SessionNotFound(f"Session {session_id} not found.") from exc

    @staticmethod
    def set_stage(session: WorkflowSession, stage: str) -> None:
        session.current_stage = stage
        session.save(update_fields=['current_stage', 'updated_at'])


class DocumentService:
    """Owner-scoped access to extracted document text."""

    @staticmethod
    def get_document(document_id, owner) -> Document:
        try:
            return Document.objects.get(id=document_id, user=owner)
        except (Document.DoesNotExist, ValueError, TypeError) as exc:
            raise DocumentNotFound(f"Document {document_id} not found.") from exc

    @classmethod
    def get_parsed_text(cls, document_id, owner) -> ParsedText:
        """
        Return the extracted text of a document.

        Raises:
            DocumentNotFound: If the document is missing or not owned by ``owner``.
        """
        document = cls.get_document(document_id, owner)
        if not document.parsed_text.strip():
            logger.warning("Document %s has no parsed text", document.pk)
        return ParsedText(
            text=document.parsed_text,
            page_count=document.page_count,
            metadata=document.metadata or {},
        )

    @staticmethod
    def save_generated(
        owner,
        *,
        session: Optional[WorkflowSession],
        content: str,
        based_on: Optional[int] = None,
        filename: str = 'updated-cv.md',
    ) -> Document:
        """
        Store a generated artifact as a new document.
        """
        return Document.objects.create(
            user=owner,
            session=session,
            kind=Document.Kind.GENERATED,
            original_filename=filename,
            parsed_text=content,
            metadata={
                'type': 'generated',
                'mime_type': 'text/markdown',
                'size': len(content.encode('utf-8')),
                'based_on_document': based_on,
            },
        )
