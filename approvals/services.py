"""
Approval gate service

Batch creation of proposed changes and the single pending -> decided
transition. Every read and write is scoped to the owner stored on the row;
a row owned by someone else is reported exactly like a missing one.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from .models import Approval

logger = logging.getLogger(__name__)


class ApprovalNotFound(Exception):
    """Approval is missing or belongs to another user."""


class ApprovalConflict(Exception):
    """Approval has already been decided."""


class ApprovalValidationError(ValueError):
    """Decision value is not approved/rejected."""


def _pk(value) -> Any:
    return getattr(value, 'pk', value)


class ApprovalService:
    """
    Create, list and decide approvals.
    """

    def create_batch(
        self,
        session,
        owner,
        items: Iterable[Dict[str, Any]],
        *,
        document=None,
        task=None,
    ) -> List[int]:
        """
        Create one pending approval per proposed change.

        Each row is inserted in its own savepoint; a failed insert is logged
        and skipped so the rest of the batch still lands.

        Returns:
            Ids of the rows that were created.
        """
        created: List[int] = []
        for index, item in enumerate(items):
            change_type = str(item.get('type') or '').lower()
            if change_type not in Approval.ChangeType.values:
                change_type = Approval.ChangeType.EDIT

            try:
                with transaction.atomic():
                    approval = Approval.objects.create(
                        session_id=_pk(session),
                        user_id=_pk(owner),
                        document_id=_pk(document),
                        task_id=_pk(task),
                        change_type=change_type,
                        original_content={'text': item.get('original_content') or None},
                        proposed_content=dict(item),
                        status=Approval.Status.PENDING,
                    )
            except DatabaseError:
                logger.exception(
                    "Failed to create approval %s for session %s; skipping",
                    index, _pk(session),
                )
                continue
            created.append(approval.pk)

        logger.info("Created %s approvals for session %s", len(created), _pk(session))
        return created

    def get(self, approval_id, owner) -> Approval:
        try:
            return Approval.objects.get(id=approval_id, user_id=_pk(owner))
        except (Approval.DoesNotExist, ValueError, TypeError) as exc:
            raise ApprovalNotFound(f"Approval {approval_id} not found.") from exc

    def decide(
        self,
        approval_id,
        owner,
        decision: str,
        feedback: Optional[str] = None,
    ) -> Approval:
        """
        Approve or reject a pending approval.

        Only the first decision wins: the update is conditional on the row
        still being pending.

        Raises:
            ApprovalValidationError: ``decision`` is not approved/rejected.
            ApprovalNotFound: Missing, or owned by someone else.
            ApprovalConflict: Already decided; the row is left unchanged.
        """
        if decision not in Approval.DECISIONS:
            raise ApprovalValidationError(
                f"Decision must be one of: {', '.join(Approval.DECISIONS)}"
            )

        try:
            updated = Approval.objects.filter(
                id=approval_id,
                user_id=_pk(owner),
                status=Approval.Status.PENDING,
            ).update(
                status=decision,
                user_feedback=(feedback or '').strip(),
                decided_at=timezone.now(),
            )
        except (ValueError, TypeError) as exc:
            raise ApprovalNotFound(f"Approval {approval_id} not found.") from exc

        approval = self.get(approval_id, owner)
        if not updated:
            logger.warning(
                "Approval %s already %s; ignoring %s", approval_id, approval.status, decision
            )
            raise ApprovalConflict(f"Approval {approval_id} is already {approval.status}.")

        logger.info("Approval %s %s", approval_id, decision)
        return approval

    def list_pending(self, session_id, owner) -> List[Approval]:
        return self.list_by_session_and_status(session_id, owner, Approval.Status.PENDING)

    def list_by_session_and_status(
        self,
        session_id,
        owner,
        status: Optional[str] = None,
    ) -> List[Approval]:
        queryset = Approval.objects.filter(session_id=session_id, user_id=_pk(owner))
        if status:
            queryset = queryset.filter(status=status)
        return list(queryset.order_by('created_at', 'id'))

    def summary(self, session_id, owner) -> Dict[str, int]:
        counts = {status: 0 for status in Approval.Status.values}
        for approval in self.list_by_session_and_status(session_id, owner):
            counts[approval.status] += 1
        return counts

    def all_resolved(self, session_id, owner) -> bool:
        counts = self.summary(session_id, owner)
        return counts[Approval.Status.PENDING] == 0 and sum(counts.values()) > 0
