"""
SqlDocumentStaging -- staged document references for an assignment.

Implements the ``DocumentStagingPort``: an upload flow stages a reference,
an interview approval commits it.  ``commit`` is all-or-nothing: every ref
is checked before any row changes.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from review_kernel.domain.dtos import StagedDocument
from review_kernel.exceptions import DocumentNotStagedError, ValidationError
from review_kernel.logging_config import get_logger
from review_kernel.models.staged_document import (
    STATUS_COMMITTED,
    STATUS_STAGED,
    StagedDocumentModel,
)
from review_kernel.services.base import BaseService

logger = get_logger("services.document_staging")


class SqlDocumentStaging(BaseService):
    """SQLAlchemy-backed ``DocumentStagingPort``."""

    def _find(
        self,
        assignment_id: UUID,
        document_refs: tuple[str, ...],
    ) -> dict[str, StagedDocumentModel]:
        rows = self.session.execute(
            select(StagedDocumentModel).where(
                StagedDocumentModel.assignment_id == assignment_id,
                StagedDocumentModel.document_ref.in_(document_refs),
            )
        ).scalars()
        return {row.document_ref: row for row in rows}

    def stage(
        self,
        assignment_id: UUID,
        document_ref: str,
        staged_at: datetime,
    ) -> StagedDocument:
        """Stage ``document_ref``; staging an already staged ref is a no-op."""
        if not document_ref or not document_ref.strip():
            raise ValidationError("document_ref", "must be a non-empty string")

        existing = self._find(assignment_id, (document_ref,)).get(document_ref)
        if existing is not None:
            if existing.status == STATUS_COMMITTED:
                raise ValidationError(
                    "document_ref", f"document {document_ref} is already committed",
                )
            return existing.to_dto()

        model = StagedDocumentModel(
            assignment_id=assignment_id,
            document_ref=document_ref,
            status=STATUS_STAGED,
            staged_at=staged_at,
        )
        self.session.add(model)
        self.session.flush()
        logger.info(
            "document_staged",
            extra={"assignment_id": str(assignment_id), "document_ref": document_ref},
        )
        return model.to_dto()

    def commit(
        self,
        assignment_id: UUID,
        document_refs: tuple[str, ...],
        committed_at: datetime,
    ) -> tuple[StagedDocument, ...]:
        staged = self._find(assignment_id, document_refs)
        for ref in document_refs:
            row = staged.get(ref)
            if row is None or row.status != STATUS_STAGED:
                raise DocumentNotStagedError(str(assignment_id), ref)

        for ref in document_refs:
            row = staged[ref]
            row.status = STATUS_COMMITTED
            row.committed_at = committed_at
        self.session.flush()

        logger.info(
            "documents_committed",
            extra={
                "assignment_id": str(assignment_id),
                "document_refs": list(document_refs),
            },
        )
        return tuple(staged[ref].to_dto() for ref in document_refs)

    def documents_for(self, assignment_id: UUID) -> tuple[StagedDocument, ...]:
        rows = self.session.execute(
            select(StagedDocumentModel)
            .where(StagedDocumentModel.assignment_id == assignment_id)
            .order_by(StagedDocumentModel.staged_at, StagedDocumentModel.document_ref)
        ).scalars()
        return tuple(row.to_dto() for row in rows)
