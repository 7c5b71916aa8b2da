"""
Module: review_kernel.models.staged_document
Responsibility: ORM persistence for documents staged against an assignment.
Architecture position: Kernel > Models.  May import from db/base.py only.

A document is staged by the upload flow (status ``staged``) and committed
by an interview approval (status ``committed``).  The blob itself lives in
external storage; only the reference is tracked here.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from review_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from review_kernel.domain.dtos import StagedDocument

STATUS_STAGED = "staged"
STATUS_COMMITTED = "committed"


class StagedDocumentModel(Base):
    __tablename__ = "staged_documents"

    __table_args__ = (
        UniqueConstraint(
            "assignment_id", "document_ref",
            name="uq_staged_documents_ref",
        ),
        CheckConstraint(
            "status IN ('staged', 'committed')",
            name="ck_staged_documents_status",
        ),
    )

    assignment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("assignments.id"),
        nullable=False,
    )
    document_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=STATUS_STAGED,
    )
    staged_at: Mapped[datetime] = mapped_column(nullable=False)
    committed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<StagedDocument {self.document_ref} {self.status}>"

    def to_dto(self) -> StagedDocument:
        from review_kernel.domain.dtos import StagedDocument as StagedDocumentDTO

        return StagedDocumentDTO(
            document_ref=self.document_ref,
            assignment_id=self.assignment_id,
            staged_at=self.staged_at,
            committed_at=self.committed_at,
        )
