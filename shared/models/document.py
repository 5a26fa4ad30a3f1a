"""Pydantic models for document units.

Hierarchy:
  DocumentUnit  — a note or library item treated as a vectorizable content source.
  DomainContext — what a note "knows about": attachments, content flag, domain.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class DocumentKind(str, Enum):
    NOTE = "note"
    LIBRARY_ITEM = "library_item"


class VectorStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentUnit(BaseModel):
    """A note or library item as seen by the vectorization and retrieval core.

    The persistence layer owns these rows. The core writes back only the
    vector_* fields and, for library items, associated_note_id and summary.

    Library items end up with a non-null associated_note_id at vectorization
    time: either a real note or the per-project placeholder note.
    """

    id: str
    kind: DocumentKind
    owner_user_id: str
    project_id: str | None = None
    name: str = ""
    mime_type: str | None = None
    text_content: str = ""

    # library items only
    associated_note_id: str | None = None
    summary: str | None = None

    # notes only
    is_placeholder: bool = False

    vector_status: VectorStatus = VectorStatus.PENDING
    vector_updated_at: datetime | None = None
    vector_error: str | None = None

    def is_note(self) -> bool:
        return self.kind == DocumentKind.NOTE

    def has_content(self) -> bool:
        return bool(self.text_content and self.text_content.strip())


class AttachedDocument(BaseModel):
    """A library item attached to a note, as presented to intent classification."""

    id: str
    name: str
    mime_type: str | None = None
    summary: str | None = None

    def describe(self) -> str:
        label = f"{self.name} ({self.mime_type})" if self.mime_type else self.name
        if self.summary:
            return f"{label} - Summary: {self.summary}"
        return label


class DomainContext(BaseModel):
    note_id: str
    attached_documents: list[AttachedDocument] = []
    note_has_content: bool = False
    project_domain: str = "General"

    def has_documents(self) -> bool:
        """True if anything could ground an answer: attachments or note text."""
        return bool(self.attached_documents) or self.note_has_content
