"""Pydantic models for chunks.

  TextChunk    — one window produced by the chunker.
  Citation     — best-effort bibliographic metadata of a library item.
  ChunkRecord  — ChunkMirror row: one per chunk, maps the chunk to its vector id.
"""

from pydantic import BaseModel

from shared.models.document import DocumentKind


class TextChunk(BaseModel):
    content: str
    index: int
    start: int

    @property
    def end(self) -> int:
        return self.start + len(self.content)


class Citation(BaseModel):
    author: str | None = None
    title: str | None = None
    source_file: str | None = None
    year: str | None = None

    def is_empty(self) -> bool:
        return not any((self.author, self.title, self.source_file, self.year))


class ChunkRecord(BaseModel):
    """ChunkMirror row.

    Invariants: chunk_index is unique within (note_id, library_item_id) and
    vector_id is globally unique (fresh UUID4 per vectorization run).
    """

    id: str
    document_unit_id: str
    note_id: str
    library_item_id: str | None = None
    user_id: str
    project_id: str
    content_type: DocumentKind
    text: str
    chunk_index: int
    chunk_size: int
    vector_id: str
    embedding_model: str
    citation: Citation = Citation()
