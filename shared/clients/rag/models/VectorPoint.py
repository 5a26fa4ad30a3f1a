"""VectorPoint model — metadata stored alongside each chunk vector in a RAG backend."""

from typing import Literal

from pydantic import BaseModel


class VectorPoint(BaseModel):
    """Metadata payload stored alongside each vector chunk in a RAG backend.

    The scope triple (user_id, project_id, note_id) is mandatory and enforced
    on every upsert and search operation. It must never be absent or None.

    Attributes:
        note_id:          MANDATORY — note that owns the chunk. Library items carry
                          their attached note or the per-project placeholder note.
        project_id:       MANDATORY — project of the owning document unit.
        user_id:          MANDATORY — owner of the document unit.
        content_type:     "note" or "library_item".
        chunk_index:      Zero-based position of this chunk within the document unit.
        chunk_size:       Character length of the chunk text.
        chunk_id:         ChunkMirror row id of this chunk.
        text:             Raw text content of this chunk.
        embedding_model:  Model that produced the vector.
        library_item_id:  Set for library item chunks only.
        source_file:      Original file name of the library item.
        author:           Best-effort citation author.
        title:            Best-effort citation title.
        year:             Best-effort citation year.
    """

    # Security scope, never None
    note_id: str
    project_id: str
    user_id: str

    # Chunk identity
    content_type: Literal["note", "library_item"]
    chunk_index: int
    chunk_size: int
    chunk_id: str
    text: str
    embedding_model: str

    # Library item + citation fields
    library_item_id: str | None = None
    source_file: str | None = None
    author: str | None = None
    title: str | None = None
    year: str | None = None
