from shared.models.chunk import ChunkRecord
from shared.repositories.ChunkMirrorRepositoryInterface import ChunkMirrorRepositoryInterface


class InMemoryChunkMirrorRepository(ChunkMirrorRepositoryInterface):
    def __init__(self):
        self._chunks: dict[str, ChunkRecord] = {}

    def all_chunks(self) -> list[ChunkRecord]:
        return list(self._chunks.values())

    async def list_chunks(self, document_unit_id: str) -> list[ChunkRecord]:
        chunks = [chunk for chunk in self._chunks.values() if chunk.document_unit_id == document_unit_id]
        return [chunk.model_copy(deep=True) for chunk in sorted(chunks, key=lambda c: c.chunk_index)]

    async def save_chunks(self, chunks: list[ChunkRecord]) -> None:
        for chunk in chunks:
            self._chunks[chunk.id] = chunk.model_copy(deep=True)

    async def delete_chunks(self, document_unit_id: str) -> int:
        ids = [chunk_id for chunk_id, chunk in self._chunks.items() if chunk.document_unit_id == document_unit_id]
        for chunk_id in ids:
            del self._chunks[chunk_id]
        return len(ids)

    async def update_note_id(self, library_item_id: str, note_id: str) -> int:
        updated = 0
        for chunk in self._chunks.values():
            if chunk.library_item_id == library_item_id:
                chunk.note_id = note_id
                updated += 1
        return updated
