from abc import ABC, abstractmethod

from shared.models.chunk import ChunkRecord


class ChunkMirrorRepositoryInterface(ABC):
    """Relational mirror of the vector index: one row per chunk, used to find
    the vector ids belonging to a document unit without querying the index."""

    @abstractmethod
    async def list_chunks(self, document_unit_id: str) -> list[ChunkRecord]:
        """
        Returns all chunk rows of the document unit, ordered by chunk_index.

        Args:
            document_unit_id (str): Id of the note or library item.
        """
        pass

    async def list_vector_ids(self, document_unit_id: str) -> list[str]:
        return [chunk.vector_id for chunk in await self.list_chunks(document_unit_id) if chunk.vector_id]

    @abstractmethod
    async def save_chunks(self, chunks: list[ChunkRecord]) -> None:
        """Inserts chunk rows."""
        pass

    @abstractmethod
    async def delete_chunks(self, document_unit_id: str) -> int:
        """
        Deletes all chunk rows of the document unit.

        Returns:
            int: Number of deleted rows.
        """
        pass

    @abstractmethod
    async def update_note_id(self, library_item_id: str, note_id: str) -> int:
        """
        Rewrites note_id on every chunk row of the library item.

        Returns:
            int: Number of updated rows.
        """
        pass
