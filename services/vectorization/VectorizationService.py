"""Vectorization service.

Turns one document unit (a note or a library item) into chunk vectors:
chunk → batch-embed → upsert to the vector index → mirror rows, while
driving the unit through pending → processing → completed | failed.

Every run replaces the unit's previous chunks completely. Reassociating a
library item only patches the note_id metadata of its existing vectors.
"""

import uuid

from services.vectorization.CitationExtractor import extract_citation
from services.vectorization.TextChunker import TextChunker
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import VectorPoint
from shared.clients.rag.models.VectorRecord import VectorRecord
from shared.exceptions import BridgeError, CompletionError, VectorIndexError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import ChunkRecord, Citation, TextChunk
from shared.models.document import DocumentKind, DocumentUnit, VectorStatus
from shared.models.qa import VectorizationResult
from shared.repositories.ChunkMirrorRepositoryInterface import ChunkMirrorRepositoryInterface
from shared.repositories.DocumentUnitRepositoryInterface import DocumentUnitRepositoryInterface

SUMMARY_CHUNKS = 5          # leading chunks fed to the summary prompt
SUMMARY_MAX_CHARS = 8000
SUMMARY_SYSTEM_PROMPT = "Create a brief 1-2 sentence summary focusing on main topics."


class VectorizationService:
    """Orchestrates vectorization, reassociation and deletion of document units."""

    def __init__(
        self,
        helper_config: HelperConfig,
        repository: DocumentUnitRepositoryInterface,
        chunk_mirror: ChunkMirrorRepositoryInterface,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        llm_client: LLMClientInterface | None = None,
        chunker: TextChunker | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._repository = repository
        self._chunk_mirror = chunk_mirror
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._llm_client = llm_client
        self._chunker = chunker or TextChunker.from_config(helper_config)
        self._summaries_enabled = helper_config.get_bool_val("VECTORIZE_SUMMARIES", default=True)

    ##########################################
    ############## VECTORIZE #################
    ##########################################

    async def do_vectorize_note(self, note_id: str) -> VectorizationResult:
        return await self.do_vectorize(DocumentKind.NOTE, note_id)

    async def do_vectorize_library_item(self, library_item_id: str) -> VectorizationResult:
        return await self.do_vectorize(DocumentKind.LIBRARY_ITEM, library_item_id)

    async def do_vectorize(self, kind: DocumentKind, unit_id: str) -> VectorizationResult:
        """(Re)vectorize one document unit.

        Never raises: failures are logged, written to the unit as status
        "failed" with the error text, and returned in the result.

        Args:
            kind (DocumentKind): Note or library item.
            unit_id (str): Id of the unit.

        Returns:
            VectorizationResult: Final status, chunk count and new vector ids.
        """
        unit = await self._repository.get_unit(kind, unit_id)
        if unit is None:
            self.logging.warning("Cannot vectorize %s '%s': not found.", kind.value, unit_id)
            return VectorizationResult(unit_id=unit_id, kind=kind, status=VectorStatus.FAILED, error="Document unit not found")

        try:
            if not unit.has_content():
                # nothing to embed: clear stale chunks and finish without a processing phase
                await self._delete_unit_vectors(kind, unit_id)
                await self._repository.set_vector_status(kind, unit_id, VectorStatus.COMPLETED)
                self.logging.info("%s '%s' has no content, marked completed with 0 chunks.", kind.value, unit_id)
                return VectorizationResult(unit_id=unit_id, kind=kind, status=VectorStatus.COMPLETED)

            if not unit.project_id:
                raise BridgeError(f"{kind.value} '{unit_id}' has no project association.")

            self.logging.info("Vectorizing %s '%s'...", kind.value, unit_id)
            await self._repository.set_vector_status(kind, unit_id, VectorStatus.PROCESSING)
            await self._delete_unit_vectors(kind, unit_id)

            chunks = self._chunker.split(unit.text_content)
            embeddings = await self._embed_client.do_embed([chunk.content for chunk in chunks])

            note_id = await self._resolve_note_id(unit)
            if unit.is_note():
                citation = Citation(title=unit.name or None)
            else:
                citation = extract_citation(unit.name, unit.text_content)

            records, rows = self._build_records(unit, note_id, chunks, embeddings, citation)
            await self._upsert_or_cleanup(records)
            await self._chunk_mirror.save_chunks(rows)

            if not unit.is_note():
                await self._store_summary(unit, chunks)

            await self._repository.set_vector_status(kind, unit_id, VectorStatus.COMPLETED)
            self.logging.info("Vectorized %s '%s' (%d chunks).", kind.value, unit_id, len(records))
            return VectorizationResult(
                unit_id=unit_id,
                kind=kind,
                status=VectorStatus.COMPLETED,
                chunk_count=len(records),
                vector_ids=[record.id for record in records],
                note_id=note_id,
            )
        except Exception as exc:
            self.logging.error("Vectorization of %s '%s' failed: %s", kind.value, unit_id, exc, exc_info=True)
            await self._mark_failed(kind, unit_id, str(exc))
            return VectorizationResult(unit_id=unit_id, kind=kind, status=VectorStatus.FAILED, error=str(exc))

    ##########################################
    ############# REASSOCIATE ################
    ##########################################

    async def do_reassociate(self, library_item_id: str, new_note_id: str | None) -> int:
        """Move a library item's chunks to another note without re-embedding.

        Args:
            library_item_id (str): The library item.
            new_note_id (str | None): Target note. None means detached: the
                chunks move to the project's placeholder note.

        Returns:
            int: Number of vectors whose note_id was patched in the index.
        """
        item = await self._repository.get_library_item(library_item_id)
        if item is None:
            self.logging.warning("Cannot reassociate library item '%s': not found.", library_item_id)
            return 0

        target_note_id = new_note_id
        if target_note_id is None:
            placeholder = await self._repository.get_or_create_placeholder_note(item.project_id, item.owner_user_id)
            target_note_id = placeholder.id
        await self._repository.set_associated_note(library_item_id, target_note_id)

        vector_ids = await self._chunk_mirror.list_vector_ids(library_item_id)
        updated = 0
        if vector_ids:
            updated = await self._rag_client.do_update_metadata_by_ids(vector_ids, {"note_id": target_note_id})
        await self._chunk_mirror.update_note_id(library_item_id, target_note_id)

        self.logging.info(
            "Reassociated library item '%s' with note '%s': %d of %d vectors updated.",
            library_item_id, target_note_id, updated, len(vector_ids),
        )
        return updated

    ##########################################
    ################ DELETE ##################
    ##########################################

    async def do_delete_unit(self, kind: DocumentKind, unit_id: str) -> int:
        """Remove all vectors and mirror rows of a deleted note or library item.

        Returns:
            int: Number of mirror rows removed.
        """
        removed = await self._delete_unit_vectors(kind, unit_id)
        self.logging.info("Removed %d chunks of deleted %s '%s'.", removed, kind.value, unit_id)
        return removed

    async def _delete_unit_vectors(self, kind: DocumentKind, unit_id: str) -> int:
        vector_ids = await self._chunk_mirror.list_vector_ids(unit_id)
        if vector_ids:
            await self._rag_client.do_delete_by_ids(vector_ids)
        else:
            # no mirror rows: clear orphans the index may still hold for this unit
            await self._rag_client.do_delete_by_filter(self._unit_conditions(kind, unit_id))
        return await self._chunk_mirror.delete_chunks(unit_id)

    @staticmethod
    def _unit_conditions(kind: DocumentKind, unit_id: str) -> dict[str, str]:
        if kind == DocumentKind.NOTE:
            return {"note_id": unit_id, "content_type": DocumentKind.NOTE.value}
        return {"library_item_id": unit_id}

    ##########################################
    ################ HELPER ##################
    ##########################################

    async def _resolve_note_id(self, unit: DocumentUnit) -> str:
        if unit.is_note():
            return unit.id
        if unit.associated_note_id:
            return unit.associated_note_id
        placeholder = await self._repository.get_or_create_placeholder_note(unit.project_id, unit.owner_user_id)
        await self._repository.set_associated_note(unit.id, placeholder.id)
        self.logging.debug("Library item '%s' has no note, using placeholder note '%s'.", unit.id, placeholder.id)
        return placeholder.id

    def _build_records(
        self,
        unit: DocumentUnit,
        note_id: str,
        chunks: list[TextChunk],
        embeddings: list[list[float]],
        citation: Citation,
    ) -> tuple[list[VectorRecord], list[ChunkRecord]]:
        model = self._embed_client.get_model_name()
        library_item_id = None if unit.is_note() else unit.id
        records: list[VectorRecord] = []
        rows: list[ChunkRecord] = []
        for chunk, embedding in zip(chunks, embeddings):
            vector_id = str(uuid.uuid4())
            chunk_id = str(uuid.uuid4())
            point = VectorPoint(
                note_id=note_id,
                project_id=unit.project_id,
                user_id=unit.owner_user_id,
                content_type=unit.kind.value,
                chunk_index=chunk.index,
                chunk_size=len(chunk.content),
                chunk_id=chunk_id,
                text=chunk.content,
                embedding_model=model,
                library_item_id=library_item_id,
                source_file=citation.source_file,
                author=citation.author,
                title=citation.title,
                year=citation.year,
            )
            records.append(VectorRecord(id=vector_id, values=embedding, metadata=point.model_dump()))
            rows.append(ChunkRecord(
                id=chunk_id,
                document_unit_id=unit.id,
                note_id=note_id,
                library_item_id=library_item_id,
                user_id=unit.owner_user_id,
                project_id=unit.project_id,
                content_type=unit.kind,
                text=chunk.content,
                chunk_index=chunk.index,
                chunk_size=len(chunk.content),
                vector_id=vector_id,
                embedding_model=model,
                citation=citation,
            ))
        return records, rows

    async def _upsert_or_cleanup(self, records: list[VectorRecord]) -> None:
        """Upsert all records; on failure delete the batches already written and re-raise."""
        try:
            await self._rag_client.do_upsert(records)
        except VectorIndexError as exc:
            written = exc.details.get("upserted_ids") or []
            if written:
                try:
                    await self._rag_client.do_delete_by_ids(written)
                except VectorIndexError as cleanup_exc:
                    self.logging.warning("Cleanup of %d partially upserted vectors failed: %s", len(written), cleanup_exc)
            raise

    async def _store_summary(self, unit: DocumentUnit, chunks: list[TextChunk]) -> None:
        if not self._summaries_enabled or self._llm_client is None:
            return
        sample = "\n\n".join(chunk.content for chunk in chunks[:SUMMARY_CHUNKS])[:SUMMARY_MAX_CHARS]
        try:
            summary = await self._llm_client.do_chat(
                [
                    {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                    {"role": "user", "content": f"Summarize:\n\n{sample}"},
                ],
                model=self._llm_client.fast_model,
                temperature=0.3,
                max_tokens=100,
            )
        except CompletionError as exc:
            self.logging.warning("Summary generation for library item '%s' failed: %s", unit.id, exc)
            return
        if summary.strip():
            await self._repository.set_summary(unit.id, summary.strip())

    async def _mark_failed(self, kind: DocumentKind, unit_id: str, error: str) -> None:
        try:
            await self._repository.set_vector_status(kind, unit_id, VectorStatus.FAILED, error=error)
        except Exception as exc:
            self.logging.error("Could not mark %s '%s' as failed: %s", kind.value, unit_id, exc)
