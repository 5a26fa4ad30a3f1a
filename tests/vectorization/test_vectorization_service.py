"""
Test suite for VectorizationService.

Runs the real Qdrant client against the in-process emulator, with a fake
embedder, a scripted LLM and in-memory repositories.
"""

import pytest

from services.vectorization.TextChunker import TextChunker
from services.vectorization.VectorizationService import VectorizationService
from shared.models.document import DocumentKind, VectorStatus

NOTE_TEXT = "".join(f"{i:03d}" for i in range(40))  # 120 chars → 3 chunks of 50/10
LIBRARY_TEXT = "# Leaf Anatomy\nPublished 2020 by the botany lab.\n" + "cells " * 30


@pytest.fixture
def vectorizer(helper_config, repository, chunk_mirror, embed_client, rag_client, llm_client) -> VectorizationService:
    return VectorizationService(
        helper_config=helper_config,
        repository=repository,
        chunk_mirror=chunk_mirror,
        embed_client=embed_client,
        rag_client=rag_client,
        llm_client=llm_client,
        chunker=TextChunker(chunk_size=50, overlap=10),
    )


def statuses(repository, unit_id: str) -> list[VectorStatus]:
    return [status for _, uid, status in repository.status_history if uid == unit_id]


class TestVectorizeNote:
    @pytest.mark.asyncio
    async def test_note_is_chunked_embedded_and_upserted(self, vectorizer, repository, chunk_mirror, embed_client, qdrant):
        repository.add_note("note-1", "user-1", "proj-1", text_content=NOTE_TEXT, name="Biology")

        result = await vectorizer.do_vectorize_note("note-1")

        assert result.ok
        assert result.chunk_count == 3
        assert result.note_id == "note-1"
        assert len(embed_client.calls) == 1
        assert len(embed_client.calls[0]) == 3
        assert sorted(qdrant.points) == sorted(result.vector_ids)
        for payload in qdrant.payloads():
            assert (payload["note_id"], payload["user_id"], payload["project_id"]) == ("note-1", "user-1", "proj-1")
            assert payload["content_type"] == "note"
            assert payload["library_item_id"] is None
            assert payload["title"] == "Biology"
            assert payload["embedding_model"] == "fake-embed"
        assert sorted(p["chunk_index"] for p in qdrant.payloads()) == [0, 1, 2]
        assert len(await chunk_mirror.list_chunks("note-1")) == 3
        assert statuses(repository, "note-1") == [VectorStatus.PROCESSING, VectorStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_revectorizing_replaces_all_chunks(self, vectorizer, repository, chunk_mirror, qdrant):
        repository.add_note("note-1", "user-1", "proj-1", text_content=NOTE_TEXT)

        first = await vectorizer.do_vectorize_note("note-1")
        second = await vectorizer.do_vectorize_note("note-1")

        assert second.chunk_count == first.chunk_count == 3
        assert set(first.vector_ids).isdisjoint(second.vector_ids)
        assert sorted(qdrant.points) == sorted(second.vector_ids)
        assert [row.vector_id for row in await chunk_mirror.list_chunks("note-1")] == second.vector_ids

    @pytest.mark.asyncio
    async def test_shrinking_content_leaves_no_stale_chunks(self, vectorizer, repository, qdrant):
        repository.add_note("note-1", "user-1", "proj-1", text_content=NOTE_TEXT)
        await vectorizer.do_vectorize_note("note-1")

        repository.add_note("note-1", "user-1", "proj-1", text_content="short now")
        result = await vectorizer.do_vectorize_note("note-1")

        assert result.chunk_count == 1
        assert [p["text"] for p in qdrant.payloads()] == ["short now"]

    @pytest.mark.asyncio
    async def test_empty_note_completes_without_processing_or_embedding(self, vectorizer, repository, embed_client, qdrant):
        repository.add_note("note-1", "user-1", "proj-1", text_content="   ")

        result = await vectorizer.do_vectorize_note("note-1")

        assert result.ok
        assert result.chunk_count == 0
        assert embed_client.calls == []
        assert statuses(repository, "note-1") == [VectorStatus.COMPLETED]
        assert qdrant.points == {}

    @pytest.mark.asyncio
    async def test_emptied_note_removes_previous_chunks(self, vectorizer, repository, chunk_mirror, qdrant):
        repository.add_note("note-1", "user-1", "proj-1", text_content=NOTE_TEXT)
        await vectorizer.do_vectorize_note("note-1")

        repository.add_note("note-1", "user-1", "proj-1", text_content="")
        await vectorizer.do_vectorize_note("note-1")

        assert qdrant.points == {}
        assert chunk_mirror.all_chunks() == []

    @pytest.mark.asyncio
    async def test_orphaned_vectors_are_cleared_by_filter_without_mirror_rows(self, vectorizer, repository, qdrant):
        qdrant.points["00000000-0000-0000-0000-00000000beef"] = {
            "vector": [1.0, 0.0, 0.0, 0.0],
            "payload": {"note_id": "note-1", "content_type": "note", "user_id": "user-1", "project_id": "proj-1"},
        }
        repository.add_note("note-1", "user-1", "proj-1", text_content=NOTE_TEXT)

        result = await vectorizer.do_vectorize_note("note-1")

        assert sorted(qdrant.points) == sorted(result.vector_ids)

    @pytest.mark.asyncio
    async def test_unknown_note_fails_without_status_writes(self, vectorizer, repository):
        result = await vectorizer.do_vectorize_note("missing")

        assert result.status == VectorStatus.FAILED
        assert result.error
        assert repository.status_history == []

    @pytest.mark.asyncio
    async def test_note_without_project_fails(self, vectorizer, repository, qdrant):
        repository.add_note("note-1", "user-1", None, text_content=NOTE_TEXT)

        result = await vectorizer.do_vectorize_note("note-1")

        assert result.status == VectorStatus.FAILED
        assert qdrant.points == {}
        assert (await repository.get_note("note-1")).vector_status == VectorStatus.FAILED


class TestVectorizeFailures:
    @pytest.mark.asyncio
    async def test_embedding_failure_marks_unit_failed(self, vectorizer, repository, embed_client, qdrant):
        repository.add_note("note-1", "user-1", "proj-1", text_content=NOTE_TEXT)
        embed_client.fail = True

        result = await vectorizer.do_vectorize_note("note-1")

        assert result.status == VectorStatus.FAILED
        assert "embedding backend unavailable" in result.error
        note = await repository.get_note("note-1")
        assert note.vector_status == VectorStatus.FAILED
        assert "embedding backend unavailable" in note.vector_error
        assert statuses(repository, "note-1") == [VectorStatus.PROCESSING, VectorStatus.FAILED]
        assert qdrant.points == {}

    @pytest.mark.asyncio
    async def test_partial_upsert_is_rolled_back(self, vectorizer, repository, chunk_mirror, rag_client, qdrant):
        rag_client.upsert_batch_size = 1
        qdrant.fail_upserts = {3}
        repository.add_note("note-1", "user-1", "proj-1", text_content=NOTE_TEXT)

        result = await vectorizer.do_vectorize_note("note-1")

        assert result.status == VectorStatus.FAILED
        assert qdrant.points == {}
        assert chunk_mirror.all_chunks() == []


class TestVectorizeLibraryItem:
    @pytest.mark.asyncio
    async def test_attached_item_carries_note_and_citation(self, vectorizer, repository, qdrant):
        repository.add_note("note-1", "user-1", "proj-1")
        repository.add_library_item(
            "lib-1", "user-1", "proj-1", text_content=LIBRARY_TEXT, name="Leaves_by_Ada Lovelace.pdf", note_id="note-1"
        )

        result = await vectorizer.do_vectorize_library_item("lib-1")

        assert result.ok
        assert result.note_id == "note-1"
        for payload in qdrant.payloads():
            assert payload["note_id"] == "note-1"
            assert payload["content_type"] == "library_item"
            assert payload["library_item_id"] == "lib-1"
            assert payload["author"] == "Ada Lovelace"
            assert payload["title"] == "Leaf Anatomy"
            assert payload["year"] == "2020"
            assert payload["source_file"] == "Leaves_by_Ada Lovelace.pdf"

    @pytest.mark.asyncio
    async def test_detached_item_moves_to_the_placeholder_note(self, vectorizer, repository, qdrant):
        repository.add_library_item("lib-1", "user-1", "proj-1", text_content=LIBRARY_TEXT)

        result = await vectorizer.do_vectorize_library_item("lib-1")

        placeholder = await repository.get_or_create_placeholder_note("proj-1", "user-1")
        assert placeholder.is_placeholder
        assert placeholder.name == repository.PLACEHOLDER_NOTE_NAME
        assert result.note_id == placeholder.id
        assert {p["note_id"] for p in qdrant.payloads()} == {placeholder.id}
        assert (await repository.get_library_item("lib-1")).associated_note_id == placeholder.id

    @pytest.mark.asyncio
    async def test_summary_is_generated_with_the_fast_model(self, vectorizer, repository, llm_client):
        repository.add_library_item("lib-1", "user-1", "proj-1", text_content=LIBRARY_TEXT)
        llm_client.chat_reply = "  A short overview of leaf anatomy.  "

        await vectorizer.do_vectorize_library_item("lib-1")

        assert (await repository.get_library_item("lib-1")).summary == "A short overview of leaf anatomy."
        call = llm_client.chat_calls()[-1]
        assert call["model"] == llm_client.fast_model
        assert call["max_tokens"] == 100

    @pytest.mark.asyncio
    async def test_summary_failure_does_not_fail_vectorization(self, vectorizer, repository, llm_client):
        repository.add_library_item("lib-1", "user-1", "proj-1", text_content=LIBRARY_TEXT)
        llm_client.fail_chat = True

        result = await vectorizer.do_vectorize_library_item("lib-1")

        assert result.ok
        assert (await repository.get_library_item("lib-1")).summary is None

    @pytest.mark.asyncio
    async def test_summaries_can_be_disabled(
        self, helper_config, repository, chunk_mirror, embed_client, rag_client, llm_client, monkeypatch
    ):
        monkeypatch.setenv("VECTORIZE_SUMMARIES", "false")
        vectorizer = VectorizationService(
            helper_config=helper_config,
            repository=repository,
            chunk_mirror=chunk_mirror,
            embed_client=embed_client,
            rag_client=rag_client,
            llm_client=llm_client,
        )
        repository.add_library_item("lib-1", "user-1", "proj-1", text_content=LIBRARY_TEXT)

        await vectorizer.do_vectorize_library_item("lib-1")

        assert llm_client.calls == []

    @pytest.mark.asyncio
    async def test_notes_get_no_summary(self, vectorizer, repository, llm_client):
        repository.add_note("note-1", "user-1", "proj-1", text_content=NOTE_TEXT)

        await vectorizer.do_vectorize_note("note-1")

        assert llm_client.calls == []


class TestReassociateAndDelete:
    @pytest.mark.asyncio
    async def test_reassociate_patches_note_id_without_reembedding(
        self, vectorizer, repository, chunk_mirror, embed_client, qdrant
    ):
        repository.add_note("note-a", "user-1", "proj-1")
        repository.add_note("note-b", "user-1", "proj-1")
        repository.add_library_item("lib-1", "user-1", "proj-1", text_content=LIBRARY_TEXT, note_id="note-a")
        result = await vectorizer.do_vectorize_library_item("lib-1")
        vectors_before = {pid: point["vector"] for pid, point in qdrant.points.items()}
        embed_calls_before = len(embed_client.calls)

        updated = await vectorizer.do_reassociate("lib-1", "note-b")

        assert updated == result.chunk_count
        assert {p["note_id"] for p in qdrant.payloads()} == {"note-b"}
        assert {pid: point["vector"] for pid, point in qdrant.points.items()} == vectors_before
        assert {row.note_id for row in chunk_mirror.all_chunks()} == {"note-b"}
        assert (await repository.get_library_item("lib-1")).associated_note_id == "note-b"
        assert len(embed_client.calls) == embed_calls_before

    @pytest.mark.asyncio
    async def test_reassociate_to_none_uses_the_placeholder(self, vectorizer, repository, qdrant):
        repository.add_note("note-a", "user-1", "proj-1")
        repository.add_library_item("lib-1", "user-1", "proj-1", text_content=LIBRARY_TEXT, note_id="note-a")
        await vectorizer.do_vectorize_library_item("lib-1")

        await vectorizer.do_reassociate("lib-1", None)

        placeholder = await repository.get_or_create_placeholder_note("proj-1", "user-1")
        assert {p["note_id"] for p in qdrant.payloads()} == {placeholder.id}
        assert await repository.list_attached_library_items("note-a") == []

    @pytest.mark.asyncio
    async def test_reassociate_unknown_item_is_a_noop(self, vectorizer):
        assert await vectorizer.do_reassociate("missing", "note-b") == 0

    @pytest.mark.asyncio
    async def test_delete_unit_removes_vectors_and_mirror_rows(self, vectorizer, repository, chunk_mirror, qdrant):
        repository.add_note("note-1", "user-1", "proj-1", text_content=NOTE_TEXT)
        repository.add_library_item("lib-1", "user-1", "proj-1", text_content=LIBRARY_TEXT, note_id="note-1")
        await vectorizer.do_vectorize_note("note-1")
        library = await vectorizer.do_vectorize_library_item("lib-1")

        removed = await vectorizer.do_delete_unit(DocumentKind.NOTE, "note-1")

        assert removed == 3
        assert sorted(qdrant.points) == sorted(library.vector_ids)
        assert await chunk_mirror.list_chunks("note-1") == []
