"""
Test suite for SecureRetriever.

Covers the scope filter pushed into the index, the post-filter that drops
anything outside the scope, attachment liveness and fail-closed lookups.
"""

from unittest.mock import AsyncMock

import pytest

from services.retrieval.SecureRetriever import SecureRetriever
from services.vectorization.TextChunker import TextChunker
from services.vectorization.VectorizationService import VectorizationService
from shared.clients.rag.models.VectorRecord import QueryMatch
from shared.models.document import DocumentKind

SCOPE = {"note_id": "note-a", "user_id": "user-1", "project_id": "proj-1"}


def match(match_id: str, text: str, **metadata) -> QueryMatch:
    return QueryMatch(id=match_id, score=0.9, metadata={**SCOPE, "text": text, **metadata})


@pytest.fixture
def mock_rag_client() -> AsyncMock:
    client = AsyncMock()
    client.do_query_text = AsyncMock(return_value=[])
    return client


@pytest.fixture
def seeded_repository(repository):
    repository.add_note("note-a", "user-1", "proj-1", text_content="Chlorophyll absorbs red and blue light.")
    repository.add_note("note-b", "user-1", "proj-1", text_content="Mitochondria produce ATP.")
    repository.add_note("note-x", "user-2", "proj-2", text_content="Another user's private note.")
    repository.add_note("note-orphan", "user-1", None, text_content="No project.")
    repository.add_library_item("lib-1", "user-1", "proj-1", text_content="Light reactions happen in thylakoids.", note_id="note-a")
    repository.add_library_item("lib-2", "user-1", "proj-1", text_content="The Krebs cycle.", note_id="note-b")
    return repository


class TestScopeResolution:
    @pytest.mark.asyncio
    async def test_scope_of_owned_note(self, helper_config, seeded_repository, embed_client, mock_rag_client):
        retriever = SecureRetriever(helper_config, seeded_repository, embed_client, mock_rag_client)

        scope = await retriever.resolve_scope("note-a", "user-1")

        assert scope.as_conditions() == SCOPE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("note_id,user_id", [("missing", "user-1"), ("note-x", "user-1"), ("note-orphan", "user-1")])
    async def test_unknown_foreign_or_projectless_note_returns_nothing(
        self, helper_config, seeded_repository, embed_client, mock_rag_client, note_id, user_id
    ):
        retriever = SecureRetriever(helper_config, seeded_repository, embed_client, mock_rag_client)

        results = await retriever.do_search_for_qa(note_id, "question", user_id=user_id)

        assert results == []
        mock_rag_client.do_query_text.assert_not_awaited()


class TestPostFilter:
    @pytest.mark.asyncio
    async def test_query_carries_the_full_scope(self, helper_config, seeded_repository, embed_client, mock_rag_client):
        retriever = SecureRetriever(helper_config, seeded_repository, embed_client, mock_rag_client)

        await retriever.do_search_for_qa("note-a", "what absorbs light?", user_id="user-1")

        args = mock_rag_client.do_query_text.await_args.args
        assert args[0] == "what absorbs light?"
        assert args[2] == 5
        assert args[3] == SCOPE

    @pytest.mark.asyncio
    async def test_out_of_scope_matches_are_dropped(self, helper_config, seeded_repository, embed_client, mock_rag_client):
        mock_rag_client.do_query_text.return_value = [
            match("m1", "note chunk", content_type="note"),
            match("m2", "leaked chunk", content_type="note", user_id="user-2"),
            match("m3", "other project", content_type="note", project_id="proj-2"),
            match("m4", "other note", content_type="note", note_id="note-b"),
        ]
        retriever = SecureRetriever(helper_config, seeded_repository, embed_client, mock_rag_client)

        results = await retriever.do_search_for_qa("note-a", "question", user_id="user-1")

        assert [chunk.content for chunk in results] == ["note chunk"]

    @pytest.mark.asyncio
    async def test_only_currently_attached_library_items_survive(
        self, helper_config, seeded_repository, embed_client, mock_rag_client
    ):
        mock_rag_client.do_query_text.return_value = [
            match("m1", "attached", content_type="library_item", library_item_id="lib-1"),
            match("m2", "stale", content_type="library_item", library_item_id="lib-2"),
            match("m3", "unknown type", content_type="bookmark"),
        ]
        retriever = SecureRetriever(helper_config, seeded_repository, embed_client, mock_rag_client)

        results = await retriever.do_search_for_qa("note-a", "question", user_id="user-1")

        assert [chunk.content for chunk in results] == ["attached"]
        assert results[0].source_type == DocumentKind.LIBRARY_ITEM
        assert results[0].library_item_id == "lib-1"

    @pytest.mark.asyncio
    async def test_year_prefers_the_chunk_text(self, helper_config, seeded_repository, embed_client, mock_rag_client):
        mock_rag_client.do_query_text.return_value = [
            match("m1", "As shown in 2019, leaves ...", content_type="library_item", library_item_id="lib-1",
                  year="2020", author="Ada Lovelace"),
            match("m2", "no year in here", content_type="library_item", library_item_id="lib-1", year="2020"),
        ]
        retriever = SecureRetriever(helper_config, seeded_repository, embed_client, mock_rag_client)

        results = await retriever.do_search_for_qa("note-a", "question", user_id="user-1")

        assert [chunk.year for chunk in results] == ["2019", "2020"]
        assert results[0].author == "Ada Lovelace"


class TestEndToEnd:
    @pytest.fixture
    def vectorizer(self, helper_config, seeded_repository, chunk_mirror, embed_client, rag_client):
        return VectorizationService(
            helper_config=helper_config,
            repository=seeded_repository,
            chunk_mirror=chunk_mirror,
            embed_client=embed_client,
            rag_client=rag_client,
            chunker=TextChunker(chunk_size=200, overlap=20),
        )

    @pytest.mark.asyncio
    async def test_retrieval_sees_own_note_and_attachments_only(
        self, helper_config, seeded_repository, embed_client, rag_client, vectorizer
    ):
        for note_id in ("note-a", "note-b", "note-x"):
            await vectorizer.do_vectorize_note(note_id)
        for item_id in ("lib-1", "lib-2"):
            await vectorizer.do_vectorize_library_item(item_id)
        retriever = SecureRetriever(helper_config, seeded_repository, embed_client, rag_client)

        results = await retriever.do_search_for_qa("note-a", "light", top_k=10, user_id="user-1")

        assert sorted(chunk.content for chunk in results) == [
            "Chlorophyll absorbs red and blue light.",
            "Light reactions happen in thylakoids.",
        ]

    @pytest.mark.asyncio
    async def test_detach_hides_chunks_and_reattach_restores_them(
        self, helper_config, seeded_repository, embed_client, rag_client, vectorizer, qdrant
    ):
        vectorized = await vectorizer.do_vectorize_library_item("lib-1")
        retriever = SecureRetriever(helper_config, seeded_repository, embed_client, rag_client)

        await seeded_repository.set_associated_note("lib-1", None)
        detached = await retriever.do_search_for_qa("note-a", "light", user_id="user-1")

        assert "lib-1" not in [chunk.library_item_id for chunk in detached]
        assert sorted(qdrant.points) == sorted(vectorized.vector_ids)

        await seeded_repository.set_associated_note("lib-1", "note-a")
        reattached = await retriever.do_search_for_qa("note-a", "light", user_id="user-1")

        assert [chunk.library_item_id for chunk in reattached] == ["lib-1"]
        assert sorted(qdrant.points) == sorted(vectorized.vector_ids)

    @pytest.mark.asyncio
    async def test_reassociated_item_follows_its_new_note(
        self, helper_config, seeded_repository, embed_client, rag_client, vectorizer
    ):
        await vectorizer.do_vectorize_library_item("lib-1")
        retriever = SecureRetriever(helper_config, seeded_repository, embed_client, rag_client)

        await vectorizer.do_reassociate("lib-1", "note-b")

        assert await retriever.do_search_for_qa("note-a", "light", user_id="user-1") == []
        moved = await retriever.do_search_for_qa("note-b", "light", user_id="user-1")
        assert [chunk.library_item_id for chunk in moved] == ["lib-1"]
