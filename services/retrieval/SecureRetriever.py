"""Scope-constrained similarity retrieval for question answering.

Two layers keep foreign content out of the results:
  1. the index query carries a mandatory (note, user, project) filter;
  2. every match is checked against the same scope again after the query.
Library item chunks are additionally dropped unless the item is currently
attached to the note. Detached items keep their vectors until reassociated.
"""

from services.vectorization.CitationExtractor import extract_year
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorRecord import QueryMatch
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentKind
from shared.models.qa import RetrievedChunk, SecurityScope
from shared.repositories.DocumentUnitRepositoryInterface import DocumentUnitRepositoryInterface


class SecureRetriever:
    def __init__(
        self,
        helper_config: HelperConfig,
        repository: DocumentUnitRepositoryInterface,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._repository = repository
        self._embed_client = embed_client
        self._rag_client = rag_client
        self.default_top_k = int(helper_config.get_number_val("QA_TOP_K", default=5))

    async def resolve_scope(self, note_id: str, user_id: str | None = None) -> SecurityScope | None:
        """Build the security scope of a note.

        Returns:
            SecurityScope | None: None if the note does not exist, has no
                project, or belongs to someone other than user_id.
        """
        note = await self._repository.get_note(note_id)
        if note is None or not note.project_id:
            return None
        if user_id is not None and note.owner_user_id != user_id:
            return None
        return SecurityScope(user_id=note.owner_user_id, project_id=note.project_id, note_id=note.id)

    async def do_search_for_qa(
        self,
        note_id: str,
        question: str,
        top_k: int | None = None,
        user_id: str | None = None,
    ) -> list[RetrievedChunk]:
        """Retrieve the chunks most relevant to a question within a note's scope.

        Fails closed: an unknown or foreign note yields an empty list, never an error.

        Args:
            note_id (str): The note the question is asked in.
            question (str): The question text.
            top_k (int | None): Maximum number of matches requested from the index.
            user_id (str | None): Requesting user. If given, must own the note.

        Returns:
            list[RetrievedChunk]: Scope-checked, attachment-filtered chunks.

        Raises:
            EmbeddingError: If the question cannot be embedded.
            VectorIndexError: If the index query fails.
        """
        scope = await self.resolve_scope(note_id, user_id)
        if scope is None:
            self.logging.debug("No retrievable scope for note '%s', returning no results.", note_id)
            return []

        attached_ids = {item.id for item in await self._repository.list_attached_library_items(note_id)}

        matches = await self._rag_client.do_query_text(
            question,
            self._embed_client,
            top_k or self.default_top_k,
            scope.as_conditions(),
        )

        results = [self._to_chunk(match) for match in matches if self._is_visible(match, scope, attached_ids)]
        self.logging.info(
            "Search results for note '%s': %d → %d (scope + attached only)",
            note_id, len(matches), len(results),
        )
        return results

    def _is_visible(self, match: QueryMatch, scope: SecurityScope, attached_ids: set[str]) -> bool:
        if not scope.matches(match.metadata):
            self.logging.warning("Dropped match '%s' outside the requested scope.", match.id)
            return False
        content_type = match.metadata.get("content_type")
        if content_type == DocumentKind.NOTE.value:
            return True
        if content_type == DocumentKind.LIBRARY_ITEM.value:
            return match.metadata.get("library_item_id") in attached_ids
        return False

    @staticmethod
    def _to_chunk(match: QueryMatch) -> RetrievedChunk:
        metadata = match.metadata
        return RetrievedChunk(
            content=match.text,
            score=match.score,
            source_type=DocumentKind(metadata.get("content_type")),
            metadata=metadata,
            library_item_id=metadata.get("library_item_id"),
            source_file=metadata.get("source_file"),
            author=metadata.get("author"),
            title=metadata.get("title"),
            year=extract_year(match.text) or metadata.get("year"),
        )
