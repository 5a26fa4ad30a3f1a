"""Question-answering orchestrator.

Per request: build the note's domain context, classify the question, then
run one of three pipelines:

  rag_only       secure retrieval + document synthesizer
  external_only  external synthesizer
  hybrid         retrieval and external answer fetched concurrently, merged
                 by the hybrid synthesizer

Callers never see an exception from here: any stage failure becomes a
zero-confidence apology answer.
"""

import asyncio

from services.qa import qa_prompts
from services.qa.ChunkEmitter import ChunkCallback, ChunkEmitter
from services.qa.IntentClassifier import IntentClassifier
from services.qa.synthesizers.DocumentSynthesizer import DocumentSynthesizer
from services.qa.synthesizers.ExternalSynthesizer import ExternalSynthesizer
from services.qa.synthesizers.HybridSynthesizer import HybridSynthesizer
from services.retrieval.SecureRetriever import SecureRetriever
from shared.exceptions import BridgeError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import AttachedDocument, DomainContext
from shared.models.qa import (
    AnswerResult,
    AnswerSource,
    ExternalAnswer,
    Intent,
    IntentClassification,
    Pipeline,
    RetrievedChunk,
)
from shared.repositories.DocumentUnitRepositoryInterface import DocumentUnitRepositoryInterface

RAG_CONFIDENCE_WITH_RESULTS = 0.8
RAG_CONFIDENCE_WITHOUT_RESULTS = 0.2


class PipelineOrchestrator:
    def __init__(
        self,
        helper_config: HelperConfig,
        repository: DocumentUnitRepositoryInterface,
        retriever: SecureRetriever,
        classifier: IntentClassifier,
        document_synthesizer: DocumentSynthesizer,
        external_synthesizer: ExternalSynthesizer,
        hybrid_synthesizer: HybridSynthesizer,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._repository = repository
        self._retriever = retriever
        self._classifier = classifier
        self._document_synthesizer = document_synthesizer
        self._external_synthesizer = external_synthesizer
        self._hybrid_synthesizer = hybrid_synthesizer
        self.qa_top_k = int(helper_config.get_number_val("QA_TOP_K", default=5))
        self.hybrid_top_k = int(helper_config.get_number_val("HYBRID_TOP_K", default=3))

    ##########################################
    ############ DOMAIN CONTEXT ##############
    ##########################################

    async def build_domain_context(self, note_id: str, user_id: str) -> DomainContext:
        """Describe what the note can ground answers with.

        An unknown or foreign note yields an empty context.
        """
        note = await self._repository.get_note(note_id)
        if note is None or note.owner_user_id != user_id:
            self.logging.warning("Note '%s' not found or not owned by user '%s'.", note_id, user_id)
            return DomainContext(note_id=note_id)

        attached = await self._repository.list_attached_library_items(note_id)
        return DomainContext(
            note_id=note_id,
            attached_documents=[
                AttachedDocument(id=item.id, name=item.name, mime_type=item.mime_type, summary=item.summary)
                for item in attached
            ],
            note_has_content=note.has_content(),
        )

    ##########################################
    ############### BLOCKING #################
    ##########################################

    async def do_answer(self, note_id: str, user_id: str, question: str) -> AnswerResult:
        """Answer a question asked in a note.

        Args:
            note_id (str): The note the question is asked in.
            user_id (str): The requesting user.
            question (str): The question.

        Returns:
            AnswerResult: The answer, or the degraded apology on any failure.
        """
        try:
            self.logging.info("Starting Q&A for note '%s'", note_id)
            context = await self.build_domain_context(note_id, user_id)
            classification = await self._classifier.do_classify(question, context)

            if classification.suggested_pipeline == Pipeline.RAG_ONLY:
                chunks = await self._retriever.do_search_for_qa(note_id, question, self.qa_top_k, user_id=user_id)
                document_answer = await self._document_synthesizer.do_answer(question, chunks)
                result = self._rag_result(document_answer.answer, chunks, classification)
            elif classification.suggested_pipeline == Pipeline.EXTERNAL_ONLY:
                external = await self._external_synthesizer.do_answer(question, classification.domain_topics)
                result = self._external_result(external, classification)
            else:
                chunks, external = await self._gather_hybrid_inputs(note_id, user_id, question, classification)
                answer = await self._hybrid_synthesizer.do_answer(question, chunks, external, classification.domain_topics)
                result = self._hybrid_result(answer, chunks, external, classification)

            self.logging.info("Answered using %s pipeline (confidence %.2f)", result.pipeline_used.value, result.confidence)
            return result
        except Exception as exc:
            self.logging.error("Q&A for note '%s' failed: %s", note_id, exc, exc_info=not isinstance(exc, BridgeError))
            return self.degraded_result()

    ##########################################
    ############### STREAMING ################
    ##########################################

    async def do_answer_streaming(
        self,
        note_id: str,
        user_id: str,
        question: str,
        on_chunk: ChunkCallback,
    ) -> AnswerResult:
        """Streaming variant of do_answer().

        on_chunk(text, is_complete) receives the answer incrementally and is
        called with is_complete=True exactly once, also when a stage fails.
        """
        emitter = ChunkEmitter.wrap(on_chunk)
        try:
            self.logging.info("Starting streaming Q&A for note '%s'", note_id)
            context = await self.build_domain_context(note_id, user_id)
            classification = await self._classifier.do_classify(question, context)

            if classification.suggested_pipeline == Pipeline.RAG_ONLY:
                chunks = await self._retriever.do_search_for_qa(note_id, question, self.qa_top_k, user_id=user_id)
                document_answer = await self._document_synthesizer.do_answer_streaming(question, chunks, emitter)
                result = self._rag_result(document_answer.answer, chunks, classification)
            elif classification.suggested_pipeline == Pipeline.EXTERNAL_ONLY:
                external = await self._external_synthesizer.do_answer_streaming(
                    question, emitter, classification.domain_topics
                )
                result = self._external_result(external, classification)
            else:
                chunks, external = await self._gather_hybrid_inputs(note_id, user_id, question, classification)
                answer = await self._hybrid_synthesizer.do_answer_streaming(
                    question, chunks, external, emitter, classification.domain_topics
                )
                result = self._hybrid_result(answer, chunks, external, classification)

            await emitter.complete()
            return result
        except Exception as exc:
            self.logging.error("Streaming Q&A for note '%s' failed: %s", note_id, exc, exc_info=not isinstance(exc, BridgeError))
            await emitter.complete(qa_prompts.ERROR_ANSWER)
            return self.degraded_result()

    ##########################################
    ################ HELPER ##################
    ##########################################

    async def _gather_hybrid_inputs(
        self,
        note_id: str,
        user_id: str,
        question: str,
        classification: IntentClassification,
    ) -> tuple[list[RetrievedChunk], ExternalAnswer]:
        """Fetch document chunks and the external answer concurrently.

        Either failure propagates, so the caller answers with the degraded result.
        """
        chunks, external = await asyncio.gather(
            self._retriever.do_search_for_qa(note_id, question, self.hybrid_top_k, user_id=user_id),
            self._external_synthesizer.do_answer(question, classification.domain_topics),
        )
        return chunks, external

    @staticmethod
    def _document_sources(chunks: list[RetrievedChunk]) -> list[AnswerSource]:
        return [
            AnswerSource(
                type="document",
                content=chunk.content,
                metadata={
                    "content_type": chunk.source_type.value,
                    "note_id": chunk.metadata.get("note_id"),
                    "library_item_id": chunk.library_item_id,
                    "source_file": chunk.source_file,
                    "author": chunk.author,
                    "title": chunk.title,
                    "year": chunk.year,
                    "score": chunk.score,
                },
            )
            for chunk in chunks
        ]

    @staticmethod
    def _external_sources(external: ExternalAnswer) -> list[AnswerSource]:
        return [AnswerSource(type="external", content=source) for source in external.sources]

    def _rag_result(self, answer: str, chunks: list[RetrievedChunk], classification: IntentClassification) -> AnswerResult:
        return AnswerResult(
            answer=answer,
            sources=self._document_sources(chunks),
            pipeline_used=Pipeline.RAG_ONLY,
            confidence=RAG_CONFIDENCE_WITH_RESULTS if chunks else RAG_CONFIDENCE_WITHOUT_RESULTS,
            intent_classification=classification,
        )

    def _external_result(self, external: ExternalAnswer, classification: IntentClassification) -> AnswerResult:
        return AnswerResult(
            answer=external.answer,
            sources=self._external_sources(external),
            pipeline_used=Pipeline.EXTERNAL_ONLY,
            confidence=external.confidence,
            intent_classification=classification,
        )

    def _hybrid_result(
        self,
        answer: str,
        chunks: list[RetrievedChunk],
        external: ExternalAnswer,
        classification: IntentClassification,
    ) -> AnswerResult:
        return AnswerResult(
            answer=answer,
            sources=self._document_sources(chunks) + self._external_sources(external),
            pipeline_used=Pipeline.HYBRID,
            confidence=self._hybrid_synthesizer.calculate_confidence(chunks, external),
            intent_classification=classification,
        )

    @staticmethod
    def degraded_result() -> AnswerResult:
        return AnswerResult(
            answer=qa_prompts.ERROR_ANSWER,
            sources=[],
            pipeline_used=Pipeline.RAG_ONLY,
            confidence=0.0,
            intent_classification=IntentClassification(
                intent=Intent.OUT_OF_DOMAIN,
                confidence=0.0,
                suggested_pipeline=Pipeline.RAG_ONLY,
                reasoning="Error occurred during processing",
            ),
        )
