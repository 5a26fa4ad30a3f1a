from services.qa import qa_prompts
from services.qa.ChunkEmitter import ChunkCallback, ChunkEmitter
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.qa import DocumentAnswer, RetrievedChunk

ANSWER_TEMPERATURE = 0.3


class DocumentSynthesizer:
    """Answers strictly from retrieved chunks and appends a deduplicated sources list."""

    def __init__(self, helper_config: HelperConfig, llm_client: LLMClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._llm_client = llm_client

    async def do_answer(self, question: str, chunks: list[RetrievedChunk]) -> DocumentAnswer:
        """Generate a document-grounded answer.

        Without chunks the fixed "couldn't find" answer is returned and the LLM is not called.

        Raises:
            CompletionError: If the completion request fails.
        """
        if not chunks:
            return DocumentAnswer(answer=qa_prompts.NO_DOCUMENT_RESULTS_ANSWER)

        prompt = qa_prompts.build_document_prompt(question, qa_prompts.build_document_context(chunks))
        citations = qa_prompts.build_citations_block(chunks)
        answer = (await self._llm_client.do_complete(prompt, temperature=ANSWER_TEMPERATURE)).strip()
        if citations:
            answer = f"{answer}\n\n{citations}"
        return DocumentAnswer(answer=answer, chunks=chunks, citations=citations)

    async def do_answer_streaming(
        self,
        question: str,
        chunks: list[RetrievedChunk],
        on_chunk: ChunkCallback | ChunkEmitter,
    ) -> DocumentAnswer:
        """Stream a document-grounded answer; the citations block is the terminal text.

        On failure the apology is sent as the terminal call (if none was sent yet)
        and the error is re-raised.

        Raises:
            CompletionError: If the completion request fails.
        """
        emitter = ChunkEmitter.wrap(on_chunk)
        if not chunks:
            await emitter.complete(qa_prompts.NO_DOCUMENT_RESULTS_ANSWER)
            return DocumentAnswer(answer=qa_prompts.NO_DOCUMENT_RESULTS_ANSWER)

        prompt = qa_prompts.build_document_prompt(question, qa_prompts.build_document_context(chunks))
        citations = qa_prompts.build_citations_block(chunks)
        try:
            answer = await self._llm_client.do_complete_streaming(prompt, emitter.emit, temperature=ANSWER_TEMPERATURE)
        except Exception:
            await emitter.complete(qa_prompts.ERROR_ANSWER)
            raise

        answer = answer.strip()
        if citations:
            await emitter.complete(f"\n\n{citations}")
            answer = f"{answer}\n\n{citations}"
        else:
            await emitter.complete()
        return DocumentAnswer(answer=answer, chunks=chunks, citations=citations)
