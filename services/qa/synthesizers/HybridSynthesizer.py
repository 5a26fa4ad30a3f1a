from services.qa import qa_prompts
from services.qa.ChunkEmitter import ChunkCallback, ChunkEmitter
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.qa import ExternalAnswer, RetrievedChunk

ANSWER_TEMPERATURE = 0.3
ANSWER_MAX_TOKENS = 1200
# external knowledge is only shown to the model above this confidence
EXTERNAL_CONFIDENCE_THRESHOLD = 0.5


class HybridSynthesizer:
    """Merges retrieved chunks and a general-knowledge answer into one cited answer."""

    def __init__(self, helper_config: HelperConfig, llm_client: LLMClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._llm_client = llm_client

    @staticmethod
    def calculate_confidence(chunks: list[RetrievedChunk], external: ExternalAnswer) -> float:
        """Weighted average of document and external confidence.

        Documents count 0.8 when found (0.2 otherwise) and are weighted 0.7
        when found (0.3 otherwise). External confidence defaults to 0.5.
        """
        document_confidence = 0.8 if chunks else 0.2
        external_confidence = external.confidence or 0.5
        document_weight = 0.7 if chunks else 0.3
        return document_confidence * document_weight + external_confidence * (1 - document_weight)

    def build_prompt(
        self,
        question: str,
        chunks: list[RetrievedChunk],
        external: ExternalAnswer,
        domain_topics: list[str] | None = None,
    ) -> str:
        external_text = external.answer if external.confidence > EXTERNAL_CONFIDENCE_THRESHOLD else ""
        return qa_prompts.build_hybrid_prompt(
            question,
            qa_prompts.build_hybrid_document_section(chunks),
            qa_prompts.build_hybrid_external_section(external_text),
            domain_topics,
        )

    def _build_messages(self, prompt: str) -> list[dict]:
        return [
            {"role": "system", "content": qa_prompts.HYBRID_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def do_answer(
        self,
        question: str,
        chunks: list[RetrievedChunk],
        external: ExternalAnswer,
        domain_topics: list[str] | None = None,
    ) -> str:
        """
        Raises:
            CompletionError: If the completion request fails.
        """
        prompt = self.build_prompt(question, chunks, external, domain_topics)
        answer = await self._llm_client.do_chat(
            self._build_messages(prompt),
            temperature=ANSWER_TEMPERATURE,
            max_tokens=ANSWER_MAX_TOKENS,
        )
        return answer.strip()

    async def do_answer_streaming(
        self,
        question: str,
        chunks: list[RetrievedChunk],
        external: ExternalAnswer,
        on_chunk: ChunkCallback | ChunkEmitter,
        domain_topics: list[str] | None = None,
    ) -> str:
        """
        Raises:
            CompletionError: If the completion request fails. The apology has
                then already been sent as the terminal call.
        """
        emitter = ChunkEmitter.wrap(on_chunk)
        prompt = self.build_prompt(question, chunks, external, domain_topics)
        parts: list[str] = []
        try:
            async for token in self._llm_client.do_chat_stream(
                self._build_messages(prompt),
                temperature=ANSWER_TEMPERATURE,
                max_tokens=ANSWER_MAX_TOKENS,
            ):
                parts.append(token)
                await emitter.emit(token)
        except Exception:
            await emitter.complete(qa_prompts.ERROR_ANSWER)
            raise
        await emitter.complete()
        return "".join(parts).strip()
