from services.qa import qa_prompts
from services.qa.ChunkEmitter import ChunkCallback, ChunkEmitter
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.qa import ExternalAnswer, ExternalMethod

ANSWER_TEMPERATURE = 0.3
ANSWER_MAX_TOKENS = 1000
ANSWER_CONFIDENCE = 0.8


class ExternalSynthesizer:
    """General-knowledge answers.

    Web and academic search are not integrated: determine_method() only
    labels the query, and every method is answered from the model's general
    knowledge.
    """

    def __init__(self, helper_config: HelperConfig, llm_client: LLMClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._llm_client = llm_client

    def get_sources(self) -> list[str]:
        return [qa_prompts.GENERAL_KNOWLEDGE_SOURCE, self._llm_client.chat_model]

    @staticmethod
    def determine_method(query: str) -> ExternalMethod:
        query_lower = query.lower()
        if any(keyword in query_lower for keyword in qa_prompts.ACADEMIC_KEYWORDS):
            return "academic_search"
        if any(keyword in query_lower for keyword in qa_prompts.CURRENT_EVENT_KEYWORDS + qa_prompts.FACTUAL_KEYWORDS):
            return "web_search"
        return "general_ai"

    def _build_messages(self, question: str, domain_topics: list[str] | None) -> list[dict]:
        method = self.determine_method(question)
        if method != "general_ai":
            self.logging.debug("Query suits %s, answering from general knowledge instead.", method)
        return [
            {"role": "system", "content": qa_prompts.build_external_system_prompt(domain_topics)},
            {"role": "user", "content": question},
        ]

    async def do_answer(self, question: str, domain_topics: list[str] | None = None) -> ExternalAnswer:
        """
        Raises:
            CompletionError: If the completion request fails.
        """
        answer = await self._llm_client.do_chat(
            self._build_messages(question, domain_topics),
            temperature=ANSWER_TEMPERATURE,
            max_tokens=ANSWER_MAX_TOKENS,
        )
        answer = answer.strip()
        return ExternalAnswer(
            answer=answer,
            sources=self.get_sources(),
            confidence=ANSWER_CONFIDENCE if answer else 0.0,
        )

    async def do_answer_streaming(
        self,
        question: str,
        on_chunk: ChunkCallback | ChunkEmitter,
        domain_topics: list[str] | None = None,
    ) -> ExternalAnswer:
        """Stream a general-knowledge answer.

        Raises:
            CompletionError: If the completion request fails. The apology has
                then already been sent as the terminal call.
        """
        emitter = ChunkEmitter.wrap(on_chunk)
        parts: list[str] = []
        try:
            async for token in self._llm_client.do_chat_stream(
                self._build_messages(question, domain_topics),
                temperature=ANSWER_TEMPERATURE,
                max_tokens=ANSWER_MAX_TOKENS,
            ):
                parts.append(token)
                await emitter.emit(token)
        except Exception:
            await emitter.complete(qa_prompts.ERROR_ANSWER)
            raise
        await emitter.complete()

        answer = "".join(parts).strip()
        return ExternalAnswer(
            answer=answer,
            sources=self.get_sources(),
            confidence=ANSWER_CONFIDENCE if answer else 0.0,
        )
