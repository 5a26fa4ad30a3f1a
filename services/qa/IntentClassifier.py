import json

from pydantic import ValidationError

from services.qa import qa_prompts
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.exceptions import CompletionError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DomainContext
from shared.models.qa import Intent, IntentClassification, Pipeline

DOCUMENT_KEYWORDS = ["document", "note", "file", "pdf", "this says", "according to"]
GENERAL_KEYWORDS = ["what is", "define", "explain", "how does", "why do"]

CLASSIFICATION_TEMPERATURE = 0.1


class IntentClassifier:
    """Decides whether a question is answered from documents, general knowledge or both."""

    def __init__(self, helper_config: HelperConfig, llm_client: LLMClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._llm_client = llm_client

    async def do_classify(self, query: str, context: DomainContext) -> IntentClassification:
        """Classify a question with one JSON-mode LLM call.

        Falls back to keyword heuristics if the call fails or the reply is not
        a JSON object. Never raises for either.

        Args:
            query (str): The user question.
            context (DomainContext): Attachments and note state of the note asked in.

        Returns:
            IntentClassification: The sanity-corrected classification.
        """
        try:
            raw = await self._llm_client.do_chat(
                [
                    {"role": "system", "content": qa_prompts.CLASSIFICATION_SYSTEM_PROMPT},
                    {"role": "user", "content": qa_prompts.build_classification_prompt(query, context)},
                ],
                model=self._llm_client.fast_model,
                temperature=CLASSIFICATION_TEMPERATURE,
                json_mode=True,
            )
            result = json.loads(raw or "{}")
            if not isinstance(result, dict):
                raise ValueError(f"Expected a JSON object, got {type(result).__name__}")
            classification = self._from_llm_result(result, context)
        except (CompletionError, ValueError, ValidationError) as exc:
            self.logging.warning("Intent classification failed, using keyword fallback: %s", exc)
            classification = self.fallback_classification(query, context)

        self.logging.info(
            "Intent classified as %s → %s (%.2f)",
            classification.intent.value, classification.suggested_pipeline.value, classification.confidence,
        )
        return classification

    def _from_llm_result(self, result: dict, context: DomainContext) -> IntentClassification:
        has_docs = context.has_documents()

        intent = self._parse_enum(Intent, result.get("intent"))
        if intent is None:
            intent = Intent.IN_DOMAIN if has_docs else Intent.OUT_OF_DOMAIN

        pipeline = self._parse_enum(Pipeline, result.get("suggested_pipeline"))
        if pipeline is None:
            pipeline = Pipeline.RAG_ONLY if has_docs else Pipeline.EXTERNAL_ONLY

        topics = result.get("domain_topics") or []
        if not isinstance(topics, list):
            topics = [str(topics)]

        return IntentClassification(
            intent=intent,
            confidence=result.get("confidence", 0.5),
            domain_topics=[str(topic) for topic in topics],
            suggested_pipeline=self.sanity_correct(intent, pipeline, context),
            reasoning=result.get("reasoning") or "Classification completed",
        )

    @staticmethod
    def _parse_enum(enum_cls, value):
        try:
            return enum_cls(value)
        except ValueError:
            return None

    @staticmethod
    def sanity_correct(intent: Intent, pipeline: Pipeline, context: DomainContext) -> Pipeline:
        """Never external_only while documents exist (unless out_of_domain), never rag_only without documents."""
        has_docs = context.has_documents()
        if has_docs and pipeline == Pipeline.EXTERNAL_ONLY and intent != Intent.OUT_OF_DOMAIN:
            return Pipeline.RAG_ONLY
        if not has_docs and pipeline == Pipeline.RAG_ONLY:
            return Pipeline.EXTERNAL_ONLY
        return pipeline

    @staticmethod
    def fallback_classification(query: str, context: DomainContext) -> IntentClassification:
        query_lower = query.lower()
        has_document_keywords = any(keyword in query_lower for keyword in DOCUMENT_KEYWORDS)
        has_general_keywords = any(keyword in query_lower for keyword in GENERAL_KEYWORDS)
        has_attachments = bool(context.attached_documents)

        if has_document_keywords and has_attachments:
            return IntentClassification(
                intent=Intent.IN_DOMAIN,
                confidence=0.7,
                suggested_pipeline=Pipeline.RAG_ONLY,
                reasoning="Query contains document-specific keywords and documents are available",
            )
        if has_general_keywords and not has_attachments:
            return IntentClassification(
                intent=Intent.OUT_OF_DOMAIN,
                confidence=0.6,
                suggested_pipeline=Pipeline.EXTERNAL_ONLY,
                reasoning="Query asks for general knowledge and no documents are available",
            )
        if context.has_documents():
            return IntentClassification(
                intent=Intent.IN_DOMAIN,
                confidence=0.5,
                suggested_pipeline=Pipeline.RAG_ONLY,
                reasoning="Defaulted to document-grounded answer when context exists",
            )
        return IntentClassification(
            intent=Intent.OUT_OF_DOMAIN,
            confidence=0.5,
            suggested_pipeline=Pipeline.EXTERNAL_ONLY,
            reasoning="No context available; defaulting to external knowledge",
        )
