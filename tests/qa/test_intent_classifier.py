"""Tests for IntentClassifier: LLM parsing, sanity correction and the keyword fallback."""

import json

import pytest

from services.qa.IntentClassifier import IntentClassifier
from shared.models.document import AttachedDocument, DomainContext
from shared.models.qa import Intent, Pipeline

WITH_ATTACHMENTS = DomainContext(
    note_id="note-a",
    attached_documents=[AttachedDocument(id="lib-1", name="leaves.pdf", mime_type="application/pdf", summary="Leaf anatomy.")],
)
NOTE_CONTENT_ONLY = DomainContext(note_id="note-a", note_has_content=True)
EMPTY = DomainContext(note_id="note-a")


@pytest.fixture
def classifier(helper_config, llm_client) -> IntentClassifier:
    return IntentClassifier(helper_config=helper_config, llm_client=llm_client)


def reply(**fields) -> str:
    return json.dumps(fields)


class TestLLMClassification:
    @pytest.mark.asyncio
    async def test_parses_the_llm_reply(self, classifier, llm_client):
        result = await classifier.do_classify("What does the paper say about stomata?", WITH_ATTACHMENTS)

        assert result.intent == Intent.IN_DOMAIN
        assert result.suggested_pipeline == Pipeline.RAG_ONLY
        assert result.confidence == 0.9
        assert result.domain_topics == ["biology"]
        call = llm_client.chat_calls(json_mode=True)[0]
        assert call["model"] == llm_client.fast_model
        assert call["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_prompt_describes_attachments(self, classifier, llm_client):
        await classifier.do_classify("question", WITH_ATTACHMENTS)

        prompt = llm_client.chat_calls(json_mode=True)[0]["messages"][-1]["content"]
        assert "User has 1 documents attached" in prompt
        assert "leaves.pdf (application/pdf) - Summary: Leaf anatomy." in prompt

    @pytest.mark.asyncio
    async def test_external_only_is_corrected_to_rag_when_documents_exist(self, classifier, llm_client):
        llm_client.classification_reply = reply(intent="hybrid", confidence=0.8, suggested_pipeline="external_only")

        result = await classifier.do_classify("question", NOTE_CONTENT_ONLY)

        assert result.suggested_pipeline == Pipeline.RAG_ONLY

    @pytest.mark.asyncio
    async def test_out_of_domain_keeps_external_only_even_with_documents(self, classifier, llm_client):
        llm_client.classification_reply = reply(intent="out_of_domain", confidence=0.8, suggested_pipeline="external_only")

        result = await classifier.do_classify("capital of France?", WITH_ATTACHMENTS)

        assert result.suggested_pipeline == Pipeline.EXTERNAL_ONLY

    @pytest.mark.asyncio
    async def test_rag_only_is_corrected_to_external_without_documents(self, classifier, llm_client):
        result = await classifier.do_classify("question", EMPTY)

        assert result.suggested_pipeline == Pipeline.EXTERNAL_ONLY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw,expected", [(1.7, 1.0), (-0.3, 0.0), ("high", 0.5)])
    async def test_confidence_is_clamped(self, classifier, llm_client, raw, expected):
        llm_client.classification_reply = reply(intent="hybrid", confidence=raw, suggested_pipeline="hybrid")

        result = await classifier.do_classify("question", WITH_ATTACHMENTS)

        assert result.confidence == expected
        assert result.suggested_pipeline == Pipeline.HYBRID

    @pytest.mark.asyncio
    async def test_missing_fields_get_context_defaults(self, classifier, llm_client):
        llm_client.classification_reply = "{}"

        with_docs = await classifier.do_classify("question", WITH_ATTACHMENTS)
        without_docs = await classifier.do_classify("question", EMPTY)

        assert (with_docs.intent, with_docs.suggested_pipeline) == (Intent.IN_DOMAIN, Pipeline.RAG_ONLY)
        assert (without_docs.intent, without_docs.suggested_pipeline) == (Intent.OUT_OF_DOMAIN, Pipeline.EXTERNAL_ONLY)
        assert with_docs.confidence == 0.5


class TestFallback:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw_reply", ["not json at all", "[1, 2, 3]", '{"intent": "in_domain", "domain_topics": 5'])
    async def test_unparseable_reply_uses_fallback(self, classifier, llm_client, raw_reply):
        llm_client.classification_reply = raw_reply

        result = await classifier.do_classify("What does the document say?", WITH_ATTACHMENTS)

        assert result.confidence == 0.7
        assert result.suggested_pipeline == Pipeline.RAG_ONLY

    @pytest.mark.asyncio
    async def test_llm_failure_uses_fallback(self, classifier, llm_client):
        llm_client.fail_classification = True

        result = await classifier.do_classify("Define osmosis", EMPTY)

        assert (result.intent, result.suggested_pipeline, result.confidence) == (
            Intent.OUT_OF_DOMAIN, Pipeline.EXTERNAL_ONLY, 0.6
        )

    @pytest.mark.parametrize("query,context,intent,pipeline,confidence", [
        ("What does the document say?", WITH_ATTACHMENTS, Intent.IN_DOMAIN, Pipeline.RAG_ONLY, 0.7),
        ("What is entropy?", EMPTY, Intent.OUT_OF_DOMAIN, Pipeline.EXTERNAL_ONLY, 0.6),
        ("Summarize this", WITH_ATTACHMENTS, Intent.IN_DOMAIN, Pipeline.RAG_ONLY, 0.5),
        ("Summarize this", NOTE_CONTENT_ONLY, Intent.IN_DOMAIN, Pipeline.RAG_ONLY, 0.5),
        ("Summarize this", EMPTY, Intent.OUT_OF_DOMAIN, Pipeline.EXTERNAL_ONLY, 0.5),
    ])
    def test_keyword_rules(self, query, context, intent, pipeline, confidence):
        result = IntentClassifier.fallback_classification(query, context)

        assert (result.intent, result.suggested_pipeline, result.confidence) == (intent, pipeline, confidence)
