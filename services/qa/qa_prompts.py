"""Prompt texts and builders for intent classification and answer synthesis."""

from shared.models.document import DomainContext
from shared.models.qa import RetrievedChunk

##########################################
############ CLASSIFICATION ##############
##########################################

CLASSIFICATION_SYSTEM_PROMPT = (
    "You are an intent classifier for a RAG system. "
    "Analyze queries and determine the best pipeline approach."
)


def build_classification_prompt(query: str, context: DomainContext) -> str:
    if context.attached_documents:
        documents = "\n".join(f"  - {doc.describe()}" for doc in context.attached_documents)
        document_summary = f"User has {len(context.attached_documents)} documents attached:\n{documents}"
    else:
        document_summary = "User has no documents attached to this note"

    return f"""
Analyze this user query and classify the intent for a RAG (Retrieval-Augmented Generation) system.

## User Query
"{query}"

## Available Context
- {document_summary}
- Project Domain: {context.project_domain or 'General'}
- Note has content: {'Yes' if context.note_has_content else 'No'}

## Classification Task
Determine the best pipeline approach and respond with valid JSON:

{{
  "intent": "in_domain" | "out_of_domain" | "hybrid",
  "confidence": 0.0-1.0,
  "domain_topics": ["topic1", "topic2"],
  "suggested_pipeline": "rag_only" | "external_only" | "hybrid",
  "reasoning": "explanation of classification decision"
}}

## Intent Definitions
- **in_domain**: Query can be answered using available documents/notes
- **out_of_domain**: Query requires external knowledge not in documents
- **hybrid**: Query benefits from both document context AND external knowledge

## Pipeline Definitions
- **rag_only**: Use only document retrieval and context
- **external_only**: Use external knowledge sources (general AI knowledge)
- **hybrid**: Combine document context with external knowledge

## Examples
- "What does this document say about photosynthesis?" → in_domain, rag_only
- "What is the capital of France?" → out_of_domain, external_only
- "How does the photosynthesis process in my biology notes compare to recent research?" → hybrid, hybrid

Analyze the query and respond with appropriate classification.
"""


##########################################
############### DOCUMENTS ################
##########################################

NO_DOCUMENT_RESULTS_ANSWER = (
    "I couldn't find relevant information in the documents attached to this note to answer your question."
)


def format_inline_citation(chunk: RetrievedChunk) -> str:
    """Inline (Author, Year) marker for library item chunks with a known author."""
    if chunk.source_type.value != "library_item" or not chunk.author:
        return ""
    if chunk.year:
        return f"({chunk.author}, {chunk.year})"
    return f"({chunk.author})"


def build_document_context(chunks: list[RetrievedChunk]) -> str:
    parts = []
    for i, chunk in enumerate(chunks, start=1):
        citation = format_inline_citation(chunk)
        parts.append(f"[{i}] {chunk.content}{' ' + citation if citation else ''}")
    return "\n\n".join(parts)


def build_citations_block(chunks: list[RetrievedChunk]) -> str:
    """Deduplicated "**Sources:**" list, or "" if no chunk carries citation data."""
    lines: list[str] = []
    for chunk in chunks:
        if chunk.source_type.value == "library_item":
            if chunk.author and chunk.title:
                line = f'- {chunk.author}. "{chunk.title}". From: {chunk.source_file}'
            elif chunk.source_file:
                line = f"- Source: {chunk.source_file}"
            else:
                continue
        else:
            line = f"- Note: {chunk.title}" if chunk.title else "- Note"
        if line not in lines:
            lines.append(line)
    if not lines:
        return ""
    return "**Sources:**\n" + "\n".join(lines)


def build_document_prompt(question: str, context: str) -> str:
    return f"""Answer this question using only the provided documents. Be brief and direct (2-3 sentences max). Include inline citations such as (Author, Year) where appropriate.

DOCUMENTS:
{context}

QUESTION: {question}

ANSWER:"""


##########################################
############### EXTERNAL #################
##########################################

GENERAL_KNOWLEDGE_SOURCE = "General AI Knowledge"

ACADEMIC_KEYWORDS = ["research", "study", "paper", "journal", "scientific", "theory", "hypothesis"]
CURRENT_EVENT_KEYWORDS = ["recent", "latest", "current", "today", "now", "2024", "2025"]
FACTUAL_KEYWORDS = ["what is", "who is", "when did", "where is", "how many"]


def build_external_system_prompt(domain_topics: list[str] | None = None) -> str:
    domain_context = (
        f"The user is working in domains related to: {', '.join(domain_topics)}."
        if domain_topics else ""
    )
    return f"""You are a knowledgeable assistant helping with questions that require general knowledge or external information.

{domain_context}

Guidelines:
- Provide accurate, factual information based on your training knowledge
- Be clear about the limitations of your knowledge cutoff
- If the question is very recent or requires real-time information, acknowledge this limitation
- Structure your response clearly with proper explanations
- Include relevant examples when helpful
- If the topic is complex, break it down into understandable parts
- Acknowledge uncertainty when appropriate
- Do not make up specific facts, dates, or statistics
- For academic topics, mention if recent research might have updated information

Format your response as a clear, educational answer that would be helpful for someone studying or researching the topic."""


##########################################
################ HYBRID ##################
##########################################

HYBRID_SYSTEM_PROMPT = (
    "You are an expert study assistant that combines document-based information "
    "with general knowledge to provide comprehensive answers."
)


def build_hybrid_document_section(chunks: list[RetrievedChunk]) -> str:
    if not chunks:
        return ""
    section = "\n## Document Context\n\n"
    for i, chunk in enumerate(chunks, start=1):
        label = chunk.title or chunk.source_file or f"Document {i}"
        section += f"**{label}:**\n{chunk.content}\n\n"
    return section


def build_hybrid_external_section(external_answer: str) -> str:
    if not external_answer:
        return ""
    return "\n## External Knowledge\n\n" + external_answer


def build_hybrid_prompt(
    question: str,
    document_section: str,
    external_section: str,
    domain_topics: list[str] | None = None,
) -> str:
    domain_info = (
        f"\n## Domain Context\nThe user is working with: {', '.join(domain_topics)}\n"
        if domain_topics else ""
    )
    return f"""You are answering a question using both the user's documents and general knowledge. Provide a comprehensive, well-structured answer that leverages both sources appropriately.

{domain_info}{document_section}{external_section}

## Question
{question}

## Instructions
- Create a unified, coherent answer that draws from both document context and external knowledge
- Clearly distinguish between information from the user's documents vs. general knowledge
- Use proper citations: (Document Name) for document sources, (General Knowledge) for external info
- If document information conflicts with or adds to general knowledge, acknowledge this
- Structure your answer logically with clear sections if needed
- Be comprehensive but concise
- If either source is missing or insufficient, acknowledge this limitation
- End with a "Sources" section listing all references

## Answer"""


##########################################
############## ORCHESTRATOR ##############
##########################################

ERROR_ANSWER = "I encountered an error while processing your question. Please try again."
