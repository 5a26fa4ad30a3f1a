"""Pydantic models for question answering.

  SecurityScope         — mandatory (user, project, note) triple for retrieval.
  RetrievedChunk        — a scope-checked search hit enriched with citation fields.
  IntentClassification  — routing decision for one question.
  ExternalAnswer        — general-knowledge answer with its own confidence.
  DocumentAnswer        — document-grounded answer.
  AnswerSource          — one source entry of an AnswerResult.
  AnswerResult          — what the orchestrator returns to callers.
  VectorizationResult   — outcome of one vectorize / reassociate / delete run.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.models.document import DocumentKind, VectorStatus


class Intent(str, Enum):
    IN_DOMAIN = "in_domain"
    OUT_OF_DOMAIN = "out_of_domain"
    HYBRID = "hybrid"


class Pipeline(str, Enum):
    RAG_ONLY = "rag_only"
    EXTERNAL_ONLY = "external_only"
    HYBRID = "hybrid"


class SecurityScope(BaseModel):
    """Built per retrieval call from the resolved note; never cached."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    project_id: str
    note_id: str

    def as_conditions(self) -> dict[str, str]:
        return {"note_id": self.note_id, "user_id": self.user_id, "project_id": self.project_id}

    def matches(self, metadata: dict[str, Any]) -> bool:
        return all(metadata.get(key) == value for key, value in self.as_conditions().items())


class RetrievedChunk(BaseModel):
    content: str
    score: float
    source_type: DocumentKind
    metadata: dict[str, Any] = {}
    library_item_id: str | None = None
    source_file: str | None = None
    author: str | None = None
    title: str | None = None
    year: str | None = None


class IntentClassification(BaseModel):
    intent: Intent
    confidence: float = Field(default=0.5)
    domain_topics: list[str] = []
    suggested_pipeline: Pipeline
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        try:
            value = float(value)
        except (TypeError, ValueError):
            return 0.5
        return min(1.0, max(0.0, value))


ExternalMethod = Literal["general_ai", "web_search", "academic_search"]


class ExternalAnswer(BaseModel):
    answer: str
    sources: list[str] = []
    confidence: float = 0.0
    method: ExternalMethod = "general_ai"


class DocumentAnswer(BaseModel):
    answer: str
    chunks: list[RetrievedChunk] = []
    citations: str = ""

    @property
    def found_documents(self) -> bool:
        return bool(self.chunks)


class AnswerSource(BaseModel):
    type: Literal["document", "external"]
    content: str
    metadata: dict[str, Any] | None = None


class AnswerResult(BaseModel):
    answer: str
    sources: list[AnswerSource] = []
    pipeline_used: Pipeline
    confidence: float
    intent_classification: IntentClassification


class VectorizationResult(BaseModel):
    unit_id: str
    kind: DocumentKind
    status: VectorStatus
    chunk_count: int = 0
    vector_ids: list[str] = []
    note_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == VectorStatus.COMPLETED
