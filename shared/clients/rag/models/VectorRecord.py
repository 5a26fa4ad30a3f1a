from typing import Any

from pydantic import BaseModel


class VectorRecord(BaseModel):
    """One vector as written to or fetched from the index.

    Attributes:
        id:       Globally unique vector id (UUID4 string).
        values:   The embedding. Preserved exactly on metadata patches.
        metadata: Flat key/value payload, usually a dumped VectorPoint.
    """

    id: str
    values: list[float]
    metadata: dict[str, Any] = {}


class QueryMatch(BaseModel):
    """One ranked similarity-search hit."""

    id: str
    score: float
    metadata: dict[str, Any] = {}

    @property
    def text(self) -> str:
        return self.metadata.get("text") or ""
