"""Value types shared by every LLM backend."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class QueryType(str, Enum):
    """Kinds of search query produced by query expansion."""

    LEX = "lex"  # literal keyword search
    VEC = "vec"  # semantic / vector search phrasing
    HYDE = "hyde"  # hypothetical document passage


class Queryable(BaseModel):
    """A single search query variant."""

    type: QueryType = Field(..., description="How this query should be searched")
    text: str = Field(..., description="Query text")


class EmbeddingResult(BaseModel):
    embedding: list[float] = Field(..., description="Embedding vector, dimension set by the model")
    model: str = Field(..., description="Model that produced the vector")


class GenerateResult(BaseModel):
    text: str = Field(..., description="Generated completion text")
    model: str = Field(..., description="Model that produced the text")
    done: bool = Field(default=True, description="Whether generation finished")


class ModelInfo(BaseModel):
    name: str
    exists: bool
    path: Optional[str] = None


class EmbedOptions(BaseModel):
    model: Optional[str] = None
    is_query: bool = False
    title: Optional[str] = None


class GenerateOptions(BaseModel):
    model: Optional[str] = None
    max_tokens: int = Field(default=150, ge=1, description="Maximum tokens to generate")
    temperature: float = Field(default=0.0, ge=0.0, description="Sampling temperature")


class RerankOptions(BaseModel):
    model: Optional[str] = None


class ExpandQueryOptions(BaseModel):
    context: Optional[str] = Field(
        default=None, description="Optional hint about the search, lower priority than the query"
    )
    include_lexical: bool = Field(default=True, description="Whether to produce lex variants")


class RerankDocument(BaseModel):
    """A candidate document offered for reranking."""

    file: str = Field(..., description="Caller's identity for the document")
    text: str = Field(..., description="Text the reranker scores")


class RerankDocumentResult(BaseModel):
    file: str
    score: float
    index: int = Field(..., description="Position of the document in the original input")


class RerankFallback(str, Enum):
    """Why a rerank result is a placeholder ordering rather than a real one."""

    NOT_CONFIGURED = "no-rerank"
    REQUEST_FAILED = "rerank-fallback"
    SESSION_INVALID = "session-invalid"


class RerankResult(BaseModel):
    results: list[RerankDocumentResult] = Field(default_factory=list)
    model: str
    fallback: Optional[RerankFallback] = Field(
        default=None, description="Set when the ordering is a placeholder, None for a real rerank"
    )

    @property
    def is_fallback(self) -> bool:
        return self.fallback is not None


class HealthStatus(BaseModel):
    """Reachability of each remote endpoint."""

    embed: bool = False
    rerank: bool = False
    generate: bool = False

    @property
    def all_healthy(self) -> bool:
        return self.embed and self.rerank and self.generate


class SessionOptions(BaseModel):
    name: Optional[str] = Field(default=None, description="Label used in log messages")
    max_duration: Optional[float] = Field(
        default=None, gt=0, description="Seconds after which the session releases itself"
    )
