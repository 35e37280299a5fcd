"""LLM backends for qmd: contracts, the remote HTTP backend and sessions."""

from qmd_remote.llm.backend import LLM, LLMSession
from qmd_remote.llm.factory import (
    create_llm,
    dispose_default_remote_llm,
    get_default_remote_llm,
    reset_default_remote_llm,
    set_default_remote_llm,
)
from qmd_remote.llm.remote import RemoteLLM
from qmd_remote.llm.session import RemoteLLMSession, remote_llm_session, with_remote_llm_session
from qmd_remote.llm.types import (
    EmbeddingResult,
    EmbedOptions,
    ExpandQueryOptions,
    GenerateOptions,
    GenerateResult,
    HealthStatus,
    ModelInfo,
    Queryable,
    QueryType,
    RerankDocument,
    RerankDocumentResult,
    RerankFallback,
    RerankOptions,
    RerankResult,
    SessionOptions,
)

__all__ = [
    "LLM",
    "LLMSession",
    "RemoteLLM",
    "RemoteLLMSession",
    "remote_llm_session",
    "with_remote_llm_session",
    "create_llm",
    "get_default_remote_llm",
    "set_default_remote_llm",
    "reset_default_remote_llm",
    "dispose_default_remote_llm",
    "EmbeddingResult",
    "EmbedOptions",
    "ExpandQueryOptions",
    "GenerateOptions",
    "GenerateResult",
    "HealthStatus",
    "ModelInfo",
    "Queryable",
    "QueryType",
    "RerankDocument",
    "RerankDocumentResult",
    "RerankFallback",
    "RerankOptions",
    "RerankResult",
    "SessionOptions",
]
