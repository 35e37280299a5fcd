"""Map rerank server responses back onto the caller's documents.

The server only sees document texts and answers with positions into the
list it was sent. Those positions are the only link back to the caller's
file identities, so they are validated before use.
"""

from typing import Any, Optional, Sequence

from pydantic import BaseModel, ValidationError

from qmd_remote.errors import RemoteProtocolError, RerankProtocolError
from qmd_remote.llm.types import (
    RerankDocument,
    RerankDocumentResult,
    RerankFallback,
    RerankResult,
)

DEFAULT_RERANK_MODEL_LABEL = "remote-rerank"
FALLBACK_SCORE_STEP = 0.1


class RerankItem(BaseModel):
    index: int
    relevance_score: float


class RerankResponse(BaseModel):
    results: list[RerankItem]
    model: Optional[str] = None


def fallback_rerank(documents: Sequence[RerankDocument], reason: RerankFallback) -> RerankResult:
    """Keep the input order and assign decreasing placeholder scores (1.0, 0.9, ...)."""
    return RerankResult(
        results=[
            RerankDocumentResult(
                file=doc.file,
                score=1 - index * FALLBACK_SCORE_STEP,
                index=index,
            )
            for index, doc in enumerate(documents)
        ],
        model=reason.value,
        fallback=reason,
    )


def normalize_rerank_response(
    documents: Sequence[RerankDocument], payload: dict[str, Any]
) -> RerankResult:
    """Turn a /v1/rerank response into results sorted by descending score.

    Raises:
        RemoteProtocolError: If the payload does not have the expected shape
        RerankProtocolError: If indices are out of range, repeated, or do not
            cover every submitted document
    """
    try:
        response = RerankResponse.model_validate(payload)
    except ValidationError as exc:
        raise RemoteProtocolError(f"Malformed rerank response: {exc}") from exc

    results: list[RerankDocumentResult] = []
    seen: set[int] = set()
    for item in response.results:
        if not 0 <= item.index < len(documents):
            raise RerankProtocolError(
                f"Rerank result index {item.index} is outside the {len(documents)} documents sent"
            )
        if item.index in seen:
            raise RerankProtocolError(f"Rerank result index {item.index} appears more than once")
        seen.add(item.index)
        results.append(
            RerankDocumentResult(
                file=documents[item.index].file,
                score=item.relevance_score,
                index=item.index,
            )
        )

    # Callers rely on getting every document back
    if len(results) != len(documents):
        raise RerankProtocolError(
            f"Rerank response scored {len(results)} of {len(documents)} documents"
        )

    results.sort(key=lambda result: result.score, reverse=True)
    return RerankResult(results=results, model=response.model or DEFAULT_RERANK_MODEL_LABEL)
