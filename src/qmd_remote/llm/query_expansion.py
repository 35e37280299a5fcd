"""Query expansion: turn one user query into lex/vec/hyde search variants.

The completion model is asked for a small line-oriented answer:

    hyde: <hypothetical document passage on one line>
    lex: <keyword query>
    vec: <semantic query>

Anything that does not look like "<known tag>: <text>" is ignored. When the
model is unavailable or its output is unusable, the literal query is passed
through instead so search always has something to run.
"""

from typing import Awaitable, Callable, Optional

from loguru import logger

from qmd_remote.llm.types import (
    ExpandQueryOptions,
    GenerateOptions,
    GenerateResult,
    Queryable,
    QueryType,
)

Generate = Callable[[str, GenerateOptions], Awaitable[Optional[GenerateResult]]]

EXPANSION_OPTIONS = GenerateOptions(max_tokens=1000, temperature=1.0)

_PROMPT_TEMPLATE = """You are a search query optimization expert. Your task is to improve retrieval by rewriting queries and generating hypothetical documents.

Original Query: {query}

{context_block}

## Step 1: Query Analysis
Identify entities, search intent, and missing context.

## Step 2: Generate Hypothetical Document
Write a focused sentence passage that would answer the query. Include specific terminology and domain vocabulary.

## Step 3: Query Rewrites
Generate 2-3 alternative search queries that resolve ambiguities. Use terminology from the hypothetical document.

## Step 4: Final Retrieval Text
Output MAX ONE 'hyde' line FIRST, then 1-3 'lex' lines, then 1-3 'vec' lines.

<format>
hyde: {{complete hypothetical document passage from Step 2 on a SINGLE LINE}}
lex: {{single search term}}
vec: {{single vector query}}
</format>

<example>
Example (FOR FORMAT ONLY - DO NOT COPY THIS CONTENT):
hyde: This is an example of a hypothetical document passage that would answer the example query. It contains multiple sentences and relevant vocabulary.
lex: example keyword 1
lex: example keyword 2
vec: example semantic query
</example>

<rules>
- DO NOT repeat the same line.
- Each 'lex:' line MUST be a different keyword variation based on the ORIGINAL QUERY.
- Each 'vec:' line MUST be a different semantic variation based on the ORIGINAL QUERY.
- The 'hyde:' line MUST be the full sentence passage from Step 2, but all on one line.
- DO NOT use the example content above.
{lexical_rule}
</rules>

Final Output:"""


def fallback_queryables(query: str, include_lexical: bool = True) -> list[Queryable]:
    """Pass the literal query through: lex first (if wanted), then vec."""
    fallback = [Queryable(type=QueryType.VEC, text=query)]
    if include_lexical:
        fallback.insert(0, Queryable(type=QueryType.LEX, text=query))
    return fallback


def build_expansion_prompt(
    query: str, context: Optional[str] = None, include_lexical: bool = True
) -> str:
    context_block = (
        f"Additional Context, ONLY USE IF RELEVANT:\n\n<context>{context}</context>"
        if context
        else ""
    )
    lexical_rule = "" if include_lexical else "- Do NOT output any 'lex:' lines"
    return _PROMPT_TEMPLATE.format(
        query=query, context_block=context_block, lexical_rule=lexical_rule
    )


def parse_queryables(raw: str) -> list[Queryable]:
    """Parse "<tag>: <text>" lines, keeping order and dropping anything unrecognized."""
    queryables: list[Queryable] = []
    for line in raw.strip().split("\n"):
        tag, sep, text = line.partition(":")
        if not sep:
            continue
        try:
            query_type = QueryType(tag.strip())
        except ValueError:
            continue
        queryables.append(Queryable(type=query_type, text=text.strip()))
    return queryables


async def expand_query(
    generate: Optional[Generate],
    query: str,
    options: Optional[ExpandQueryOptions] = None,
) -> list[Queryable]:
    """Expand query through the completion endpoint, degrading to the literal query.

    Args:
        generate: Completion callable, or None when no generation backend exists
        query: The user's search query
        options: Context hint and whether lex variants are wanted

    Returns:
        Ordered query variants; never empty and never raises
    """
    options = options or ExpandQueryOptions()
    include_lexical = options.include_lexical

    if generate is None:
        return fallback_queryables(query, include_lexical)

    prompt = build_expansion_prompt(query, options.context, include_lexical)
    try:
        result = await generate(prompt, EXPANSION_OPTIONS)
        if result is None:
            logger.error("Query expansion failed: generation returned no result")
            return fallback_queryables(query, include_lexical)
        queryables = parse_queryables(result.text)
    except Exception as exc:
        logger.error(f"Query expansion failed: {exc}")
        return fallback_queryables(query, include_lexical)

    # The model may ignore the prompt rule, so filter again
    if not include_lexical:
        queryables = [q for q in queryables if q.type != QueryType.LEX]

    if not queryables:
        logger.warning(f"Query expansion produced no usable lines for: {query!r}")
        return fallback_queryables(query, include_lexical)
    return queryables
