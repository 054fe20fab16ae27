"""Full-text store search.

Ranking logic:
1. A store matches when any query term appears in its name or description
2. Sort by relevance score DESC (backend-native text score)
3. Then by store id ASC so equal scores come back in a stable order

Result set is capped (default 5); search is not paginated.
"""

import logging
import math
import re
import unicodedata
from collections import Counter

from app.stores.base import StoreBackend, StoreRecord

logger = logging.getLogger("uvicorn.error")

SEARCH_LIMIT = 5

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

# PostgreSQL's `english` stopword list (tsearch_data/english.stop), so both
# backends drop the same words and agree on which queries are empty.
STOPWORDS = frozenset(
    """
    i me my myself we our ours ourselves you your yours yourself yourselves
    he him his himself she her hers herself it its itself they them their
    theirs themselves what which who whom this that these those am is are was
    were be been being have has had having do does did doing a an the and but
    if or because as until while of at by for with about against between into
    through during before after above below to from up down in out on off over
    under again further then once here there when where why how all any both
    each few more most other some such no nor not only own same so than too
    very s t can will just don should now
    """.split()
)


def tokenize(text: str | None) -> list[str]:
    """Split text into lowercase word tokens, dropping stopwords.

    Example:
        >>> tokenize("The Best Coffee in town!")
        ['best', 'coffee', 'town']
    """
    if not text:
        return []
    normalized = unicodedata.normalize("NFC", text).lower()
    return [tok for tok in _TOKEN_RE.findall(normalized) if tok not in STOPWORDS]


def text_score(terms: list[str], *fields: str | None) -> float:
    """Relevance of a document for `terms`, summed over `fields`.

    Follows the document-store textScore scheme: repeated occurrences of a
    term count with halving weight (1 + 1/2 + 1/4 ...), scaled by how much of
    the field the term covers. A field made of exactly the term gets a 10% bonus.
    """
    wanted = set(terms)
    score = 0.0
    for field_text in fields:
        tokens = tokenize(field_text)
        if not tokens:
            continue
        counts = Counter(tokens)
        for term in wanted:
            count = counts.get(term, 0)
            if not count:
                continue
            freq = sum(1 / math.pow(2, i) for i in range(count))
            coeff = (0.5 * count / len(tokens)) + 0.5
            adjustment = 1.1 if len(tokens) == 1 else 1.0
            score += freq * coeff * adjustment
    return score


async def search_stores(
    backend: StoreBackend,
    query: str | None,
    limit: int = SEARCH_LIMIT,
) -> list[tuple[StoreRecord, float]]:
    """Search stores by name/description.

    Args:
        backend: Storage backend.
        query: Raw user query.
        limit: Maximum number of results (default 5).

    Returns:
        (store, score) pairs, best first. Empty when nothing matches.
    """
    terms = tokenize(query)
    if not terms:
        return []

    hits = await backend.text_search(terms, limit)
    ranked = sorted(hits, key=lambda hit: (-hit[1], hit[0].id))[:limit]
    logger.info(f"Search {terms!r}: {len(ranked)} result(s)")
    return ranked
