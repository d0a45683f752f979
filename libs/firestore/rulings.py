"""Search over constitutional court rulings stored in the ``sentencias`` collection."""

import re
from typing import List, Tuple

import structlog
from google.cloud.firestore_v1.async_client import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter

from libs.common.text import normalize_text
from libs.firestore.messages import IN_FILTER_LIMIT
from libs.models.firestore import Ruling

logger = structlog.get_logger(__name__)

CITATION_PATTERN = re.compile(r"\b([A-Z]{1,3}-\d{2,3}-\d{2})\b", re.IGNORECASE)

SEARCH_STOPWORDS = frozenset({
    "para", "sobre", "como", "cual", "cuales", "cuando", "donde", "entre", "esta", "este",
    "estos", "estas", "hace", "sentencia", "sentencias", "tiene", "todos", "todas", "quien",
    "what", "which", "about", "with", "that", "this", "there", "from", "have", "ruling", "rulings",
})


def search_terms(text: str) -> List[str]:
    """Distinct normalized words of at least four letters, stopwords removed."""
    terms: List[str] = []
    for word in re.findall(r"[a-z0-9]+", normalize_text(text)):
        if len(word) >= 4 and word not in SEARCH_STOPWORDS and word not in terms:
            terms.append(word)
    return terms


def score_ruling(ruling: Ruling, terms: List[str]) -> int:
    """Number of search terms that appear anywhere in the ruling's searchable fields."""
    fields = [ruling.providencia, ruling.expediente, ruling.tema, ruling.texto, ruling.magistrado]
    for value in (ruling.derechos, ruling.hechos_relevantes):
        if isinstance(value, list):
            fields.extend(str(item) for item in value)
        elif value:
            fields.append(str(value))
    haystack = normalize_text(" ".join(str(f) for f in fields if f))
    return sum(1 for term in terms if term in haystack)


class RulingStore:
    """
    Finds rulings relevant to a question.

    Citations such as ``T-123-45`` are looked up exactly; otherwise up to
    ``scan_limit`` rulings are scored by keyword overlap and the best
    ``limit`` returned.
    """

    collection_name = "sentencias"

    def __init__(self, client: AsyncClient, scan_limit: int = 500):
        self.client = client
        self.scan_limit = scan_limit

    def _collection(self):
        return self.client.collection(self.collection_name)

    async def by_citation(self, codes: List[str]) -> List[Ruling]:
        rulings: List[Ruling] = []
        for start in range(0, len(codes), IN_FILTER_LIMIT):
            chunk = codes[start:start + IN_FILTER_LIMIT]
            query = self._collection().where(filter=FieldFilter("providencia", "in", chunk))
            rulings.extend([Ruling(**snapshot.to_dict()) async for snapshot in query.stream()])
        return rulings

    async def search(self, text: str, limit: int = 50) -> List[Ruling]:
        codes = sorted({code.upper() for code in CITATION_PATTERN.findall(text or "")})
        if codes:
            exact = await self.by_citation(codes)
            if exact:
                return exact[:limit]

        terms = search_terms(text)
        if not terms:
            return []

        scored: List[Tuple[int, Ruling]] = []
        async for snapshot in self._collection().limit(self.scan_limit).stream():
            ruling = Ruling(**snapshot.to_dict())
            score = score_ruling(ruling, terms)
            if score > 0:
                scored.append((score, ruling))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        logger.debug("Ruling keyword search", terms=terms, matches=len(scored))
        return [ruling for _, ruling in scored[:limit]]
