"""Vector, hybrid and conversational search over a user's journal entries.

All searches are scoped to a single user: candidates are only ever loaded with
that user's id. Results are ordered by score descending, with ties broken by
entry recency (most recent first).
"""
import logging
import re
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from journal_search_server.services.chat import ChatService
from journal_search_server.services.database import Database
from journal_search_server.services.embeddings import EmbeddingService

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 200

NO_MATCH_ANSWER = (
    "I couldn't find any relevant entries in your journal related to that "
    "query. Try asking about something else or adding more details to your "
    "question.")

SYSTEM_PROMPT = """You are an AI assistant helping a user explore and understand their personal journal entries through semantic understanding. Based on the most semantically relevant journal entries provided (found through vector similarity, not keyword matching), answer their questions in a thoughtful, insightful, and personal way.

Guidelines:
- Focus on semantic meaning and conceptual relationships rather than exact word matches
- Reference specific entries and dates when relevant
- Identify patterns, themes, and emotional connections across entries
- If the context doesn't fully answer the question, acknowledge what you can determine and suggest related aspects
- Use a warm, conversational tone as if you're a thoughtful friend who knows their journal well

Relevant journal entries:
{context}"""


@dataclass(frozen=True)
class SearchHit:
    entry_id: str
    similarity: float
    snippet: str
    title: Optional[str]
    match_reason: str
    created_at: str


@dataclass(frozen=True)
class ConversationalAnswer:
    answer: str
    relevant_entries: List[SearchHit]
    confidence: float
    total_results: int


@dataclass(frozen=True)
class HybridStrategy:
    vector_weight: float
    keyword_weight: float


HYBRID_STRATEGIES = {
    "balanced": HybridStrategy(vector_weight=0.7, keyword_weight=0.7),
    "semantic": HybridStrategy(vector_weight=1.0, keyword_weight=0.3),
    "keyword": HybridStrategy(vector_weight=0.3, keyword_weight=1.0),
}


def make_snippet(entry: Dict[str, Any]) -> str:
    text = entry.get("searchable_text") or entry["content"]
    if len(text) > SNIPPET_LENGTH:
        return text[:SNIPPET_LENGTH] + "..."
    return text


def rank_hits(hits: Sequence[SearchHit], limit: int) -> List[SearchHit]:
    """Sort by similarity descending, most recent first on ties, then truncate."""
    by_recency = sorted(hits, key=lambda hit: hit.created_at, reverse=True)
    ranked = sorted(by_recency, key=lambda hit: hit.similarity, reverse=True)
    return ranked[:limit]


def keyword_score(query: str, text: str) -> float:
    """Score a keyword match: 0.8 for the full phrase plus 0.3 per whole word.

    Text that does not contain the full query phrase as whole words scores 0.
    """
    query_lower = query.lower().strip()
    text_lower = text.lower()
    phrase = re.compile(rf"(?<!\w){re.escape(query_lower)}(?!\w)")
    if not query_lower or not phrase.search(text_lower):
        return 0.0
    text_words = set(re.findall(r"\w+", text_lower))
    matched = text_words.intersection(re.findall(r"\w+", query_lower))
    return min(0.8 + 0.3 * len(matched), 1.0)


def keyword_search(db: Database, query: str, user_id: str,
                   limit: int) -> List[SearchHit]:
    """Simple keyword search over title, content and searchable text."""
    hits = []
    for entry in db.list_entries(user_id):
        text = " ".join(
            filter(None, [
                entry.get("title"), entry["content"],
                entry.get("searchable_text")
            ]))
        score = keyword_score(query, text)
        if score > 0:
            hits.append(
                SearchHit(entry_id=entry["id"],
                          similarity=score,
                          snippet=make_snippet(entry),
                          title=entry.get("title"),
                          match_reason="Keyword matches",
                          created_at=entry["created_at"]))
    return rank_hits(hits, limit)


class VectorSearchService:
    """Cosine-similarity search of a query against stored entry embeddings."""

    def __init__(self, db: Database, embedding_service: EmbeddingService):
        self.db = db
        self.embedding_service = embedding_service

    async def search(self,
                     query: str,
                     user_id: str,
                     limit: int = 10,
                     threshold: float = 0.3) -> List[SearchHit]:
        t1 = time.perf_counter()
        query_embedding = await self.embedding_service.generate_embedding(query)
        logger.debug(
            f"Generate query embedding: {(time.perf_counter()-t1)*1000:.1f}ms")

        t1 = time.perf_counter()
        entries = self.db.get_entries_with_embeddings(user_id)
        hits = []
        for entry in entries:
            similarity = self.embedding_service.similarity(query_embedding,
                                                           entry["embedding"])
            if similarity < threshold:
                continue
            hits.append(
                SearchHit(entry_id=entry["id"],
                          similarity=similarity,
                          snippet=make_snippet(entry),
                          title=entry.get("title"),
                          match_reason=f"Vector similarity: {similarity * 100:.1f}%",
                          created_at=entry["created_at"]))

        results = rank_hits(hits, limit)
        logger.info(
            f"Vector search: {len(entries)} entries searched, {len(results)} results "
            f"in {(time.perf_counter()-t1)*1000:.1f}ms")
        return results


class HybridSearchService:
    """Blend vector similarity with keyword matches."""

    def __init__(self, db: Database, vector_search: VectorSearchService):
        self.db = db
        self.vector_search = vector_search

    async def search(self,
                     query: str,
                     user_id: str,
                     limit: int = 10,
                     strategy: str = "balanced") -> List[SearchHit]:
        if strategy not in HYBRID_STRATEGIES:
            raise ValueError(f"Unknown hybrid search strategy: {strategy}")
        weights = HYBRID_STRATEGIES[strategy]

        vector_hits = await self.vector_search.search(query,
                                                      user_id,
                                                      limit=limit * 2,
                                                      threshold=0.15)
        keyword_hits = keyword_search(self.db, query, user_id, limit * 2)

        combined: Dict[str, SearchHit] = {}
        for hit in vector_hits:
            combined[hit.entry_id] = replace(
                hit,
                similarity=hit.similarity * weights.vector_weight,
                match_reason=f"Vector: {hit.match_reason}")

        for hit in keyword_hits:
            existing = combined.get(hit.entry_id)
            if existing is not None:
                # Entries matching both signals get a boost
                combined[hit.entry_id] = replace(
                    existing,
                    similarity=existing.similarity +
                    hit.similarity * weights.keyword_weight * 0.5,
                    match_reason=f"{existing.match_reason} + Keyword: {hit.match_reason}")
            else:
                combined[hit.entry_id] = replace(
                    hit,
                    similarity=hit.similarity * weights.keyword_weight,
                    match_reason=f"Keyword: {hit.match_reason}")

        capped = [
            replace(hit, similarity=min(hit.similarity, 1.0))
            for hit in combined.values()
        ]
        results = rank_hits(capped, limit)
        logger.info(
            f"Hybrid search ({strategy}): vector={len(vector_hits)}, "
            f"keyword={len(keyword_hits)}, combined={len(results)}")
        return results


class ConversationalSearchService:
    """Retrieval-augmented answers grounded in the user's journal."""

    search_limit = 8
    search_threshold = 0.15
    history_turns = 3

    def __init__(self, db: Database, vector_search: VectorSearchService,
                 chat_service: ChatService):
        self.db = db
        self.vector_search = vector_search
        self.chat_service = chat_service

    @staticmethod
    def confidence(hits: Sequence[SearchHit]) -> float:
        """Confidence grows with the mean similarity of retrieved entries."""
        if not hits:
            return 0.0
        average = sum(hit.similarity for hit in hits) / len(hits)
        return min(0.95, average * 1.2)

    def _build_context(self, user_id: str, hits: Sequence[SearchHit]) -> str:
        blocks = []
        for hit in hits:
            entry = self.db.get_entry(hit.entry_id, user_id)
            if entry is None:
                continue
            date = entry["created_at"][:10]
            block = (
                f"Entry: \"{entry.get('title') or 'Untitled'}\" ({date}, "
                f"Relevance: {hit.similarity * 100:.1f}%)\n"
                f"Content: {entry['content']}\n")
            if entry.get("tags"):
                block += f"Tags: {', '.join(entry['tags'])}\n"
            blocks.append(block + "---")
        return "\n\n".join(blocks)

    async def answer(
            self, query: str, user_id: str,
            previous_messages: Sequence[Dict[str, str]] = ()
    ) -> ConversationalAnswer:
        hits = await self.vector_search.search(query,
                                               user_id,
                                               limit=self.search_limit,
                                               threshold=self.search_threshold)
        if not hits:
            return ConversationalAnswer(answer=NO_MATCH_ANSWER,
                                        relevant_entries=[],
                                        confidence=0.0,
                                        total_results=0)

        messages = [{
            "role": "system",
            "content": SYSTEM_PROMPT.format(
                context=self._build_context(user_id, hits))
        }]
        for turn in list(previous_messages)[-self.history_turns:]:
            messages.append({"role": turn["role"], "content": turn["content"]})
        messages.append({"role": "user", "content": query})

        logger.info(f"Sending RAG request with {len(hits)} entries as context")
        answer = await self.chat_service.complete(messages)
        confidence = self.confidence(hits)
        logger.info(
            f"Conversational search completed: confidence {confidence:.2f}, "
            f"answer length {len(answer)}")
        return ConversationalAnswer(answer=answer,
                                    relevant_entries=list(hits),
                                    confidence=confidence,
                                    total_results=len(hits))
