"""Search API endpoints."""
import logging
import time
from typing import List, Union

from fastapi import APIRouter, Depends, HTTPException

from journal_search_server.dependencies import (get_conversational_search,
                                                get_current_user_id,
                                                get_hybrid_search,
                                                get_vector_search)
from journal_search_server.models.schemas import (
    ConversationRequest, ConversationResponse, EnhancedConversationResponse,
    EnhancedSearchRequest, EnhancedSearchResponse, SearchResult)
from journal_search_server.services.vector_search import (
    ConversationalSearchService, HybridSearchService, SearchHit,
    VectorSearchService)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/search", tags=["search"])


def to_search_results(hits: List[SearchHit]) -> List[SearchResult]:
    return [
        SearchResult(entry_id=hit.entry_id,
                     similarity=hit.similarity,
                     snippet=hit.snippet,
                     title=hit.title,
                     match_reason=hit.match_reason) for hit in hits
    ]


def elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)


@router.post("/enhanced",
             response_model=Union[EnhancedConversationResponse,
                                  EnhancedSearchResponse])
async def enhanced_search(
    request: EnhancedSearchRequest,
    user_id: str = Depends(get_current_user_id),
    vector_search: VectorSearchService = Depends(get_vector_search),
    hybrid_search: HybridSearchService = Depends(get_hybrid_search),
    conversational_search: ConversationalSearchService = Depends(
        get_conversational_search)):
    """Search the user's journal by vector, hybrid or conversational mode."""
    start_time = time.perf_counter()
    logger.info(f"Enhanced search request: mode={request.mode}, user={user_id}")
    try:
        if request.mode == "conversational":
            result = await conversational_search.answer(
                request.query, user_id,
                [turn.model_dump() for turn in request.previous_messages])
            return EnhancedConversationResponse(
                query=request.query,
                mode=request.mode,
                answer=result.answer,
                relevant_entries=to_search_results(result.relevant_entries),
                confidence=result.confidence,
                total_results=result.total_results,
                execution_time=elapsed_ms(start_time))

        if request.mode == "vector":
            hits = await vector_search.search(request.query,
                                              user_id,
                                              limit=request.limit,
                                              threshold=request.threshold)
        else:
            hits = await hybrid_search.search(request.query,
                                              user_id,
                                              limit=request.limit,
                                              strategy=request.strategy)

        execution_time = elapsed_ms(start_time)
        logger.info(
            f"Enhanced search completed: {len(hits)} results in {execution_time}ms")
        return EnhancedSearchResponse(query=request.query,
                                      mode=request.mode,
                                      results=to_search_results(hits),
                                      total_results=len(hits),
                                      execution_time=execution_time)

    except Exception as e:
        logger.error(f"Enhanced search error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Enhanced search failed")


@router.post("/conversation", response_model=ConversationResponse)
async def conversation_search(
    request: ConversationRequest,
    user_id: str = Depends(get_current_user_id),
    conversational_search: ConversationalSearchService = Depends(
        get_conversational_search)):
    """Answer a question about the user's journal with supporting entries."""
    start_time = time.perf_counter()
    logger.info(
        f"Conversational search request: user={user_id}, "
        f"messages={len(request.previous_messages)}")
    try:
        result = await conversational_search.answer(
            request.query, user_id,
            [turn.model_dump() for turn in request.previous_messages])
        return ConversationResponse(
            answer=result.answer,
            relevant_entries=to_search_results(result.relevant_entries),
            confidence=result.confidence,
            total_results=result.total_results,
            execution_time=elapsed_ms(start_time))

    except Exception as e:
        logger.error(f"Conversational search error: {e}", exc_info=True)
        raise HTTPException(status_code=500,
                            detail="Conversational search failed")
