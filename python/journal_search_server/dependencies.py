"""FastAPI dependencies resolving services from application state.

Services are built once in the application lifespan (see main.py) and stored
on `app.state`; tests replace them through `app.dependency_overrides`.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from journal_search_server.config import settings
from journal_search_server.services.chat import ChatService
from journal_search_server.services.database import Database
from journal_search_server.services.embedding_processor import \
    EmbeddingProcessor
from journal_search_server.services.embeddings import EmbeddingService
from journal_search_server.services.vector_search import (
    ConversationalSearchService, HybridSearchService, VectorSearchService)


def get_current_user_id(user_id: Optional[str] = Header(
        default=None, alias=settings.user_id_header)) -> str:
    """Identity set by the upstream authenticating proxy."""
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_embedding_service(request: Request) -> EmbeddingService:
    return request.app.state.embedding_service


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_embedding_processor(request: Request) -> EmbeddingProcessor:
    return request.app.state.embedding_processor


def get_vector_search(
    db: Database = Depends(get_database),
    embedding_service: EmbeddingService = Depends(get_embedding_service)
) -> VectorSearchService:
    return VectorSearchService(db, embedding_service)


def get_hybrid_search(
    db: Database = Depends(get_database),
    vector_search: VectorSearchService = Depends(get_vector_search)
) -> HybridSearchService:
    return HybridSearchService(db, vector_search)


def get_conversational_search(
    db: Database = Depends(get_database),
    vector_search: VectorSearchService = Depends(get_vector_search),
    chat_service: ChatService = Depends(get_chat_service)
) -> ConversationalSearchService:
    return ConversationalSearchService(db, vector_search, chat_service)
